"""Setup script for axis_agent package."""

from setuptools import setup, find_packages

setup(
    name="axis-agent",
    version="0.1.0",
    description="Planner assistant agent for Axis with switchable LLM providers",
    packages=find_packages(include=["axis_agent", "axis_agent.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "httpx>=0.26.0",
        "pydantic>=2.0",
        "fastapi>=0.100",
        "uvicorn>=0.23",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "axis-agent=axis_agent.main:main",
        ],
    },
    package_data={
        "axis_agent": ["config/default_config.yaml"],
    },
)
