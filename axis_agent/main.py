"""
Main entry point — parse args, load config, wire the agent, serve the API.
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys

from .config.settings import build_llm_settings, load_config
from .core.agent import AssistantAgent
from .core.providers.base import ProviderFactory
from .core.structured_logger import setup_structured_logging
from .core.user_store import JsonUserStore
from .interfaces.api import RestAPIInterface
from .tools import build_planner_registry

# Register providers
from .core.providers import deepseek, gemini, openai  # noqa: F401


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="axis-agent",
        description="Axis planner assistant — REST/SSE server",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to config YAML file",
        default=None,
    )
    parser.add_argument(
        "-p", "--provider",
        help="Default LLM provider (deepseek, gemini, openai)",
        default=None,
    )
    parser.add_argument(
        "--host",
        help="API bind address",
        default=None,
    )
    parser.add_argument(
        "--port",
        type=int,
        help="API port",
        default=None,
    )
    parser.add_argument(
        "--data-dir",
        help="Directory holding per-user planner data",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )
    return parser.parse_args(argv)


def build_interface(config) -> RestAPIInterface:
    """Wire settings, adapters, tools, store and agent into the API."""
    settings = build_llm_settings(config)
    providers = ProviderFactory.create_all(settings)
    registry = build_planner_registry()
    store = JsonUserStore(
        config.get("storage.data_dir", "./user_data"),
        public_base_url=config.get("calendar.public_base_url", "http://localhost:3000"),
    )
    agent = AssistantAgent(
        settings,
        providers,
        registry,
        calendar_links=store.get_calendar_links,
        max_tool_calls=int(config.get("assistant.max_tool_calls", 6)),
        history_limit=int(config.get("assistant.history_limit", 20)),
        history_context=int(config.get("assistant.history_context", 12)),
    )
    return RestAPIInterface(
        agent,
        store,
        host=config.get("api.host", "127.0.0.1"),
        port=int(config.get("api.port", 3000)),
    )


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    config = load_config(args.config)

    if args.provider:
        config.set("llm.provider", args.provider)
    if args.host:
        config.set("api.host", args.host)
    if args.port:
        config.set("api.port", args.port)
    if args.data_dir:
        config.set("storage.data_dir", args.data_dir)

    if args.verbose >= 2:
        log_level = "DEBUG"
    elif args.verbose >= 1:
        log_level = "INFO"
    else:
        log_level = config.get("logging.level", "INFO")
    json_mode = str(config.get("logging.format", "human")).lower() == "json"
    setup_structured_logging(json_mode=json_mode, level=log_level)
    logger = logging.getLogger(__name__)

    try:
        interface = build_interface(config)
    except (ValueError, OSError) as e:
        print(f"Error starting axis-agent: {e}", file=sys.stderr)
        sys.exit(1)

    settings = interface.agent.settings
    configured = settings.configured_providers()
    if not configured:
        logger.warning("No LLM provider API key is configured; assistant turns will fail.")
    logger.info(f"Default provider: {settings.default_provider}; configured: {configured}")
    logger.info(f"Listening on http://{interface.host}:{interface.port}")

    try:
        asyncio.run(interface.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
