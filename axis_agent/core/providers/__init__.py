"""LLM backend adapters."""
