"""Core agent runtime: providers, decoding, repair, orchestration."""
