"""Logging setup and per-token log capture."""

from scalecron.logs.capture import TokenLogStore, token_fingerprint, token_logger
from scalecron.logs.setup import setup_logging

__all__ = ["TokenLogStore", "setup_logging", "token_fingerprint", "token_logger"]
