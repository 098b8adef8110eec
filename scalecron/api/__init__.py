"""HTTP surface."""

from scalecron.api.app import build_engine, create_app

__all__ = ["build_engine", "create_app"]
