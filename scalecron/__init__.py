"""scalecron - cron-driven on/off scaling for hosted projects and databases."""

__version__ = "0.1.0"
__logo__ = "⏻"
