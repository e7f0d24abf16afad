"""mikrobot: a personal-assistant orchestration core."""

__version__ = "0.1.0"
