"""Configuration, cache cleanup, logging setup and API error bodies for a symbol server."""

__version__ = "0.1.0"