"""Fluxfolio: portfolio jobs settled through intents."""

__version__ = "0.1.0"
