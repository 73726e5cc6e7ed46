"""Multi-provider name generation coordinator."""

__version__ = "0.1.0"
