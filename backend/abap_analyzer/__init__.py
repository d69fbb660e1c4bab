"""Upload ABAP sources and relay them to an AI provider for analysis."""

__version__ = "1.0.0"
