"""HubSpot invoice manager backend."""

__version__ = "1.0.0"
