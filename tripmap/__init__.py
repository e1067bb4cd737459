"""tripmap: travel assistant with a resilient chat, geocoding and map layer."""

__version__ = "0.1.0"
