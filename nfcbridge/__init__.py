"""Bridge between native-messaging clients and PC/SC proximity-card readers."""

__version__ = "1.0.0"
