"""Meeting agent bridge: pairs a meeting media relay with a realtime speech model."""

__version__ = "0.1.0"
