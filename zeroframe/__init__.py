"""Query builders, Zero v1 frames, MQTT packets, socket servers, notifications and HTTP helpers."""

__version__ = "0.1.0"