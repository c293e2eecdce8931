"""vpsprov — declarative provisioning for a single Node.js VPS."""

__version__ = "0.1.0"
