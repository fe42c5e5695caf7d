"""Orders and inventory parts coordinated through a message-driven saga."""

__version__ = "0.1.0"