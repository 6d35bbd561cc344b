"""Ghost clip capture, encoding and replay."""

__version__ = "0.1.0"
