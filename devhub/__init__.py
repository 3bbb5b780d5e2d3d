"""DevHub gateway: backend for the developer hub UI."""

__version__ = "0.1.0"
