"""chesswager - wagered chess games backend."""

__version__ = "0.1.0"
