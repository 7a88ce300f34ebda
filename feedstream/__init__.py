"""feedstream: multi-user RSS/Atom reader core."""

__version__ = "0.1.0"
