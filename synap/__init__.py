"""synap: a local store for ideas, todos and notes."""

__version__ = "0.1.0"
