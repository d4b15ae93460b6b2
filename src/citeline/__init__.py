"""citeline — contextual retrieval and citation normalization for chat turns."""

__version__ = "0.1.0"
