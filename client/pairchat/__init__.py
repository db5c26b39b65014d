"""Client-side coordinator for pairwise realtime chat sessions."""

__version__ = "0.1.0"
