"""Governor: governed SDLC flow engine for backlog items."""

__version__ = "0.1.0"
