"""studioflow - task lifecycle engine for creative agencies."""

__version__ = "0.1.0"
