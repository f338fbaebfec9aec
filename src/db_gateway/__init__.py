"""DB Gateway: a generic, API-key authenticated data endpoint over tenant tables."""

__version__ = "1.0.0"
