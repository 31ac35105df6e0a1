"""rungscan: deterministic static analysis of ladder-logic programs."""

__version__ = "0.1.0"
