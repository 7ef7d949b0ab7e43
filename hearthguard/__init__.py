"""HearthGuard: concern decision and notification routing engine."""

__version__ = "0.1.0"
