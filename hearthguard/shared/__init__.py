"""Shared models, utilities and persistence for HearthGuard services."""
