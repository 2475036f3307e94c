"""Simulated kernel memory management and an in-memory naming service."""

__version__ = "0.1.0"