"""WSGI web framework with flagged routes, layered middleware, validation, events and keyed locks."""

__version__ = "0.1.0"