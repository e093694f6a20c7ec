"""Catch-all domain detection from delivered and bounced e-mail events, with an HTTP service."""

__version__ = "0.1.0"