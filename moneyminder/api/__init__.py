"""HTTP JSON API."""

from moneyminder.api.app import create_app

__all__ = ["create_app"]
