"""HTTP API for mailbridge."""

from mailbridge.api.app import create_app

__all__ = ["create_app"]
