"""HTTP surface of the harvest pipeline engine."""

from harvest_api.server import create_app

__all__ = ["create_app"]
