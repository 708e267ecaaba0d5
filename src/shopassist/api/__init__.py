"""HTTP API for the command gateway."""

from shopassist.api.app import create_app

__all__ = ["create_app"]
