"""HTTP front end for runledger."""

from runledger.server.app import create_app

__all__ = ["create_app"]
