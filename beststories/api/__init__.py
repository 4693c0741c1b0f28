"""
HTTP API for the best stories service.
"""

from beststories.api.server import StoriesServer, create_app

__all__ = ["StoriesServer", "create_app"]
