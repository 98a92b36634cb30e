"""HTTP server exposing the submission API."""

from nudge.server.app import NudgeServer, create_app

__all__ = ["NudgeServer", "create_app"]
