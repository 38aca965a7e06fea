"""Web dashboard for ParkRelief.

JSON API used by the browser front end to drive the session timer and
read the shared event log.
"""

from .app import create_app

__all__ = ["create_app"]
