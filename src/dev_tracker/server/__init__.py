"""FastAPI server exposing the tracker over REST and a websocket event stream."""

from .api import build_engine, create_app
from .events import EventHub

__all__ = ["EventHub", "build_engine", "create_app"]
