"""api — FastAPI REST + WebSocket control surface."""
from .server import WSConnectionPool, create_app

__all__ = ["WSConnectionPool", "create_app"]
