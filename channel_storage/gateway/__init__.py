"""JSON-RPC gateway serving every configured channel behind one endpoint."""

from .server import GatewayService
from .server import create_app
from .server import main

__all__ = ["GatewayService", "create_app", "main"]
