"""HTTP routers driving the RCON manager."""

from .router import configure_command_router
from .server_router import configure_server_router

__all__ = ["configure_command_router", "configure_server_router"]
