"""Route modules for the relay daemon.

This package contains the FastAPI routers split by domain:
- health: Health checks and status endpoints
- tunnel: Start, stop and inspect the public tunnel
- chat: Streaming chat with assistant sessions
- sessions: List and close registered sessions
"""

from agent_relay.daemon.routes.chat import router as chat_router
from agent_relay.daemon.routes.health import router as health_router
from agent_relay.daemon.routes.sessions import router as sessions_router
from agent_relay.daemon.routes.tunnel import router as tunnel_router

__all__ = [
    "chat_router",
    "health_router",
    "sessions_router",
    "tunnel_router",
]
