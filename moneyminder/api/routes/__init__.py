"""HTTP routers."""

from moneyminder.api.routes import auth, chat, finance, profile

ROUTERS = [
    auth.router,
    profile.router,
    finance.router,
    chat.router,
]

__all__ = ["ROUTERS"]
