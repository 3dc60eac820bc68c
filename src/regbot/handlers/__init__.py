from regbot.handlers.relay import relay_router
from regbot.handlers.signups import signups_router

__all__ = ["relay_router", "signups_router"]
