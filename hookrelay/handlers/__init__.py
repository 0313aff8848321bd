from hookrelay.handlers.activity import register_activity_handlers

__all__ = ["register_activity_handlers"]
