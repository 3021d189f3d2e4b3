from .session_api import SessionAPIClient

__all__ = ["SessionAPIClient"]
