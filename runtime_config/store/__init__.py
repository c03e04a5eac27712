from .live_store import LiveConfigStore

__all__ = ["LiveConfigStore"]
