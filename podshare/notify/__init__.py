from .dispatcher import NotificationDispatcher, NotificationResult, find_inbox

__all__ = ["NotificationDispatcher", "NotificationResult", "find_inbox"]
