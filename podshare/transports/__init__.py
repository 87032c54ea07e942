from .base import (
    StoreResponse, TokenPair, TokenProvider, StaticTokenProvider, SUCCESS_STATUSES
)
from .http_adapter import PodHttpClient

__all__ = [
    "StoreResponse", "TokenPair", "TokenProvider", "StaticTokenProvider",
    "SUCCESS_STATUSES", "PodHttpClient"
]
