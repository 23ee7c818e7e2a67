"""Core sync services."""

from .codec import decode_document, decode_value, encode_document, encode_value, normalize_value
from .locks import KeyedLock
from .token_provider import AccessToken, AccessTokenProvider, ServiceAccountCredential

__all__ = [
    "decode_document",
    "decode_value",
    "encode_document",
    "encode_value",
    "normalize_value",
    "KeyedLock",
    "AccessToken",
    "AccessTokenProvider",
    "ServiceAccountCredential",
]
