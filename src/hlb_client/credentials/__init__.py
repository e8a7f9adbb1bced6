"""Signed-credential management: storage, generation and caching."""

from hlb_client.credentials.cache import CacheKey, CredentialCacheManager
from hlb_client.credentials.signer import STSHeaderSigner, TemporaryCredentials
from hlb_client.credentials.store import CredentialRecord, CredentialStore

__all__ = [
    "CacheKey",
    "CredentialCacheManager",
    "CredentialRecord",
    "CredentialStore",
    "STSHeaderSigner",
    "TemporaryCredentials",
]
