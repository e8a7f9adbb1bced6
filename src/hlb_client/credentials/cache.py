"""Signed-header cache with persisted, lock-guarded refresh."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from hlb_client.credentials.store import CredentialRecord, CredentialStore
from hlb_client.utils.masking import mask_secret
from hlb_client.utils.time import utc_now

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY = timedelta(minutes=15)


class HeaderSigner(Protocol):
    async def get_account_id(self) -> str: ...

    async def generate(self, account_id: str, endpoint: str) -> str: ...


@dataclass(frozen=True)
class CacheKey:
    owner_key: str
    region: str


class CredentialCacheManager:
    """Returns a currently valid signed header, regenerating it when needed.

    One instance is meant to live for the lifetime of a client. The
    load-check-regenerate-save sequence runs under a per-key lock, so
    concurrent callers hitting an expired entry trigger a single
    regeneration.
    """

    def __init__(
        self,
        store: CredentialStore,
        signer: HeaderSigner,
        *,
        validity: timedelta = DEFAULT_VALIDITY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._signer = signer
        self._validity = validity
        self._clock = clock
        self._records: dict[CacheKey, CredentialRecord] = {}
        self._key_locks: dict[CacheKey, asyncio.Lock] = {}
        self._account_id: str | None = None
        self._account_lock = asyncio.Lock()

    async def account_id(self) -> str:
        """Resolve (once) the account id of the caller's AWS identity."""
        if self._account_id is not None:
            return self._account_id
        async with self._account_lock:
            if self._account_id is None:
                self._account_id = await self._signer.get_account_id()
                logger.info("Resolved AWS account %s", self._account_id)
            return self._account_id

    def _lock_for(self, key: CacheKey) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = self._key_locks[key] = asyncio.Lock()
        return lock

    def _usable(self, record: CredentialRecord | None, account_id: str, endpoint: str) -> bool:
        return (
            record is not None
            and record.account_id == account_id
            and record.endpoint == endpoint
            and record.is_valid(self._clock())
        )

    async def get_header(self, owner_key: str, region: str, endpoint: str) -> str:
        """Return a signed header for ``endpoint`` that has not yet expired."""
        account_id = await self.account_id()
        key = CacheKey(owner_key=owner_key, region=region)

        async with self._lock_for(key):
            record = self._records.get(key)
            if self._usable(record, account_id, endpoint):
                return record.header  # type: ignore[union-attr]

            if record is None:
                stored = await asyncio.to_thread(self._store.load, owner_key, region)
                if self._usable(stored, account_id, endpoint):
                    logger.debug(
                        "Using stored credentials for %s in %s", mask_secret(owner_key), region
                    )
                    self._records[key] = stored  # type: ignore[assignment]
                    return stored.header  # type: ignore[union-attr]

            record = await self._regenerate(owner_key, region, endpoint, account_id)
            self._records[key] = record
            return record.header

    async def _regenerate(
        self, owner_key: str, region: str, endpoint: str, account_id: str
    ) -> CredentialRecord:
        logger.info("Generating signed credentials for %s (endpoint=%s)", region, endpoint)
        generated_at = self._clock()
        header = await self._signer.generate(account_id, endpoint)
        record = CredentialRecord(
            owner_key=owner_key,
            region=region,
            header=header,
            expiry=generated_at + self._validity,
            account_id=account_id,
            endpoint=endpoint,
        )
        await asyncio.to_thread(self._store.save, record)
        return record

    def invalidate(self, owner_key: str, region: str) -> None:
        """Forget the in-memory record; the next call consults the store again."""
        self._records.pop(CacheKey(owner_key=owner_key, region=region), None)
