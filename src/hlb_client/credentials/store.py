"""Persistent storage of signed credential headers.

The file is an INI document, one section per owner key (the HLB API key)::

    [<api key>]
    account_id = 123456789012
    eu-west-1_x_sts_gci_headers = Action=GetCallerIdentity&...
    eu-west-1_expiry = 2026-10-19T12:15:00+00:00
    eu-west-1_endpoint = hlb.eu-west-1.aws.zonehero.cloud

Header values are URL-encoded query strings full of ``%`` characters, so the
parser is used without interpolation.
"""

from __future__ import annotations

import configparser
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from hlb_client.errors import CredentialStoreError
from hlb_client.utils.masking import mask_secret
from hlb_client.utils.time import ensure_utc

logger = logging.getLogger(__name__)

_DIR_MODE = 0o700
_FILE_MODE = 0o600

ACCOUNT_ID_KEY = "account_id"

_path_locks: dict[Path, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _path_locks_guard:
        lock = _path_locks.get(path)
        if lock is None:
            lock = _path_locks[path] = threading.RLock()
        return lock


def header_key(region: str) -> str:
    return f"{region}_x_sts_gci_headers"


def expiry_key(region: str) -> str:
    return f"{region}_expiry"


def endpoint_key(region: str) -> str:
    return f"{region}_endpoint"


@dataclass(frozen=True)
class CredentialRecord:
    """A signed header for one (owner key, region) pair."""

    owner_key: str
    region: str
    header: str
    expiry: datetime
    account_id: str
    endpoint: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "expiry", ensure_utc(self.expiry))

    def is_valid(self, now: datetime) -> bool:
        return ensure_utc(now) < self.expiry

    def __repr__(self) -> str:
        return (
            f"CredentialRecord(owner_key={mask_secret(self.owner_key)}, "
            f"region={self.region!r}, account_id={self.account_id!r}, "
            f"endpoint={self.endpoint!r}, expiry={self.expiry.isoformat()})"
        )


def _new_parser() -> configparser.RawConfigParser:
    parser = configparser.RawConfigParser(default_section="__hlb_defaults__")
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    return parser


class CredentialStore:
    """Loads and saves :class:`CredentialRecord` objects in a local INI file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path).expanduser()
        self._lock = _lock_for(self._path.resolve())

    @property
    def path(self) -> Path:
        return self._path

    def load(self, owner_key: str, region: str) -> CredentialRecord | None:
        """Return the stored record, or ``None`` when nothing usable is stored.

        A missing, unreadable-as-INI or incomplete file is not an error.
        """
        with self._lock:
            parser = self._read()
        if parser is None or not parser.has_section(owner_key):
            return None

        section = parser[owner_key]
        account_id = section.get(ACCOUNT_ID_KEY, "").strip()
        header = section.get(header_key(region), "").strip()
        expiry_raw = section.get(expiry_key(region), "").strip()
        endpoint = section.get(endpoint_key(region), "").strip()
        if not account_id or not header or not expiry_raw or not endpoint:
            logger.debug(
                "Incomplete cached credentials for %s in %s", mask_secret(owner_key), region
            )
            return None

        try:
            expiry = datetime.fromisoformat(expiry_raw)
        except ValueError:
            logger.warning(
                "Ignoring cached credentials for %s in %s: bad expiry %r",
                mask_secret(owner_key),
                region,
                expiry_raw,
            )
            return None

        return CredentialRecord(
            owner_key=owner_key,
            region=region,
            header=header,
            expiry=expiry,
            account_id=account_id,
            endpoint=endpoint,
        )

    def save(self, record: CredentialRecord) -> None:
        """Write ``record`` into the owner's section, keeping everything else."""
        with self._lock:
            parser = self._read(strict=True)
            if parser is None:
                parser = _new_parser()
            if not parser.has_section(record.owner_key):
                parser.add_section(record.owner_key)

            section = parser[record.owner_key]
            section[ACCOUNT_ID_KEY] = record.account_id
            section[header_key(record.region)] = record.header
            section[expiry_key(record.region)] = record.expiry.isoformat()
            section[endpoint_key(record.region)] = record.endpoint

            self._write(parser)
        logger.debug(
            "Saved credentials for %s in %s (expires %s)",
            mask_secret(record.owner_key),
            record.region,
            record.expiry.isoformat(),
        )

    def _read(self, *, strict: bool = False) -> configparser.RawConfigParser | None:
        """Parse the file; ``None`` if it is missing or corrupt.

        An unreadable file is ``None`` too, unless ``strict``: saving over it
        would lose every other section, so writers get an error instead.
        """
        parser = _new_parser()
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                parser.read_file(handle)
        except FileNotFoundError:
            return None
        except (configparser.Error, UnicodeDecodeError) as exc:
            logger.warning("Ignoring corrupt credentials file %s: %s", self._path, exc)
            return None
        except OSError as exc:
            if strict:
                raise CredentialStoreError(
                    f"failed to read credentials file {self._path}: {exc}"
                ) from exc
            logger.warning("Cannot read credentials file %s: %s", self._path, exc)
            return None
        return parser

    def _ensure_dir(self) -> None:
        directory = self._path.parent
        try:
            directory.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
        except OSError as exc:
            raise CredentialStoreError(
                f"failed to create credentials directory {directory}: {exc}"
            ) from exc

    def _write(self, parser: configparser.RawConfigParser) -> None:
        self._ensure_dir()
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                parser.write(handle)
            os.chmod(tmp_name, _FILE_MODE)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise CredentialStoreError(
                f"failed to save credentials file {self._path}: {exc}"
            ) from exc
