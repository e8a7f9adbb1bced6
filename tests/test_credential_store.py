"""Tests for the on-disk credential store."""

from __future__ import annotations

import configparser
import os
import stat
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from hlb_client.credentials.store import (
    CredentialRecord,
    CredentialStore,
    endpoint_key,
    expiry_key,
    header_key,
)
from hlb_client.errors import CredentialStoreError

HEADER = "Action=GetCallerIdentity&Version=2011-06-15&X-Amz-Credential=ASIA%2F20261019%2Fus-east-1"


def _record(
    owner_key: str = "api-key-1",
    region: str = "us-east-1",
    header: str = HEADER,
    expiry: datetime | None = None,
) -> CredentialRecord:
    return CredentialRecord(
        owner_key=owner_key,
        region=region,
        header=header,
        expiry=expiry or datetime(2026, 10, 19, 12, 15, 0, 123456, tzinfo=timezone.utc),
        account_id="123456789012",
        endpoint="hlb.us-east-1.aws.zonehero.cloud",
    )


def test_save_then_load_round_trips_all_fields(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "credentials")
    record = _record()

    store.save(record)
    loaded = store.load(record.owner_key, record.region)

    assert loaded == record


def test_naive_expiry_is_treated_as_utc() -> None:
    record = _record(expiry=datetime(2026, 10, 19, 12, 0, 0))
    assert record.expiry.tzinfo == timezone.utc


def test_is_valid_is_strict_before_expiry() -> None:
    record = _record()
    assert record.is_valid(record.expiry - timedelta(microseconds=1))
    assert not record.is_valid(record.expiry)
    assert not record.is_valid(record.expiry + timedelta(seconds=1))


def test_repr_masks_owner_key_and_header() -> None:
    text = repr(_record(owner_key="very-secret-api-key"))
    assert "very-secret-api-key" not in text
    assert HEADER not in text


def test_load_missing_file_is_absent(tmp_path: Path) -> None:
    assert CredentialStore(tmp_path / "nope" / "credentials").load("k", "us-east-1") is None


def test_load_unknown_owner_is_absent(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "credentials")
    store.save(_record(owner_key="a"))
    assert store.load("b", "us-east-1") is None
    assert store.load("a", "eu-west-1") is None


def test_load_corrupt_file_is_absent(tmp_path: Path) -> None:
    path = tmp_path / "credentials"
    path.write_text("this is = not [an ini\nfile", encoding="utf-8")
    assert CredentialStore(path).load("k", "us-east-1") is None


def test_load_incomplete_section_is_absent(tmp_path: Path) -> None:
    path = tmp_path / "credentials"
    path.write_text(
        f"[k]\naccount_id = 123456789012\n{header_key('us-east-1')} = abc\n",
        encoding="utf-8",
    )
    assert CredentialStore(path).load("k", "us-east-1") is None


def test_load_bad_expiry_is_absent(tmp_path: Path) -> None:
    path = tmp_path / "credentials"
    path.write_text(
        "[k]\n"
        "account_id = 123456789012\n"
        f"{header_key('us-east-1')} = abc\n"
        f"{expiry_key('us-east-1')} = tomorrow\n"
        f"{endpoint_key('us-east-1')} = hlb.example\n",
        encoding="utf-8",
    )
    assert CredentialStore(path).load("k", "us-east-1") is None


def test_save_creates_private_directory_and_file(tmp_path: Path) -> None:
    path = tmp_path / "hlb" / "credentials"
    CredentialStore(path).save(_record())

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert stat.S_IMODE(os.stat(path.parent).st_mode) == 0o700


def test_save_keeps_other_owners_and_regions(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "credentials")
    first = _record(owner_key="a", region="us-east-1")
    second = _record(owner_key="a", region="eu-west-1", header="Action=eu")
    third = _record(owner_key="b", region="us-east-1", header="Action=b")

    store.save(first)
    store.save(second)
    store.save(third)

    assert store.load("a", "us-east-1") == first
    assert store.load("a", "eu-west-1") == second
    assert store.load("b", "us-east-1") == third


def test_save_replaces_previous_record(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "credentials")
    store.save(_record(header="old"))
    newer = _record(header="new", expiry=datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc))

    store.save(newer)

    assert store.load(newer.owner_key, newer.region) == newer


def test_save_preserves_percent_signs(tmp_path: Path) -> None:
    path = tmp_path / "credentials"
    CredentialStore(path).save(_record())

    parser = configparser.RawConfigParser()
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    parser.read(path)
    assert parser["api-key-1"][header_key("us-east-1")] == HEADER


def test_save_rewrites_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "credentials"
    path.write_text("garbage without a section\n", encoding="utf-8")
    store = CredentialStore(path)
    record = _record()

    store.save(record)

    assert store.load(record.owner_key, record.region) == record


def test_save_leaves_no_temporary_files(tmp_path: Path) -> None:
    CredentialStore(tmp_path / "credentials").save(_record())
    assert sorted(p.name for p in tmp_path.iterdir()) == ["credentials"]


def test_save_failure_raises_store_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = CredentialStore(tmp_path / "credentials")

    def _fail(*_: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr("hlb_client.credentials.store.os.replace", _fail)

    with pytest.raises(CredentialStoreError, match="disk full"):
        store.save(_record())
    assert list(tmp_path.iterdir()) == []


def test_save_directory_failure_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(CredentialStoreError, match="credentials directory"):
        CredentialStore(blocker / "credentials").save(_record())


def test_save_refuses_to_replace_unreadable_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "credentials"
    store = CredentialStore(path)
    store.save(_record(owner_key="api-key-1"))
    before = path.read_text(encoding="utf-8")
    real_open = Path.open

    def _open(self: Path, *args: object, **kwargs: object):
        if self == path:
            raise PermissionError(13, "Permission denied")
        return real_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", _open)

    assert store.load("api-key-1", "us-east-1") is None
    with pytest.raises(CredentialStoreError, match="failed to read credentials file"):
        store.save(_record(owner_key="api-key-2"))

    monkeypatch.undo()
    assert path.read_text(encoding="utf-8") == before
    assert store.load("api-key-1", "us-east-1") == _record(owner_key="api-key-1")
