from __future__ import annotations

import pytest

from hlb_client.errors import (
    BackendError,
    CredentialError,
    CredentialStoreError,
    HLBError,
    LocalError,
    ReconcileError,
    ReconcileTimeoutError,
    ResourceFailedError,
    UnexpectedStateError,
)


def test_backend_error_keeps_envelope_verbatim() -> None:
    error = BackendError.from_body(400, {"code": 1003, "message": "subnet not found"})

    assert error.has_envelope
    assert error.status_code == 400
    assert error.code == 1003
    assert error.message == "subnet not found"
    assert str(error) == "API error 1003: subnet not found (HTTP 400)"


@pytest.mark.parametrize(
    "body",
    [
        None,
        "oops",
        [],
        {"message": "no code"},
        {"code": "1003", "message": "string code"},
        {"code": True, "message": "bool code"},
        {"code": 1003, "message": None},
    ],
)
def test_backend_error_without_envelope_is_generic(body: object) -> None:
    error = BackendError.from_body(502, body)

    assert not error.has_envelope
    assert error.code is None
    assert str(error) == "request failed with status 502"


def test_error_families_are_distinct() -> None:
    assert issubclass(CredentialError, LocalError)
    assert issubclass(CredentialStoreError, LocalError)
    assert not issubclass(LocalError, BackendError)
    assert not issubclass(ReconcileTimeoutError, ResourceFailedError)
    for cls in (BackendError, LocalError, ReconcileError):
        assert issubclass(cls, HLBError)


def test_credential_error_code() -> None:
    error = CredentialError("failed to assume role", "assume_role_failed")
    assert error.code == "assume_role_failed"
    assert str(error) == "failed to assume role"


def test_resource_failed_error_message() -> None:
    error = ResourceFailedError("lb-1", "quota exceeded")
    assert error.resource_id == "lb-1"
    assert error.detail == "quota exceeded"
    assert "quota exceeded" in str(error)


def test_resource_failed_error_without_detail() -> None:
    assert ResourceFailedError("lb-1", None).detail == "None"


def test_unexpected_state_and_timeout_messages() -> None:
    unexpected = UnexpectedStateError("lb-1", "unknown", {"active"})
    assert unexpected.state == "unknown"
    assert unexpected.target == ("active",)
    assert "'unknown'" in str(unexpected)

    timeout = ReconcileTimeoutError("lb-1", "updating", {"active"}, 90.0)
    assert timeout.last_state == "updating"
    assert timeout.timeout == 90.0
    assert "timed out after 90s" in str(timeout)
