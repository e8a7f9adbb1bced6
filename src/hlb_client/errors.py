"""Error hierarchy of the HLB client.

Every public operation either returns a fully decoded resource or raises one
of the errors below. They fall into three families that callers can tell
apart with ``except`` clauses:

* :class:`BackendError` -- the control plane answered with a non-2xx status.
  The ``{code, message}`` envelope from the response body is preserved
  verbatim when the body carries one.
* :class:`LocalError` -- something failed on this side of the wire: the
  network, (de)serialization, credential generation or the credential file.
* :class:`ReconcileError` -- the request was accepted but the resource did
  not converge: it failed, reported an unknown state, or ran out of time.

Errors raised by underlying libraries (httpx, botocore, OS errors) are
chained as ``__cause__``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class HLBError(Exception):
    """Base class for all errors raised by this package."""


class BackendError(HLBError):
    """The control plane rejected a request."""

    def __init__(
        self,
        status_code: int,
        message: str | None = None,
        *,
        code: int | None = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message or f"request failed with status {status_code}"
        super().__init__(self.message)

    @property
    def has_envelope(self) -> bool:
        return self.code is not None

    @classmethod
    def from_body(cls, status_code: int, body: Any) -> "BackendError":
        """Build an error from a decoded response body.

        The envelope is only honoured when ``code`` is an integer and
        ``message`` a string; anything else yields the generic message.
        """
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message")
            if isinstance(code, int) and not isinstance(code, bool) and isinstance(message, str):
                return cls(status_code, message, code=code)
        return cls(status_code)

    def __str__(self) -> str:
        if self.has_envelope:
            return f"API error {self.code}: {self.message} (HTTP {self.status_code})"
        return self.message


class LocalError(HLBError):
    """A failure that originated in this process."""


class CredentialError(LocalError):
    """Signed credentials could not be obtained."""

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


class CredentialStoreError(LocalError):
    """The credential file could not be read or written."""


class ReconcileError(HLBError):
    """A resource did not reach the expected state."""

    def __init__(self, message: str, resource_id: str) -> None:
        super().__init__(message)
        self.resource_id = resource_id


class ResourceFailedError(ReconcileError):
    """The resource entered the ``failed`` state."""

    def __init__(self, resource_id: str, detail: str | None) -> None:
        self.detail = detail or "None"
        super().__init__(
            f"resource ({resource_id}) entered failed state, with message '{self.detail}'",
            resource_id,
        )


class UnexpectedStateError(ReconcileError):
    """The resource reported a state that is neither pending nor expected."""

    def __init__(self, resource_id: str, state: str, target: Iterable[str]) -> None:
        self.state = state
        self.target = tuple(sorted(target))
        super().__init__(
            f"resource ({resource_id}) entered unexpected state {state!r}, "
            f"expected one of {list(self.target)}",
            resource_id,
        )


class ReconcileTimeoutError(ReconcileError):
    """The resource was still transitioning when the timeout elapsed."""

    def __init__(
        self,
        resource_id: str,
        last_state: str | None,
        target: Iterable[str],
        timeout: float,
    ) -> None:
        self.last_state = last_state
        self.target = tuple(sorted(target))
        self.timeout = timeout
        super().__init__(
            f"timed out after {timeout:g}s waiting for resource ({resource_id}) to reach "
            f"{list(self.target)}; last observed state {last_state!r}",
            resource_id,
        )
