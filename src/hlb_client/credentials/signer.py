"""Signed-header generation through AWS STS.

The control plane authenticates callers by replaying a presigned
``sts:GetCallerIdentity`` request on their behalf. The client therefore:

1. assumes the well-known HLB administrative role in the caller's account,
2. presigns ``GetCallerIdentity`` with the temporary role credentials, with
   the ``x-hlb-endpoint`` header included in the signature so the result is
   only valid for one control-plane hostname,
3. sends the presigned URL's query parameters as the header value.

Nothing here is retried; callers decide what to do with a
:class:`~hlb_client.errors.CredentialError`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from hlb_client.errors import CredentialError

logger = logging.getLogger(__name__)

ADMIN_ROLE_ARN = "arn:{partition}:iam::{account_id}:role/hlb/hlb-admin-users-role"
ENDPOINT_HEADER = "x-hlb-endpoint"
DEFAULT_SESSION_NAME = "HLBClientSession"
DEFAULT_PRESIGN_EXPIRES_SECONDS = 900

_STS_CONFIG = Config(connect_timeout=5, read_timeout=15, retries={"max_attempts": 2})

_ASSUME_ROLE_CODES = {
    "AccessDenied": "access_denied",
    "ExpiredToken": "token_expired",
    "ExpiredTokenException": "token_expired",
    "RegionDisabledException": "region_disabled",
    "MalformedPolicyDocument": "policy_error",
}


@dataclass(frozen=True)
class TemporaryCredentials:
    """Immutable temporary AWS credentials from STS."""

    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime
    assumed_role_arn: str

    def __repr__(self) -> str:
        return (
            f"TemporaryCredentials(access_key_id={self.access_key_id[:8]}***, "
            f"expiration={self.expiration.isoformat()})"
        )


def encode_presigned_query(url: str) -> str:
    """Re-encode the query of a presigned URL, sorted by parameter name."""
    try:
        parts = urlsplit(url)
        params = parse_qsl(parts.query, keep_blank_values=True, strict_parsing=True)
    except ValueError as exc:
        raise CredentialError(
            f"failed to parse presigned URL: {exc}", "invalid_presigned_url"
        ) from exc
    if not params:
        raise CredentialError("presigned URL carries no query parameters", "invalid_presigned_url")
    return urlencode(sorted(params))


class STSHeaderSigner:
    """Produces endpoint-bound signed headers for one AWS identity.

    Thread-safe: the base STS client is created once, lazily.
    """

    def __init__(
        self,
        region: str,
        *,
        profile: str | None = None,
        partition: str = "aws",
        role_session_name: str = DEFAULT_SESSION_NAME,
        presign_expires_seconds: int = DEFAULT_PRESIGN_EXPIRES_SECONDS,
        session_factory: Callable[..., Any] = boto3.Session,
    ) -> None:
        self._region = region
        self._profile = profile
        self._partition = partition
        self._role_session_name = role_session_name
        self._presign_expires_seconds = presign_expires_seconds
        self._session_factory = session_factory
        self._client: Any = None
        self._lock = threading.Lock()

    def role_arn(self, account_id: str) -> str:
        return ADMIN_ROLE_ARN.format(partition=self._partition, account_id=account_id)

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client

        with self._lock:
            if self._client is not None:
                return self._client

            session = self._session_factory(
                profile_name=self._profile,
                region_name=self._region,
            )
            self._client = session.client("sts", region_name=self._region, config=_STS_CONFIG)
            logger.info(
                "STS client initialized (region=%s, profile=%s)",
                self._region,
                self._profile or "default",
            )
            return self._client

    def _assumed_client(self, creds: TemporaryCredentials) -> Any:
        session = self._session_factory(
            aws_access_key_id=creds.access_key_id,
            aws_secret_access_key=creds.secret_access_key,
            aws_session_token=creds.session_token,
            region_name=self._region,
        )
        return session.client("sts", region_name=self._region, config=_STS_CONFIG)

    async def get_account_id(self) -> str:
        """Return the account id of the caller's AWS identity."""
        return await asyncio.to_thread(self._get_account_id_sync)

    async def generate(self, account_id: str, endpoint: str) -> str:
        """Return a signed header value bound to ``endpoint``.

        Args:
            account_id: Account whose HLB admin role is assumed.
            endpoint: Control-plane hostname the header is valid for.

        Raises:
            CredentialError: If role assumption, presigning or URL parsing fails.
        """
        return await asyncio.to_thread(self._generate_sync, account_id, endpoint)

    def _get_account_id_sync(self) -> str:
        try:
            response = self._get_client().get_caller_identity()
        except NoCredentialsError as exc:
            raise CredentialError(
                "no AWS credentials found; configure a profile or environment credentials",
                "no_credentials",
            ) from exc
        except (ClientError, BotoCoreError) as exc:
            raise CredentialError(
                f"error getting AWS account ID: {exc}", "identity_failed"
            ) from exc
        return response["Account"]

    def _generate_sync(self, account_id: str, endpoint: str) -> str:
        creds = self._assume_role_sync(account_id)
        url = self._presign_sync(creds, endpoint)
        return encode_presigned_query(url)

    def _assume_role_sync(self, account_id: str) -> TemporaryCredentials:
        role_arn = self.role_arn(account_id)
        try:
            response = self._get_client().assume_role(
                RoleArn=role_arn,
                RoleSessionName=self._role_session_name,
            )
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            error_message = exc.response.get("Error", {}).get("Message", str(exc))
            logger.warning(
                "AssumeRole failed: role=%s, error=%s: %s", role_arn, error_code, error_message
            )
            raise CredentialError(
                f"failed to assume role {role_arn}: {error_message}",
                _ASSUME_ROLE_CODES.get(error_code, "assume_role_failed"),
            ) from exc
        except NoCredentialsError as exc:
            raise CredentialError(
                "no AWS credentials found; configure a profile or environment credentials",
                "no_credentials",
            ) from exc
        except BotoCoreError as exc:
            raise CredentialError(
                f"failed to assume role {role_arn}: {exc}", "assume_role_failed"
            ) from exc

        creds = response["Credentials"]
        logger.debug("Assumed role %s", role_arn)
        return TemporaryCredentials(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds["SessionToken"],
            expiration=creds["Expiration"],
            assumed_role_arn=response.get("AssumedRoleUser", {}).get("Arn", role_arn),
        )

    def _presign_sync(self, creds: TemporaryCredentials, endpoint: str) -> str:
        client = self._assumed_client(creds)

        def _inject_endpoint_header(request: Any, **_: Any) -> None:
            request.headers[ENDPOINT_HEADER] = endpoint

        client.meta.events.register("before-sign.sts.GetCallerIdentity", _inject_endpoint_header)
        try:
            return client.generate_presigned_url(
                "get_caller_identity",
                Params={},
                ExpiresIn=self._presign_expires_seconds,
                HttpMethod="GET",
            )
        except (ClientError, BotoCoreError) as exc:
            raise CredentialError(f"failed to presign request: {exc}", "presign_failed") from exc
