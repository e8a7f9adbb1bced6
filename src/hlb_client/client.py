"""High-level client for HLB load balancers and listeners."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from datetime import timedelta
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from hlb_client.config import Settings, expand_path, load_settings
from hlb_client.credentials.cache import CredentialCacheManager
from hlb_client.credentials.signer import STSHeaderSigner
from hlb_client.credentials.store import CredentialStore
from hlb_client.errors import CredentialError, LocalError
from hlb_client.models import (
    Listener,
    ListenerCreate,
    ListenerUpdate,
    LoadBalancer,
    LoadBalancerCreate,
    LoadBalancerUpdate,
    Page,
)
from hlb_client.reconciler import ResourceReconciler
from hlb_client.states import ResourceState
from hlb_client.transport import RetryingTransport
from hlb_client.utils.masking import mask_secret

logger = logging.getLogger(__name__)

DEFAULT_HOSTNAME = "hlb.{region}.{partition}.zonehero.cloud"
DEFAULT_BASE_URL = "https://{hostname}/v1"
DEFAULT_PAGE_SIZE = 20

M = TypeVar("M", bound=BaseModel)


def default_hostname(region: str, partition: str = "aws") -> str:
    return DEFAULT_HOSTNAME.format(region=region, partition=partition)


def _segment(value: str) -> str:
    return quote(value, safe="")


def _decode(model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise LocalError(f"failed to decode response: {exc}") from exc


def _require_identity(api_key: str | None, region: str | None) -> None:
    if not api_key:
        raise CredentialError(
            "HLB API key is required; pass api_key or set HLB_API_KEY", "missing_api_key"
        )
    if not region:
        raise CredentialError(
            "AWS region is required; pass region or set AWS_REGION", "missing_region"
        )


def _coerce_input(model: type[M], value: M | dict[str, Any]) -> M:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise LocalError(f"invalid {model.__name__} input: {exc}") from exc


class HLBClient:
    """Async client for one API key, AWS identity and region.

    Create, update and delete operations on load balancers block until the
    load balancer settles (``wait=False`` returns the initial response).
    Listener bodies carry no lifecycle state, so listener mutations return
    as soon as the control plane accepts them.

    A caller-supplied ``http_client`` is used as is and left open on close.
    """

    def __init__(
        self,
        api_key: str,
        region: str,
        credentials: CredentialCacheManager,
        *,
        settings: Settings | None = None,
        transport: RetryingTransport | None = None,
        reconciler: ResourceReconciler | None = None,
        http_client: httpx.AsyncClient | None = None,
        debug: bool = False,
    ) -> None:
        _require_identity(api_key, region)
        self._settings = settings or Settings()
        self._api_key = api_key
        self._region = region
        self._credentials = credentials
        self._hostname = self._settings.hlb.endpoint_hostname or default_hostname(
            region, self._settings.hlb.partition
        )
        transport_settings = self._settings.transport
        self._transport = transport or RetryingTransport(
            DEFAULT_BASE_URL.format(hostname=self._hostname),
            api_key,
            self._signed_header,
            max_retries=transport_settings.max_retries,
            wait_min=transport_settings.retry_wait_min_seconds,
            wait_max=transport_settings.retry_wait_max_seconds,
            timeout=transport_settings.request_timeout_seconds,
            client=http_client,
            debug=debug,
        )
        self._reconciler = reconciler or ResourceReconciler(
            poll_interval_min=self._settings.reconcile.poll_interval_min_seconds,
            poll_interval_max=self._settings.reconcile.poll_interval_max_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        api_key: str | None = None,
        region: str | None = None,
        profile: str | None = None,
        debug: bool = False,
    ) -> "HLBClient":
        """Build a client with STS signing and the on-disk credential cache."""
        settings = settings or load_settings()
        api_key = api_key or settings.hlb.api_key
        region = region or settings.aws.region
        _require_identity(api_key, region)

        signer = STSHeaderSigner(
            region,
            profile=profile or settings.aws.profile,
            partition=settings.hlb.partition,
            role_session_name=settings.credentials.role_session_name,
            presign_expires_seconds=settings.credentials.validity_seconds,
        )
        store = CredentialStore(expand_path(settings.credentials.path))
        credentials = CredentialCacheManager(
            store, signer, validity=timedelta(seconds=settings.credentials.validity_seconds)
        )
        logger.debug(
            "HLB client for key %s in %s (%s)", mask_secret(api_key), region, settings.hlb.partition
        )
        return cls(api_key, region, credentials, settings=settings, debug=debug)

    @property
    def region(self) -> str:
        return self._region

    @property
    def hostname(self) -> str:
        return self._hostname

    @property
    def transport(self) -> RetryingTransport:
        return self._transport

    async def account_id(self) -> str:
        return await self._credentials.account_id()

    async def _signed_header(self) -> str:
        return await self._credentials.get_header(self._api_key, self._region, self._hostname)

    async def __aenter__(self) -> "HLBClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def _load_balancers_path(self) -> str:
        account_id = await self._credentials.account_id()
        return f"/aws_account/{_segment(account_id)}/load-balancers"

    async def _load_balancer_path(self, load_balancer_id: str) -> str:
        return f"{await self._load_balancers_path()}/{_segment(load_balancer_id)}"

    async def _listeners_path(self, load_balancer_id: str) -> str:
        return f"{await self._load_balancer_path(load_balancer_id)}/listeners"

    async def _listener_path(self, load_balancer_id: str, listener_id: str) -> str:
        return f"{await self._listeners_path(load_balancer_id)}/{_segment(listener_id)}"

    # Load balancers

    async def list_load_balancers(
        self, limit: int = DEFAULT_PAGE_SIZE, next_token: str | None = None
    ) -> Page[LoadBalancer]:
        data = await self._transport.send_json(
            "GET",
            await self._load_balancers_path(),
            params={"limit": limit, "nextToken": next_token or None},
        )
        return _decode(Page[LoadBalancer], data)

    async def iter_load_balancers(
        self, page_size: int = DEFAULT_PAGE_SIZE
    ) -> AsyncIterator[LoadBalancer]:
        next_token: str | None = None
        while True:
            page = await self.list_load_balancers(limit=page_size, next_token=next_token)
            for item in page.items:
                yield item
            if not page.has_more:
                return
            next_token = page.next_token

    async def get_load_balancer(self, load_balancer_id: str) -> LoadBalancer:
        data = await self._transport.send_json(
            "GET", await self._load_balancer_path(load_balancer_id)
        )
        return _decode(LoadBalancer, data)

    async def wait_for_load_balancer_state(
        self,
        load_balancer_id: str,
        target: str | ResourceState | Iterable[str | ResourceState],
        timeout: float,
    ) -> LoadBalancer:
        return await self._reconciler.await_state(
            self.get_load_balancer, load_balancer_id, target, timeout
        )

    async def create_load_balancer(
        self,
        spec: LoadBalancerCreate | dict[str, Any],
        *,
        wait: bool = True,
        timeout: float | None = None,
    ) -> LoadBalancer:
        body = _coerce_input(LoadBalancerCreate, spec)
        data = await self._transport.send_json("POST", await self._load_balancers_path(), body)
        created = _decode(LoadBalancer, data)
        logger.info("Load balancer %s created (state=%s)", created.id, created.state)
        if not wait:
            return created
        return await self.wait_for_load_balancer_state(
            created.id,
            {ResourceState.ACTIVE},
            timeout if timeout is not None else self._settings.reconcile.create_timeout_seconds,
        )

    async def update_load_balancer(
        self,
        load_balancer_id: str,
        changes: LoadBalancerUpdate | dict[str, Any],
        *,
        wait: bool = True,
        timeout: float | None = None,
    ) -> LoadBalancer:
        body = _coerce_input(LoadBalancerUpdate, changes)
        data = await self._transport.send_json(
            "PUT", await self._load_balancer_path(load_balancer_id), body
        )
        updated = _decode(LoadBalancer, data)
        logger.info("Load balancer %s update accepted (state=%s)", load_balancer_id, updated.state)
        if not wait:
            return updated
        return await self.wait_for_load_balancer_state(
            load_balancer_id,
            {ResourceState.ACTIVE},
            timeout if timeout is not None else self._settings.reconcile.update_timeout_seconds,
        )

    async def delete_load_balancer(
        self,
        load_balancer_id: str,
        *,
        wait: bool = True,
        timeout: float | None = None,
    ) -> LoadBalancer | None:
        """Delete a load balancer; returns its final (``deleted``) view when waiting."""
        await self._transport.send("DELETE", await self._load_balancer_path(load_balancer_id))
        logger.info("Load balancer %s deletion accepted", load_balancer_id)
        if not wait:
            return None
        return await self.wait_for_load_balancer_state(
            load_balancer_id,
            {ResourceState.DELETED},
            timeout if timeout is not None else self._settings.reconcile.delete_timeout_seconds,
        )

    # Listeners

    async def list_listeners(
        self,
        load_balancer_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        next_token: str | None = None,
    ) -> Page[Listener]:
        data = await self._transport.send_json(
            "GET",
            await self._listeners_path(load_balancer_id),
            params={"limit": limit, "nextToken": next_token or None},
        )
        return _decode(Page[Listener], data)

    async def iter_listeners(
        self, load_balancer_id: str, page_size: int = DEFAULT_PAGE_SIZE
    ) -> AsyncIterator[Listener]:
        next_token: str | None = None
        while True:
            page = await self.list_listeners(
                load_balancer_id, limit=page_size, next_token=next_token
            )
            for item in page.items:
                yield item
            if not page.has_more:
                return
            next_token = page.next_token

    async def get_listener(self, load_balancer_id: str, listener_id: str) -> Listener:
        data = await self._transport.send_json(
            "GET", await self._listener_path(load_balancer_id, listener_id)
        )
        return _decode(Listener, data)

    async def create_listener(
        self, load_balancer_id: str, spec: ListenerCreate | dict[str, Any]
    ) -> Listener:
        body = _coerce_input(ListenerCreate, spec)
        data = await self._transport.send_json(
            "POST", await self._listeners_path(load_balancer_id), body
        )
        return _decode(Listener, data)

    async def update_listener(
        self,
        load_balancer_id: str,
        listener_id: str,
        changes: ListenerUpdate | dict[str, Any],
    ) -> Listener:
        body = _coerce_input(ListenerUpdate, changes)
        data = await self._transport.send_json(
            "PUT", await self._listener_path(load_balancer_id, listener_id), body
        )
        return _decode(Listener, data)

    async def delete_listener(self, load_balancer_id: str, listener_id: str) -> None:
        await self._transport.send("DELETE", await self._listener_path(load_balancer_id, listener_id))
        logger.info("Listener %s of %s deleted", listener_id, load_balancer_id)
