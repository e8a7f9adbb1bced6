"""Request and response bodies of the HLB control-plane API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

CROSS_AZ_POLICY_AVOID = "avoid"
CROSS_AZ_POLICY_FULL = "full"
CROSS_AZ_POLICY_OFF = "off"

EC2_IAM_ROLE_DEBUG = "lb-ssm"
EC2_IAM_ROLE_STANDARD = "lb-standard"

IP_ADDRESS_TYPE_V4_ONLY = "ipv4"
IP_ADDRESS_TYPE_DUALSTACK = "dualstack"
IP_ADDRESS_TYPE_V6_ONLY = "dualstack-without-public-ipv4"

CrossAZPolicy = Literal["avoid", "full", "off"]
IPAddressType = Literal["ipv4", "dualstack", "dualstack-without-public-ipv4"]
ListenerProtocol = Literal["HTTP", "HTTPS", "UDP"]
ALPNPolicy = Literal["HTTP1Only", "HTTP2Only", "HTTP2Optional", "HTTP2Preferred", "None"]

T = TypeVar("T")


def _ensure_list(v: Any) -> Any:
    """Convert None to an empty list, pass everything else through."""
    if v is None:
        return []
    return v


class APIModel(BaseModel):
    """camelCase on the wire, snake_case in Python; unknown fields ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_api(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AccessLogs(APIModel):
    bucket: str = ""
    enabled: bool = False
    prefix: str = ""


class LaunchConfig(APIModel):
    instance_type: str
    min_instance_count: int = Field(ge=0)
    max_instance_count: int = Field(ge=0)
    target_cpu_usage: int = Field(ge=0, le=100)

    @model_validator(mode="after")
    def _check_counts(self) -> "LaunchConfig":
        if self.min_instance_count > self.max_instance_count:
            raise ValueError("min_instance_count must not exceed max_instance_count")
        return self


class DeploymentStatus(APIModel):
    error_message: str | None = None
    metadata: str | None = None
    version: str | None = None


class LoadBalancer(APIModel):
    id: str
    name: str = ""
    account_id: str = ""
    state: str = ""
    dns_name: str = ""
    uri: str = ""
    zone_id: str = ""
    zone_name: str = ""
    internal: bool = False
    ip_address_type: str = ""
    subnets: list[str] = Field(default_factory=list)
    security_groups: list[str] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)
    ec2_iam_role: str = ""
    enable_cross_zone_load_balancing: str = ""
    enable_deletion_protection: bool = False
    enable_http2: bool = False
    client_keep_alive: int = 0
    connection_draining_timeout: int = 0
    idle_timeout: int = 0
    preferred_maintenance_window: str = ""
    preserve_host_header: bool = False
    xff_header_processing_mode: str = ""
    expires_at: int = 0
    access_logs: AccessLogs | None = None
    launch_config: LaunchConfig | None = None
    deployment_status: DeploymentStatus | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("subnets", "security_groups", mode="before")
    @classmethod
    def _validate_lists(cls, v: Any) -> Any:
        return _ensure_list(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _validate_tags(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def failure_detail(self) -> str | None:
        if self.deployment_status is None:
            return None
        return self.deployment_status.error_message or None


class LoadBalancerCreate(APIModel):
    name: str | None = None
    name_prefix: str | None = None
    subnets: list[str] = Field(min_length=1)
    security_groups: list[str] | None = None
    zone_id: str | None = None
    zone_name: str | None = None
    internal: bool = False
    ip_address_type: IPAddressType | None = None
    ec2_iam_role: str | None = None
    enable_cross_zone_load_balancing: CrossAZPolicy | None = None
    enable_deletion_protection: bool | None = None
    enable_http2: bool | None = None
    client_keep_alive: int | None = Field(default=None, ge=0)
    connection_draining_timeout: int | None = Field(default=None, ge=0)
    idle_timeout: int | None = Field(default=None, ge=0)
    preferred_maintenance_window: str | None = None
    preserve_host_header: bool | None = None
    xff_header_processing_mode: str | None = None
    access_logs: AccessLogs | None = None
    launch_config: LaunchConfig | None = None
    tags: dict[str, str] | None = None

    @model_validator(mode="after")
    def _check_name(self) -> "LoadBalancerCreate":
        if self.name and self.name_prefix:
            raise ValueError("name and name_prefix are mutually exclusive")
        return self


class LoadBalancerUpdate(APIModel):
    """Only fields that are set are sent."""

    name: str | None = None
    security_groups: list[str] | None = None
    ec2_iam_role: str | None = None
    enable_cross_zone_load_balancing: CrossAZPolicy | None = None
    enable_deletion_protection: bool | None = None
    enable_http2: bool | None = None
    client_keep_alive: int | None = Field(default=None, ge=0)
    connection_draining_timeout: int | None = Field(default=None, ge=0)
    idle_timeout: int | None = Field(default=None, ge=0)
    preferred_maintenance_window: str | None = None
    preserve_host_header: bool | None = None
    xff_header_processing_mode: str | None = None
    access_logs: AccessLogs | None = None
    launch_config: LaunchConfig | None = None
    tags: dict[str, str] | None = None


class Listener(APIModel):
    id: str
    load_balancer_id: str = ""
    port: int = 0
    protocol: str = ""
    target_group_arn: str = ""
    alpn_policy: str | None = None
    certificate_secrets_name: str | None = None
    enable_deletion_protection: bool = False
    overprovisioning_factor: float = 0.0
    uri: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ListenerCreate(APIModel):
    port: int = Field(ge=1, le=65535)
    protocol: ListenerProtocol
    target_group_arn: str = Field(min_length=1)
    alpn_policy: ALPNPolicy | None = None
    certificate_secrets_name: str | None = None
    enable_deletion_protection: bool = False
    overprovisioning_factor: float | None = Field(default=None, ge=1.0)

    @model_validator(mode="after")
    def _check_certificate(self) -> "ListenerCreate":
        if self.protocol == "HTTPS" and not self.certificate_secrets_name:
            raise ValueError("certificate_secrets_name is required for HTTPS listeners")
        return self


class ListenerUpdate(APIModel):
    port: int | None = Field(default=None, ge=1, le=65535)
    protocol: ListenerProtocol | None = None
    target_group_arn: str | None = None
    alpn_policy: ALPNPolicy | None = None
    certificate_secrets_name: str | None = None
    enable_deletion_protection: bool | None = None
    overprovisioning_factor: float | None = Field(default=None, ge=1.0)


class Page(APIModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    next_token: str | None = None

    @field_validator("items", mode="before")
    @classmethod
    def _validate_items(cls, v: Any) -> Any:
        return _ensure_list(v)

    @property
    def has_more(self) -> bool:
        return bool(self.next_token)
