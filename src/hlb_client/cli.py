"""``hlb`` command-line interface."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any, TypeVar

import click
from pydantic import BaseModel

from hlb_client import __version__
from hlb_client.client import HLBClient
from hlb_client.config import load_settings
from hlb_client.errors import HLBError
from hlb_client.logging_utils import configure_logging
from hlb_client.models import (
    Listener,
    ListenerCreate,
    ListenerUpdate,
    LoadBalancer,
    LoadBalancerCreate,
    LoadBalancerUpdate,
    Page,
)

T = TypeVar("T")

LOAD_BALANCER_COLUMNS = ("ID", "NAME", "DNS NAME", "STATE")
LISTENER_COLUMNS = ("ID", "PORT", "PROTOCOL", "TARGET GROUP")


@dataclasses.dataclass()
class CLIControls:
    """Options shared by all commands, plus test hooks impossible to pass via CLI."""
    profile: str | None = None
    region: str | None = None
    api_key: str | None = None
    output: str = "text"
    debug: bool = False
    client_factory: Callable[..., HLBClient] = HLBClient.from_settings

    def make_client(self) -> HLBClient:
        return self.client_factory(
            api_key=self.api_key,
            region=self.region,
            profile=self.profile,
            debug=self.debug,
        )


def _run(controls: CLIControls, action: Callable[[HLBClient], Awaitable[T]]) -> T:
    async def _main() -> T:
        async with controls.make_client() as client:
            return await action(client)

    try:
        return asyncio.run(_main())
    except HLBError as exc:
        raise click.ClickException(str(exc)) from exc


def _split_csv(values: Sequence[str]) -> list[str]:
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


def _read_input_json(path: str) -> dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise click.ClickException(f"failed to read input JSON file: {exc}") from exc
    except ValueError as exc:
        raise click.ClickException(f"failed to parse input JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise click.ClickException("input JSON must be an object")
    return data


def _build(model: type[BaseModel], data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValueError as exc:
        raise click.ClickException(f"invalid input: {exc}") from exc


def _table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> str:
    cells = [list(headers)] + [[str(value) for value in row] for row in rows]
    widths = [max(len(row[i]) for row in cells) for i in range(len(headers))]
    lines = ["  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
             for row in cells]
    return "\n".join(lines)


def _echo_json(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _lb_row(lb: LoadBalancer) -> tuple[str, ...]:
    return (lb.id, lb.name, lb.dns_name, lb.state)


def _listener_row(listener: Listener) -> tuple[str, ...]:
    return (listener.id, str(listener.port), listener.protocol, listener.target_group_arn)


def _echo_page(controls: CLIControls, page: Page[Any], columns: Sequence[str],
               row: Callable[[Any], Sequence[object]]) -> None:
    if controls.output == "json":
        _echo_json({"items": [_dump(item) for item in page.items], "nextToken": page.next_token})
        return
    click.echo(_table(columns, [row(item) for item in page.items]))
    if page.has_more:
        click.echo(f"\nUse --next-token {page.next_token} to get the next page")


def _echo_one(controls: CLIControls, item: BaseModel, columns: Sequence[str],
              row: Callable[[Any], Sequence[object]]) -> None:
    if controls.output == "json":
        _echo_json(_dump(item))
    else:
        click.echo(_table(columns, [row(item)]))


@click.group(name="hlb", context_settings=dict(auto_envvar_prefix="HLB"))
@click.version_option(version=__version__, prog_name="hlb")
@click.option("--profile", type=str, envvar="AWS_PROFILE", help="AWS profile to use.")
@click.option("--region", type=str, envvar=["AWS_REGION", "AWS_DEFAULT_REGION"],
              help="AWS region to use.")
@click.option("--api-key", type=str, envvar="HLB_API_KEY", help="HLB API key.")
@click.option("--output", type=click.Choice(["json", "text"]), default="text", show_default=True)
@click.option("--debug", is_flag=True, help="Log requests and responses.")
@click.pass_context
def main(
        ctx: click.Context,
        profile: str | None,
        region: str | None,
        api_key: str | None,
        output: str,
        debug: bool,
) -> None:
    """Manage HLB (Hero Load Balancer) load balancers and listeners."""
    try:
        load_settings()
    except RuntimeError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging("DEBUG" if debug else None)
    controls = ctx.ensure_object(CLIControls)
    controls.profile = profile
    controls.region = region
    controls.api_key = api_key
    controls.output = output
    controls.debug = debug


pass_controls = click.make_pass_decorator(CLIControls, ensure=True)


@main.command("list-load-balancers")
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--next-token", type=str, default=None)
@pass_controls
def list_load_balancers(controls: CLIControls, limit: int, next_token: str | None) -> None:
    """List load balancers, one page at a time."""
    page = _run(controls, lambda client: client.list_load_balancers(limit, next_token))
    _echo_page(controls, page, LOAD_BALANCER_COLUMNS, _lb_row)


@main.command("get-load-balancer")
@click.option("--id", "load_balancer_id", required=True)
@pass_controls
def get_load_balancer(controls: CLIControls, load_balancer_id: str) -> None:
    """Show one load balancer."""
    lb = _run(controls, lambda client: client.get_load_balancer(load_balancer_id))
    _echo_one(controls, lb, LOAD_BALANCER_COLUMNS, _lb_row)


@main.command("create-load-balancer")
@click.option("--input-json", type=click.Path(dir_okay=False), default=None,
              help="JSON file with the load balancer configuration.")
@click.option("-n", "--name", type=str)
@click.option("-i", "--internal", is_flag=True)
@click.option("-s", "--subnets", multiple=True, help="Subnet ids (repeatable or comma-separated).")
@click.option("-g", "--security-groups", multiple=True)
@click.option("-t", "--ip-address-type", default="ipv4", show_default=True,
              type=click.Choice(["ipv4", "dualstack", "dualstack-without-public-ipv4"]))
@click.option("--zone-id", type=str)
@click.option("--zone-name", type=str)
@click.option("--ec2-iam-role", default="lb-standard", show_default=True)
@click.option("--wait/--no-wait", default=True, show_default=True)
@click.option("--timeout", type=float, default=None, help="Seconds to wait for 'active'.")
@pass_controls
def create_load_balancer(
        controls: CLIControls,
        input_json: str | None,
        name: str | None,
        internal: bool,
        subnets: Sequence[str],
        security_groups: Sequence[str],
        ip_address_type: str,
        zone_id: str | None,
        zone_name: str | None,
        ec2_iam_role: str,
        wait: bool,
        timeout: float | None,
) -> None:
    """Create a load balancer and wait until it is active."""
    if input_json:
        spec = _build(LoadBalancerCreate, _read_input_json(input_json))
    else:
        missing = [flag for flag, value in (("--name", name), ("--subnets", subnets),
                                            ("--zone-id", zone_id), ("--zone-name", zone_name))
                   if not value]
        if missing:
            raise click.UsageError(f"Missing option(s): {', '.join(missing)} (or use --input-json)")
        spec = _build(LoadBalancerCreate, {
            "name": name,
            "internal": internal,
            "subnets": _split_csv(subnets),
            "security_groups": _split_csv(security_groups),
            "ip_address_type": ip_address_type,
            "zone_id": zone_id,
            "zone_name": zone_name,
            "ec2_iam_role": ec2_iam_role,
        })

    lb = _run(controls, lambda client: client.create_load_balancer(spec, wait=wait, timeout=timeout))
    if controls.output == "json":
        _echo_json(_dump(lb))
    else:
        click.echo(f"Created load balancer: {lb.name} (ID: {lb.id}, state: {lb.state})")


@main.command("update-load-balancer")
@click.option("--id", "load_balancer_id", required=True)
@click.option("--input-json", type=click.Path(dir_okay=False), default=None)
@click.option("--name", type=str, default=None)
@click.option("--wait/--no-wait", default=True, show_default=True)
@click.option("--timeout", type=float, default=None)
@pass_controls
def update_load_balancer(
        controls: CLIControls,
        load_balancer_id: str,
        input_json: str | None,
        name: str | None,
        wait: bool,
        timeout: float | None,
) -> None:
    """Update a load balancer and wait until it is active again."""
    if not input_json and name is None:
        raise click.UsageError("Nothing to update: pass --name or --input-json")
    data = _read_input_json(input_json) if input_json else {"name": name}
    changes = _build(LoadBalancerUpdate, data)
    lb = _run(controls, lambda client: client.update_load_balancer(
        load_balancer_id, changes, wait=wait, timeout=timeout))
    if controls.output == "json":
        _echo_json(_dump(lb))
    else:
        click.echo(f"Updated load balancer: {lb.name} (ID: {lb.id}, state: {lb.state})")


@main.command("delete-load-balancer")
@click.option("--id", "load_balancer_id", required=True)
@click.option("--wait/--no-wait", default=True, show_default=True)
@click.option("--timeout", type=float, default=None)
@pass_controls
def delete_load_balancer(
        controls: CLIControls,
        load_balancer_id: str,
        wait: bool,
        timeout: float | None,
) -> None:
    """Delete a load balancer and wait until it is gone."""
    _run(controls, lambda client: client.delete_load_balancer(
        load_balancer_id, wait=wait, timeout=timeout))
    status = "deleted" if wait else "deleting"
    if controls.output == "json":
        _echo_json({"id": load_balancer_id, "status": status})
    else:
        click.echo(f"Load balancer {load_balancer_id}: {status}")


@main.command("list-listeners")
@click.option("--load-balancer-id", required=True)
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--next-token", type=str, default=None)
@pass_controls
def list_listeners(
        controls: CLIControls,
        load_balancer_id: str,
        limit: int,
        next_token: str | None,
) -> None:
    """List the listeners of a load balancer."""
    page = _run(controls, lambda client: client.list_listeners(load_balancer_id, limit, next_token))
    _echo_page(controls, page, LISTENER_COLUMNS, _listener_row)


@main.command("get-listener")
@click.option("--load-balancer-id", required=True)
@click.option("--id", "listener_id", required=True)
@pass_controls
def get_listener(controls: CLIControls, load_balancer_id: str, listener_id: str) -> None:
    """Show one listener."""
    listener = _run(controls, lambda client: client.get_listener(load_balancer_id, listener_id))
    _echo_one(controls, listener, LISTENER_COLUMNS, _listener_row)


def listener_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Listener fields shared by create and update."""
    for option in reversed([
        click.option("--input-json", type=click.Path(dir_okay=False), default=None),
        click.option("--port", type=int, default=None),
        click.option("--protocol", type=click.Choice(["HTTP", "HTTPS", "UDP"]), default=None),
        click.option("--target-group-arn", type=str, default=None),
        click.option("--certificate-secrets-name", type=str, default=None),
        click.option("--alpn-policy", default=None, type=click.Choice(
            ["HTTP1Only", "HTTP2Only", "HTTP2Optional", "HTTP2Preferred", "None"])),
        click.option("--overprovisioning-factor", type=float, default=None),
        click.option("--enable-deletion-protection", type=bool, default=None),
    ]):
        fn = option(fn)
    return fn


def _listener_fields(input_json: str | None, **flags: Any) -> dict[str, Any]:
    if input_json:
        return _read_input_json(input_json)
    return {key: value for key, value in flags.items() if value is not None}


@main.command("create-listener")
@click.option("--load-balancer-id", required=True)
@listener_options
@pass_controls
def create_listener(controls: CLIControls, load_balancer_id: str,
                    input_json: str | None, **flags: Any) -> None:
    """Attach a listener to a load balancer."""
    spec = _build(ListenerCreate, _listener_fields(input_json, **flags))
    listener = _run(controls, lambda client: client.create_listener(load_balancer_id, spec))
    if controls.output == "json":
        _echo_json(_dump(listener))
    else:
        click.echo(f"Created listener: {listener.id} ({listener.protocol}:{listener.port})")


@main.command("update-listener")
@click.option("--load-balancer-id", required=True)
@click.option("--id", "listener_id", required=True)
@listener_options
@pass_controls
def update_listener(controls: CLIControls, load_balancer_id: str, listener_id: str,
                    input_json: str | None, **flags: Any) -> None:
    """Update a listener."""
    fields = _listener_fields(input_json, **flags)
    if not fields:
        raise click.UsageError("Nothing to update: pass listener options or --input-json")
    changes = _build(ListenerUpdate, fields)
    listener = _run(controls, lambda client: client.update_listener(
        load_balancer_id, listener_id, changes))
    if controls.output == "json":
        _echo_json(_dump(listener))
    else:
        click.echo(f"Updated listener: {listener.id} ({listener.protocol}:{listener.port})")


@main.command("delete-listener")
@click.option("--load-balancer-id", required=True)
@click.option("--id", "listener_id", required=True)
@pass_controls
def delete_listener(controls: CLIControls, load_balancer_id: str, listener_id: str) -> None:
    """Delete a listener."""
    _run(controls, lambda client: client.delete_listener(load_balancer_id, listener_id))
    if controls.output == "json":
        _echo_json({"id": listener_id, "status": "deleted"})
    else:
        click.echo(f"Deleted listener: {listener_id}")
