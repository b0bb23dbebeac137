import json
import sys
from typing import NoReturn, Tuple

import click

from cbadmin import CBAdmin
from cbadmin.api.couchbaseserver import CouchbaseServer
from cbadmin.api.error import CBAdminError
from cbadmin.logging import LogLevel


def _fail(e: Exception) -> NoReturn:
    click.secho(f"ERROR: {e}", fg="red", err=True)
    sys.exit(1)


def _server(ctx: click.Context) -> CouchbaseServer:
    admin: CBAdmin = ctx.obj["admin"]
    index: int = ctx.obj["cluster"]
    if index < 0 or index >= len(admin.couchbase_servers):
        _fail(
            IndexError(
                f"Cluster index {index} out of range, "
                f"{len(admin.couchbase_servers)} configured"
            )
        )

    return admin.couchbase_servers[index]


@click.group()
@click.option(
    "--config",
    required=True,
    help="The path to the JSON configuration file",
    type=click.Path(exists=True),
    envvar="CBADMIN_CONFIG",
)
@click.option(
    "--log-level",
    help="The log level output for the run",
    type=click.Choice([level.value for level in LogLevel]),
    default=LogLevel.INFO.value,
)
@click.option(
    "--cluster",
    help="The index of the cluster in the configuration to operate on",
    type=int,
    default=0,
)
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str, cluster: int) -> None:
    """Administers the Couchbase Server clusters listed in a configuration file"""
    try:
        admin = CBAdmin(config, LogLevel(log_level))
    except (CBAdminError, TypeError, ValueError) as e:
        _fail(e)

    ctx.obj = {"admin": admin, "cluster": cluster}
    ctx.call_on_close(admin.close)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the raw node records")
@click.pass_context
def nodes(ctx: click.Context, as_json: bool) -> None:
    """Lists the members of the cluster"""
    try:
        members = _server(ctx).nodes()
    except CBAdminError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps([n.to_json() for n in members], indent=2))
        return

    for n in members:
        marker = "*" if n.this_node else " "
        click.echo(
            f"{marker} {n.hostname:<30} {n.otp_node:<30} "
            f"{n.cluster_membership:<16} {n.status}"
        )


@cli.command("remove-nodes")
@click.argument("addresses", nargs=-1, required=True)
@click.option(
    "--timeout",
    type=float,
    help="Give up waiting for the rebalance after this many seconds",
)
@click.pass_context
def remove_nodes(
    ctx: click.Context, addresses: Tuple[str, ...], timeout: float | None
) -> None:
    """Rebalances the given nodes out of the cluster"""
    try:
        _server(ctx).remove_nodes(list(addresses), timeout=timeout)
    except CBAdminError as e:
        _fail(e)

    click.secho(f"Removed {', '.join(addresses)}", fg="green")


@cli.command("wait-ready")
@click.argument("url")
@click.option("--timeout", type=float, default=60.0, show_default=True)
@click.pass_context
def wait_ready(ctx: click.Context, url: str, timeout: float) -> None:
    """Waits for the node at URL to accept requests"""
    try:
        _server(ctx).wait_ready(url, timeout)
    except CBAdminError as e:
        _fail(e)

    click.secho(f"{url} is ready", fg="green")


@cli.command("wait-healthy")
@click.option("--timeout", type=float, default=60.0, show_default=True)
@click.pass_context
def wait_healthy(ctx: click.Context, timeout: float) -> None:
    """Waits for the configured node to be a healthy cluster member"""
    server = _server(ctx)
    try:
        server.wait_healthy(timeout)
    except CBAdminError as e:
        _fail(e)

    click.secho(f"{server.url} is healthy", fg="green")


@cli.command("bucket-ready")
@click.argument("name")
@click.pass_context
def bucket_ready(ctx: click.Context, name: str) -> None:
    """Exits with 0 if the bucket is ready on every node, 2 otherwise"""
    try:
        ready = _server(ctx).bucket_ready(name)
    except CBAdminError as e:
        _fail(e)

    if not ready:
        click.secho(f"Bucket {name} is not ready", fg="yellow")
        sys.exit(2)

    click.secho(f"Bucket {name} is ready", fg="green")


@cli.command("bucket-delete")
@click.argument("name")
@click.pass_context
def bucket_delete(ctx: click.Context, name: str) -> None:
    """Deletes a bucket"""
    try:
        _server(ctx).bucket_delete(name)
    except CBAdminError as e:
        _fail(e)

    click.secho(f"Deleted bucket {name}", fg="green")


if __name__ == "__main__":
    cli()
