"""CLI entry point for rp-reporter.

Lets shell scripts and parallel workers share one launch:
    rp-reporter start-launch --description "nightly"
    rp-reporter item-id --launch-id <id> --name "Login feature"
    rp-reporter close-items --launch-id <id>
    rp-reporter finish-launch --launch-id <id>
    rp-reporter --no-retry item-id --launch-id <id> --name "Login feature"

Every command prints one JSON object ({success, command, data, message})
on stdout.
"""

import json
import logging
import sys
from typing import Optional

import click

from .client import ReportingClient
from .errors import SettingsError
from .session import ReportingSession
from .settings import load_settings
from .transport.retry_policy import RetryExecutor, no_retry_policy
from .tree import ItemTree, TestItem


def output(command: str, success: bool, message: str, **data):
    """Print a command result as JSON."""
    print(json.dumps({
        "success": success,
        "command": command,
        "data": data or None,
        "message": message,
    }, ensure_ascii=False))


def _client(ctx: click.Context, launch_id: Optional[str] = None) -> ReportingClient:
    command = ctx.info_name
    try:
        settings = load_settings(ctx.obj.get("config"))
    except SettingsError as e:
        output(command, False, str(e))
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    executor = RetryExecutor(no_retry_policy()) if ctx.obj.get("no_retry") else None
    return ReportingClient(settings, session=ReportingSession(launch_id=launch_id), executor=executor)


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Settings file (default: report_portal.yml or $RP_CONFIG).")
@click.option("--no-retry", is_flag=True, default=False,
              help="Send each request once instead of retrying failures.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], no_retry: bool):
    """Report test launches to Report Portal."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path
    ctx.obj["no_retry"] = no_retry


@cli.command("start-launch")
@click.option("--description", default=None, help="Launch description.")
@click.pass_context
def start_launch(ctx: click.Context, description: Optional[str]):
    """Create a launch and print its id."""
    client = _client(ctx)
    launch_id = client.start_launch(description)
    if launch_id is None:
        output("start-launch", False, "Could not create a launch")
        sys.exit(1)
    output("start-launch", True, f"Launch started: {launch_id}", launch_id=launch_id)


@cli.command("finish-launch")
@click.option("--launch-id", required=True, help="Launch to finish.")
@click.option("--close-items/--no-close-items", default=True,
              help="Finish items left in progress first.")
@click.pass_context
def finish_launch(ctx: click.Context, launch_id: str, close_items: bool):
    """Finish a launch."""
    client = _client(ctx, launch_id)
    if close_items:
        client.close_child_items(None)
    result = client.finish_launch()
    success = result is not None
    message = "Launch finished" if success else "Failed to finish launch"
    output("finish-launch", success, message, launch_id=launch_id)
    if not success:
        sys.exit(1)


@cli.command("item-id")
@click.option("--launch-id", required=True, help="Launch to search.")
@click.option("--name", required=True, help="Exact item name.")
@click.option("--parent-id", default=None, help="Parent item id (top level if omitted).")
@click.pass_context
def item_id(ctx: click.Context, launch_id: str, name: str, parent_id: Optional[str]):
    """Print the id of an item another worker already started."""
    client = _client(ctx, launch_id)
    tree = ItemTree()
    parent = tree.root if parent_id is None else tree.add(TestItem(id=parent_id))
    found = client.item_id_of(name, parent)
    if found is None:
        output("item-id", False, f"Item not found: {name}", name=name)
        sys.exit(1)
    output("item-id", True, f"Item found: {found}", name=name, item_id=found)


@cli.command("close-items")
@click.option("--launch-id", required=True, help="Launch to reconcile.")
@click.option("--parent-id", default=None, help="Only close items under this item.")
@click.pass_context
def close_items(ctx: click.Context, launch_id: str, parent_id: Optional[str]):
    """Finish items that parallel workers left in progress."""
    client = _client(ctx, launch_id)
    client.close_child_items(parent_id)
    output("close-items", True, "In-progress items closed", launch_id=launch_id, parent_id=parent_id)


def main():
    """Main CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
