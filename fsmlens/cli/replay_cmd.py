"""fsmlens/cli/replay_cmd.py — `fsmlens replay` command."""

from __future__ import annotations

import json
import sys

import click

from fsmlens.models.errors import FSMLensError
from fsmlens.models.types import InstanceRecord, StateEntry


@click.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--format", "fmt", type=click.Choice(["text", "json"]), default="text",
              show_default=True)
@click.option("--instance", "instance_ids", multiple=True,
              help="Only show these instance ids (repeatable).")
@click.pass_context
def replay_command(ctx: click.Context, source, fmt: str, instance_ids: tuple) -> None:
    """Replay a recorded JSONL notification stream and print each instance's history."""
    from fsmlens.cli.bootstrap import build_manager, load_config
    from fsmlens.kernel.replay import replay

    obj = ctx.obj or {}
    try:
        config = load_config(strict=obj.get("strict"), log_level=obj.get("log_level"))
        manager = build_manager(config)
        count = replay(manager, source)
    except FSMLensError as e:
        click.echo(f"Replay error: {e}", err=True)
        sys.exit(1)

    states = {k: v for k, v in manager.states.items() if not instance_ids or k in instance_ids}
    if fmt == "json":
        click.echo(json.dumps({k: v.to_dict() for k, v in states.items()}, default=str, indent=2))
        return
    if not states:
        click.echo("No instances.")
        return
    click.echo(f"Replayed {count} messages.")
    for instance_id, record in states.items():
        _echo_record(instance_id, record)


def _echo_record(instance_id: str, record: InstanceRecord) -> None:
    status = "mounted" if record.is_mounted else "disposed"
    click.echo(f"\n{instance_id}  [{status}]  state={record.current_state}")
    click.echo("-" * 60)
    for n, entry in zip(range(len(record.history) - 1, -1, -1), record.history):
        if isinstance(entry, StateEntry):
            click.echo(f"  #{n:<4} {'state':<6} {str(entry.state):<20} {entry.effect.label}")
        else:
            flag = "ignored" if entry.ignored else ""
            click.echo(f"  #{n:<4} {'event':<6} {str(entry.event_type):<20} {flag}")
