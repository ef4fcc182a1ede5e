"""fsmlens/cli/main.py — CLI entry point. Thin boundary — no business logic."""

from __future__ import annotations

import sys

import click

from fsmlens.cli.replay_cmd import replay_command


@click.group()
@click.version_option(version="0.1.0", prog_name="fsmlens")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    envvar="FSMLENS_LOG_LEVEL",
)
@click.option("--strict", is_flag=True,
              help="Raise on unknown instances and missing history entries.")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, strict: bool) -> None:
    """fsmlens — history recorder for state machine instances."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper() if log_level else None
    ctx.obj["strict"] = True if strict else None


cli.add_command(replay_command, name="replay")


@cli.command("config")
@click.pass_context
def config_cmd(ctx: click.Context) -> None:
    """Show active configuration."""
    import json

    from fsmlens.cli.bootstrap import load_config

    obj = ctx.obj or {}
    try:
        cfg = load_config(strict=obj.get("strict"), log_level=obj.get("log_level"))
    except Exception as e:
        click.echo(f"Config error: {e}", err=True)
        sys.exit(1)
    click.echo(json.dumps(cfg.to_dict(), indent=2))


if __name__ == "__main__":
    cli()
