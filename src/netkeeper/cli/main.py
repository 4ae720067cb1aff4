"""netkeeper command line entry point."""

from typing import Optional

import click

from netkeeper.cli.commands import classify_cmd, probe_cmd, queue_group
from netkeeper.cli.registry import CliContext
from netkeeper.config import _PACKAGE_VERSION, ClientConfig


@click.group()
@click.version_option(_PACKAGE_VERSION, prog_name="netkeeper")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="TOML config file (overrides NETKEEPER_CONFIG_FILE and the default locations).",
)
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ...).")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str], log_level: Optional[str]) -> None:
    """Network resilience toolkit: probe connectivity and manage the offline queue."""
    config = ClientConfig.from_env(config_file)
    if log_level:
        config.log_level = log_level.upper()
    config.setup_logging()
    ctx.obj = CliContext(config=config)


cli.add_command(probe_cmd)
cli.add_command(classify_cmd)
cli.add_command(queue_group)


if __name__ == "__main__":
    cli()
