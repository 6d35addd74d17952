# src/rescueboot/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from rescueboot.bootstrap.node.models import DEFAULT_ACTIONS
from rescueboot.bootstrap.orchestrator import Orchestrator, RunOptions
from rescueboot.config.loader import load_config
from rescueboot.discovery import DiscoveryTokenSource
from rescueboot.errors import ConfigurationError, FatalRunError
from rescueboot.logging.log import init_logging
from rescueboot.observers.dispatcher import EventBus
from rescueboot.observers.jsonfile import JsonFileObserver
from rescueboot.observers.logger import LoggerObserver
from rescueboot.robot.client import RobotClient
from rescueboot.utils.known_hosts import KnownHosts
from rescueboot.utils.network import is_reachable
from rescueboot.utils.ssh import SshChannel


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Bootstrap bare-metal hosts from the rescue system")


def _load(config: Path, secrets: Optional[Path] = None):
    """Load the config and build its targets; any problem exits 1."""
    try:
        cfg = load_config(config, secrets)
        return cfg, cfg.build_targets()
    except (ValidationError, ConfigurationError) as e:
        typer.secho(f"Invalid config {config}:\n{e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def bootstrap(
    config: Path = typer.Option(..., "--config", "-c", exists=True, dir_okay=False, help="bootstrap YAML config"),
    secrets: Optional[Path] = typer.Option(None, "--secrets", dir_okay=False, help="secrets YAML merged over the config"),
    cluster: Optional[bool] = typer.Option(None, "--cluster/--no-cluster", help="override `cluster` from the config"),
    events: Optional[Path] = typer.Option(None, "--events", help="append JSON events to this file"),
    debug: bool = typer.Option(False, "--debug"),
):
    """
    Install every target in the config: rescue, install, verify, join.
    """
    cfg, targets = _load(config, secrets)
    if cfg.robot is None:
        typer.secho("config has no `robot` credentials", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    logger, run_id, _ = init_logging(verbose=debug)

    observers = [LoggerObserver(logger)]
    observers.append(JsonFileObserver(events or Path.home() / ".rescueboot/logs" / f"{run_id}.jsonl"))
    bus = EventBus(observers=observers)

    settings = cfg.settings()
    known_hosts = KnownHosts(settings.ssh.known_hosts_path)
    channel = SshChannel(
        port=settings.ssh.port,
        connect_timeout=settings.ssh.connect_timeout,
        command_timeout=settings.ssh.command_timeout,
        key_filename=settings.ssh.key_filename,
        known_hosts=known_hosts,
    )

    orchestrator = Orchestrator(
        api=RobotClient(
            base_url=cfg.robot.base_url,
            username=cfg.robot.username,
            password=cfg.robot.password,
            timeout=cfg.robot.timeout,
        ),
        token_source=DiscoveryTokenSource(cfg.discovery.url, timeout=cfg.discovery.timeout),
        channel=channel,
        known_hosts=known_hosts,
        settings=settings,
        actions=cfg.actions or DEFAULT_ACTIONS,
        bus=bus,
        logger=logger,
        run_id=run_id,
    )
    for target in targets:
        orchestrator.add_target(target)

    options = RunOptions(
        cluster=cfg.cluster if cluster is None else cluster,
        max_workers=cfg.max_workers,
    )
    try:
        summary = orchestrator.run(options)
    except (FatalRunError, ConfigurationError) as e:
        logger.error("run aborted: %s", e)
        raise typer.Exit(code=1)

    typer.echo(summary.summary())
    if summary.failed:
        raise typer.Exit(code=2)


@app.command()
def validate(
    config: Path = typer.Option(..., "--config", "-c", exists=True, dir_okay=False),
    secrets: Optional[Path] = typer.Option(None, "--secrets", dir_okay=False, help="secrets YAML merged over the config"),
):
    """
    Load the config and list the targets it describes.
    """
    cfg, targets = _load(config, secrets)
    for target in targets:
        role = "manager" if target.is_manager else "host"
        actions = ", ".join(a.value for a in target.actions) if target.actions else "default"
        typer.echo(f"{target.address:<15} {target.hostname:<25} {role:<8} actions={actions}")
    typer.echo(f"{len(cfg.targets)} target(s), cluster={'on' if cfg.cluster else 'off'}")


@app.command()
def probe(
    address: str = typer.Argument(...),
    port: int = typer.Option(22, "--port"),
    timeout: float = typer.Option(4.0, "--timeout"),
):
    """
    Check whether a host accepts TCP connections on a port.
    """
    if is_reachable(address, port, timeout):
        typer.echo(f"{address}:{port} is reachable")
        return
    typer.echo(f"{address}:{port} is not reachable")
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
