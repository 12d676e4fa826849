"""Command-line interface for MQTT observation publishing."""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer

from mqtt_observations import __version__
from mqtt_observations.config import (
    DEFAULT_TOPIC,
    ConfigError,
    ObservationsSettings,
    load_config,
)

app = typer.Typer(
    name="mqtt-observations",
    help="Publish NMIS node observations to MQTT brokers",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to observations.yaml"),
]
RoutingOption = Annotated[
    Optional[Path],
    typer.Option("--routing", "-r", help="Path to routing.yaml"),
]
SnapshotOption = Annotated[
    Path,
    typer.Option("--snapshot", "-s", help="Node snapshot document (JSON or YAML)"),
]


def _settings(config: Path | None, routing: Path | None) -> ObservationsSettings:
    settings = ObservationsSettings()
    return ObservationsSettings(
        config_file=config or settings.config_file,
        routing_file=routing or settings.routing_file,
    )


@app.callback()
def callback() -> None:
    """MQTT observations CLI."""
    pass


@app.command()
def run(
    snapshot: SnapshotOption,
    config: ConfigOption = None,
    routing: RoutingOption = None,
) -> None:
    """Publish one node's snapshot and exit with the run status."""
    from mqtt_observations.observability import setup_logging, write_metrics_textfile
    from mqtt_observations.pipeline import STATUS_FATAL, collect_node
    from mqtt_observations.sources.snapshot_file import SnapshotFileSource, SnapshotLoadError

    settings = _settings(config, routing)

    try:
        cfg = load_config(settings)
    except ConfigError:
        cfg = None
    if cfg is not None:
        setup_logging(cfg.observability.log_level, cfg.observability.log_format)
    else:
        setup_logging()

    try:
        source = SnapshotFileSource.from_file(snapshot)
        node = source.node_context()
    except SnapshotLoadError as e:
        typer.echo(f"Snapshot error: {e}", err=True)
        raise typer.Exit(STATUS_FATAL)

    # The pipeline reloads config itself so a bad file is reported as a run failure
    result = collect_node(node, source, settings=settings)

    if cfg is not None and cfg.observability.metrics_textfile:
        write_metrics_textfile(cfg.observability.metrics_textfile)

    if result.message:
        typer.echo(result.message, err=not result.ok)
    typer.echo(
        f"{node.node_name}: {result.published} delivered, {result.failed} failed, "
        f"{result.instances_skipped} skipped"
    )
    raise typer.Exit(result.status)


@app.command()
def preview(
    snapshot: SnapshotOption,
    config: ConfigOption = None,
    routing: RoutingOption = None,
    concept: Annotated[
        Optional[list[str]],
        typer.Option("--concept", help="Concept to preview (repeatable); default: configured"),
    ] = None,
) -> None:
    """Print the topics and payloads a run would publish, without connecting."""
    from mqtt_observations.mapping import MessageAssembler, RoutingTable, build_envelope
    from mqtt_observations.publishers import encode_payload
    from mqtt_observations.sources.snapshot_file import SnapshotFileSource, SnapshotLoadError

    settings = _settings(config, routing)
    try:
        cfg = load_config(settings)
        topic_prefix = cfg.mqtt.topic
        concepts = concept or cfg.concepts
    except ConfigError:
        topic_prefix = DEFAULT_TOPIC
        concepts = concept or []

    try:
        table = RoutingTable.from_yaml(settings.routing_file)
        source = SnapshotFileSource.from_file(snapshot)
        node = source.node_context()
    except (ConfigError, SnapshotLoadError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if not concepts:
        typer.echo("No concepts configured; pass --concept", err=True)
        raise typer.Exit(1)

    assembler = MessageAssembler(topic_prefix)
    envelope = build_envelope(node)
    for name in concepts:
        try:
            instance_ids = source.instance_ids(name)
        except SnapshotLoadError as e:
            typer.echo(f"Skipping {name}: {e}", err=True)
            continue

        snapshots = []
        for instance_id in instance_ids:
            try:
                snapshots.append(source.snapshot(name, instance_id))
            except SnapshotLoadError as e:
                typer.echo(f"Skipping: {e}", err=True)
        for unit in assembler.assemble(table.rule_for(name), envelope, snapshots):
            typer.echo(unit.topic)
            typer.echo(json.dumps(json.loads(encode_payload(unit.payload)), indent=2))


@app.command()
def validate(
    config: ConfigOption = None,
    routing: RoutingOption = None,
) -> None:
    """Validate configuration files without publishing."""
    from mqtt_observations.mapping import RoutingTable

    settings = _settings(config, routing)

    try:
        cfg = load_config(settings)
        table = RoutingTable.from_yaml(settings.routing_file)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)

    if not cfg.mqtt.server:
        typer.echo("Configuration error: no MQTT server configured", err=True)
        raise typer.Exit(1)

    typer.echo(f"Configuration valid: {settings.config_file}")
    typer.echo(f"  MQTT: {cfg.mqtt.server} (topic {cfg.mqtt.topic}, retain={cfg.mqtt.retain})")
    if cfg.mqtt_secondary and cfg.mqtt_secondary.server:
        secondary = cfg.mqtt_secondary
        typer.echo(f"  Secondary MQTT: {secondary.server} (topic {secondary.topic})")
    for name in cfg.concepts:
        rule = table.rule_for(name)
        mode = "singleton" if rule.is_singleton else "per-instance"
        typer.echo(f"  Concept {name}: {mode}, published as {rule.published_name}")


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"mqtt-observations {__version__}")


if __name__ == "__main__":
    app()
