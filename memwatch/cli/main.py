"""CLI interface for memwatch.

Provides commands for replaying recorded samples through the telemetry
engine, simulating synthetic scenarios, comparing exported snapshots and
watching a live process.

Uses Click for command parsing and Rich for terminal output.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import psutil
from rich import box
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from memwatch import __version__
from memwatch.analysis.report_generator import ReportGenerator, format_bytes
from memwatch.analysis.synthetic import SCENARIOS, generate_scenario
from memwatch.telemetry.config import MonitorConfig
from memwatch.telemetry.engine import EventType, MonitorEvent, TelemetryEngine, TickResult
from memwatch.telemetry.errors import SnapshotNotFoundError
from memwatch.telemetry.leak_scorer import SENSITIVITY_PROFILES
from memwatch.telemetry.poller import MemoryPoller, ProcessSampler
from memwatch.telemetry.sample import Sample
from memwatch.telemetry.snapshot_scheduler import SNAPSHOT_SCHEDULE_INTERVALS
from memwatch.telemetry.snapshot_store import Snapshot, compare_snapshots

logger = logging.getLogger(__name__)

console = Console()

_SEVERITY_STYLES = {
    "normal": "green",
    "warning": "yellow",
    "critical": "red",
}


# ============================================================================
# Helpers
# ============================================================================


def _error(message: str) -> None:
    """Print an error message and exit with code 1."""
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise SystemExit(1)


def _warn(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}", style="yellow")


def _info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[dim]{message}[/dim]")


def _load_json(path: str) -> Any:
    """Load a JSON document from disk.

    Raises
    ------
    SystemExit
        If the file cannot be read or parsed.
    """
    filepath = Path(path)
    if not filepath.is_file():
        _error(f"Not a file: {path}")

    try:
        return json.loads(filepath.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        _error(f"Invalid JSON in {path}: {exc}")
    except OSError as exc:
        _error(f"Cannot read {path}: {exc}")

    return None  # pragma: no cover


def _build_config(
    config_path: Optional[str],
    base: Optional[Dict[str, Any]] = None,
    **overrides: Any,
) -> MonitorConfig:
    """Merge embedded config, ``--config`` file and per-option overrides.

    Later sources win; options left at ``None`` are not applied.
    """
    data: Dict[str, Any] = dict(base or {})
    if config_path is not None:
        loaded = _load_json(config_path)
        if not isinstance(loaded, dict):
            _error(f"Config file {config_path} must contain a JSON object.")
        data.update(loaded)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return MonitorConfig.from_dict(data)


def _parse_samples(data: Any) -> List[Sample]:
    """Accept either a bare list of samples or ``{"samples": [...]}``."""
    raw = data.get("samples") if isinstance(data, dict) else data
    if not isinstance(raw, list):
        _error("Expected a JSON list of samples or an object with a 'samples' list.")
    return [Sample.from_dict(item) for item in raw if isinstance(item, dict)]


def _replay(engine: TelemetryEngine, samples: List[Sample]) -> List[MonitorEvent]:
    """Tick every sample through *engine*, collecting non-update events."""
    events: List[MonitorEvent] = []
    for sample in samples:
        result = engine.tick(sample)
        events.extend(e for e in result.events if e.type is not EventType.update)
    return events


def _print_events(events: List[MonitorEvent]) -> None:
    table = Table(
        title="Events",
        box=box.SIMPLE,
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("Time (ms)", justify="right")
    table.add_column("Event", style="bold")
    table.add_column("Detail")

    for event in events:
        if event.type is EventType.leak_detected:
            detail = f"probability {event.data.get('probability')}%"
        elif event.type in (EventType.warning, EventType.critical, EventType.auto_gc):
            detail = f"usage {event.data.get('usage_percentage') or 0.0:.1f}%"
        elif event.type is EventType.snapshot_captured:
            detail = str(event.data.get("label", ""))
        else:
            detail = str(event.data.get("reason", ""))
        table.add_row(str(event.timestamp), event.type.value, detail)
    console.print(table)


def _finish(
    engine: TelemetryEngine,
    events: List[MonitorEvent],
    report_format: str,
    output: Optional[str],
    show_events: bool,
) -> None:
    if show_events and events:
        _print_events(events)

    generator = ReportGenerator(
        result=engine.last_result,
        snapshots=engine.snapshots(),
        config=engine.config,
    )
    if report_format == "json":
        path = generator.generate_report(format="json", output_path=output)
        console.print(f"[green]Report written to {path}[/green]")
    else:
        generator.generate_report(format="terminal", console=console)


def _config_options(func: Any) -> Any:
    """Attach the configuration options shared by every engine command."""
    options = [
        click.option(
            "--config", "config_path",
            type=click.Path(exists=True, dir_okay=False),
            default=None,
            help="JSON file with MonitorConfig fields.",
        ),
        click.option(
            "--sensitivity",
            type=click.Choice(sorted(SENSITIVITY_PROFILES)),
            default=None,
            help="Leak detection sensitivity.",
        ),
        click.option(
            "--history-size", type=int, default=None,
            help="Samples kept for analysis.",
        ),
        click.option(
            "--warning", "warning_threshold", type=float, default=None,
            help="Warning threshold (percent of limit).",
        ),
        click.option(
            "--critical", "critical_threshold", type=float, default=None,
            help="Critical threshold (percent of limit).",
        ),
        click.option(
            "--auto-gc-threshold", type=float, default=None,
            help="Enable auto-GC at this usage percentage.",
        ),
        click.option(
            "--schedule", "snapshot_schedule",
            type=click.Choice(list(SNAPSHOT_SCHEDULE_INTERVALS)),
            default=None,
            help="Auto-snapshot interval.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _overrides(
    sensitivity: Optional[str],
    history_size: Optional[int],
    warning_threshold: Optional[float],
    critical_threshold: Optional[float],
    auto_gc_threshold: Optional[float],
    snapshot_schedule: Optional[str],
) -> Dict[str, Any]:
    return {
        "leak_sensitivity": sensitivity,
        "history_size": history_size,
        "warning_threshold": warning_threshold,
        "critical_threshold": critical_threshold,
        "auto_gc_threshold": auto_gc_threshold,
        "enable_auto_gc": True if auto_gc_threshold is not None else None,
        "snapshot_schedule": snapshot_schedule,
    }


_REPORT_OPTIONS = [
    click.option(
        "--format", "report_format",
        type=click.Choice(["terminal", "json"]),
        default="terminal",
        show_default=True,
        help="Report output format.",
    ),
    click.option(
        "--output", "-o",
        type=click.Path(),
        default=None,
        help="Output path for the JSON report.",
    ),
    click.option(
        "--events/--no-events", "show_events",
        default=True,
        show_default=True,
        help="Print the event log before the report.",
    ),
]


def _report_options(func: Any) -> Any:
    for option in reversed(_REPORT_OPTIONS):
        func = option(func)
    return func


# ============================================================================
# CLI group
# ============================================================================


@click.group(name="memwatch")
@click.version_option(version=__version__, prog_name="memwatch")
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose debug logging.",
)
def cli(verbose: bool) -> None:
    """memwatch - Memory telemetry and leak detection."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


# ============================================================================
# analyze
# ============================================================================


@cli.command()
@click.argument("samples_path", type=click.Path(exists=True))
@_config_options
@_report_options
def analyze(
    samples_path: str,
    config_path: Optional[str],
    sensitivity: Optional[str],
    history_size: Optional[int],
    warning_threshold: Optional[float],
    critical_threshold: Optional[float],
    auto_gc_threshold: Optional[float],
    snapshot_schedule: Optional[str],
    report_format: str,
    output: Optional[str],
    show_events: bool,
) -> None:
    """Replay recorded samples through the engine.

    Usage: memwatch analyze samples.json

    SAMPLES_PATH holds a list of {timestamp, used, total, limit} objects, or
    an object with a "samples" list and an optional "config" object.
    """
    data = _load_json(samples_path)
    samples = _parse_samples(data)
    if not samples:
        _error(f"No samples found in {samples_path}")
    invalid = sum(1 for s in samples if not s.is_valid)
    if invalid:
        _warn(f"{invalid} sample(s) have no usable 'used' value and are skipped by analysis.")

    embedded = data.get("config") if isinstance(data, dict) else None
    config = _build_config(
        config_path,
        base=embedded if isinstance(embedded, dict) else None,
        **_overrides(
            sensitivity, history_size, warning_threshold,
            critical_threshold, auto_gc_threshold, snapshot_schedule,
        ),
    )

    engine = TelemetryEngine(config)
    events = _replay(engine, samples)
    _info(f"Analysed {len(samples)} sample(s) from {samples_path}")
    _finish(engine, events, report_format, output, show_events)


# ============================================================================
# simulate
# ============================================================================


@cli.command()
@click.argument("scenario", type=click.Choice(sorted(SCENARIOS)))
@click.option("--count", type=int, default=60, show_default=True, help="Number of samples.")
@click.option(
    "--interval", type=int, default=1000, show_default=True,
    help="Milliseconds between samples.",
)
@click.option("--seed", type=int, default=0, show_default=True, help="Noise seed.")
@click.option(
    "--save-samples",
    type=click.Path(),
    default=None,
    help="Also write the generated samples to a JSON file.",
)
@_config_options
@_report_options
def simulate(
    scenario: str,
    count: int,
    interval: int,
    seed: int,
    save_samples: Optional[str],
    config_path: Optional[str],
    sensitivity: Optional[str],
    history_size: Optional[int],
    warning_threshold: Optional[float],
    critical_threshold: Optional[float],
    auto_gc_threshold: Optional[float],
    snapshot_schedule: Optional[str],
    report_format: str,
    output: Optional[str],
    show_events: bool,
) -> None:
    """Run a synthetic scenario through the engine.

    Usage: memwatch simulate leak --count 120

    SCENARIO is one of: flat, leak, sawtooth, spike.
    """
    samples = generate_scenario(scenario, count=count, interval_ms=interval, seed=seed)
    if save_samples is not None:
        out = Path(save_samples)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(
            json.dumps({"samples": [s.to_dict() for s in samples]}, indent=2),
            encoding="utf-8",
        )
        _info(f"Samples written to {save_samples}")

    config = _build_config(
        config_path,
        **_overrides(
            sensitivity, history_size, warning_threshold,
            critical_threshold, auto_gc_threshold, snapshot_schedule,
        ),
    )
    engine = TelemetryEngine(config)
    events = _replay(engine, samples)
    _info(f"Simulated {len(samples)} '{scenario}' sample(s) (seed={seed})")
    _finish(engine, events, report_format, output, show_events)


# ============================================================================
# compare
# ============================================================================


@cli.command()
@click.argument("snapshots_path", type=click.Path(exists=True))
@click.argument("id_a", type=str)
@click.argument("id_b", type=str)
@click.option(
    "--json", "as_json",
    is_flag=True,
    default=False,
    help="Print the comparison as JSON instead of a table.",
)
def compare(snapshots_path: str, id_a: str, id_b: str, as_json: bool) -> None:
    """Compare two snapshots from an exported report.

    Usage: memwatch compare report.json snapshot-1 snapshot-3

    SNAPSHOTS_PATH is a JSON report (with a "snapshots" list) or a bare
    list of snapshots.  ID_A is the baseline.
    """
    data = _load_json(snapshots_path)
    raw = data.get("snapshots") if isinstance(data, dict) else data
    if not isinstance(raw, list):
        _error(f"No snapshot list found in {snapshots_path}")

    by_id: Dict[str, Snapshot] = {}
    for item in raw:
        if isinstance(item, dict):
            snap = Snapshot.from_dict(item)
            by_id[snap.id] = snap

    for snapshot_id in (id_a, id_b):
        if snapshot_id not in by_id:
            _error(str(SnapshotNotFoundError(snapshot_id)))

    comparison = compare_snapshots(by_id[id_a], by_id[id_b])
    if as_json:
        click.echo(json.dumps(comparison.to_dict(), indent=2))
        return
    ReportGenerator.print_comparison_table(console, comparison)


# ============================================================================
# watch
# ============================================================================


@cli.command()
@click.option(
    "--pid", type=int, default=None,
    help="Process to watch (defaults to this process).",
)
@click.option(
    "--interval", type=int, default=1000, show_default=True,
    help="Sampling interval in milliseconds.",
)
@click.option(
    "--duration", type=float, default=0.0, show_default=True,
    help="Stop after this many seconds (0 = until Ctrl+C).",
)
@_config_options
@click.option(
    "--output", "-o",
    type=click.Path(),
    default=None,
    help="Write a JSON report here when watching stops.",
)
def watch(
    pid: Optional[int],
    interval: int,
    duration: float,
    config_path: Optional[str],
    sensitivity: Optional[str],
    history_size: Optional[int],
    warning_threshold: Optional[float],
    critical_threshold: Optional[float],
    auto_gc_threshold: Optional[float],
    snapshot_schedule: Optional[str],
    output: Optional[str],
) -> None:
    """Watch a live process.

    Usage: memwatch watch --pid 1234

    Samples resident memory every interval and shows usage, trend and
    leak probability.  Press Ctrl+C to stop.
    """
    try:
        sampler = ProcessSampler(pid)
    except psutil.NoSuchProcess:
        _error(f"No such process: {pid}")
        return
    except psutil.AccessDenied:
        _error(f"Access denied for process {pid}")
        return

    config = _build_config(
        config_path,
        interval_ms=interval,
        **_overrides(
            sensitivity, history_size, warning_threshold,
            critical_threshold, auto_gc_threshold, snapshot_schedule,
        ),
    )
    engine = TelemetryEngine(config)
    poller = MemoryPoller(engine, sampler)

    console.print(
        Panel(
            f"[bold]Watching pid {sampler.pid}[/bold]\n"
            "[dim]Press Ctrl+C to stop[/dim]",
            border_style="magenta",
            padding=(0, 1),
        )
    )

    refresh_s = max(config.interval_ms, 100) / 1000.0
    deadline = time.monotonic() + duration if duration > 0 else None
    poller.start()
    try:
        with Live(
            _build_watch_table(engine.last_result, sampler.pid),
            console=console,
            refresh_per_second=max(1, int(1.0 / refresh_s)),
            transient=False,
        ) as live_display:
            while poller.is_running:
                if deadline is not None and time.monotonic() >= deadline:
                    break
                time.sleep(refresh_s)
                live_display.update(_build_watch_table(engine.last_result, sampler.pid))
    except KeyboardInterrupt:
        pass
    finally:
        poller.stop()
        console.print("\n[dim]Watch stopped.[/dim]")

    if output is not None:
        ReportGenerator(
            result=engine.last_result,
            snapshots=engine.snapshots(),
            config=engine.config,
        ).generate_json_report(output)
        console.print(f"[green]Report written to {output}[/green]")


def _build_watch_table(result: Optional[TickResult], pid: int) -> Table:
    """Build a Rich Table summarising the latest tick."""
    table = Table(
        title=f"Memory (pid {pid})",
        box=box.ROUNDED,
        title_style="bold magenta",
        expand=True,
    )
    table.add_column("Used", justify="right")
    table.add_column("Usage", min_width=20)
    table.add_column("Trend", justify="center")
    table.add_column("GC events", justify="right")
    table.add_column("Leak", justify="right")

    if result is None:
        table.add_row("-", "[dim]Waiting for data...[/dim]", "", "", "")
        return table

    style = _SEVERITY_STYLES[result.severity.value]
    usage = Text()
    if result.usage_percentage is not None:
        pct = max(0.0, min(100.0, result.usage_percentage))
        filled = int(round(pct / 100.0 * 15))
        usage.append("█" * filled, style=style)
        usage.append("░" * (15 - filled), style="dim")
        usage.append(f" {result.usage_percentage:.1f}%", style=f"bold {style}")
    else:
        usage.append("n/a", style="dim")

    leak = result.leak
    leak_style = "bold red" if leak.is_leaking else "bold"
    table.add_row(
        format_bytes(result.sample.used),
        usage,
        result.trend.trend.value,
        str(result.gc_analysis.event_count),
        Text(f"{leak.probability}%", style=leak_style),
    )
    return table


# ============================================================================
# Entry point
# ============================================================================


def main() -> None:
    """Entry point for the CLI.

    This function exists so the CLI can also be invoked via
    ``python -m memwatch.cli.main``.
    """
    cli()


if __name__ == "__main__":
    main()
