"""Report generation for memwatch.

Generates Rich terminal reports and structured JSON exports from the
engine's latest analysis pass, its snapshot list and, optionally, a
snapshot comparison.

Terminal output uses the Rich library for console rendering with tables,
panels and a usage bar.  JSON exports carry every analysis value alongside
report metadata for downstream tooling.
"""

from __future__ import annotations

import datetime
import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from memwatch import __version__
from memwatch.telemetry.config import MonitorConfig
from memwatch.telemetry.engine import TickResult
from memwatch.telemetry.leak_scorer import LeakStatus
from memwatch.telemetry.severity_classifier import Severity
from memwatch.telemetry.snapshot_store import FieldDelta, Snapshot, SnapshotComparison

logger = logging.getLogger(__name__)


# ============================================================================
# Formatting helpers
# ============================================================================

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")

_SEVERITY_COLORS: Dict[Severity, str] = {
    Severity.normal: "green",
    Severity.warning: "yellow",
    Severity.critical: "red",
}


def format_bytes(value: Optional[float]) -> str:
    """Format a byte count with 1024-based units, e.g. ``1.50 MB``."""
    if value is None or not math.isfinite(value):
        return "n/a"
    magnitude = abs(value)
    unit = 0
    while magnitude >= 1024.0 and unit < len(_BYTE_UNITS) - 1:
        magnitude /= 1024.0
        unit += 1
    sign = "-" if value < 0 else ""
    if unit == 0:
        return f"{sign}{magnitude:.0f} B"
    return f"{sign}{magnitude:.2f} {_BYTE_UNITS[unit]}"


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds < 1.0:
        return f"{seconds * 1000:.1f} ms"
    if seconds < 60.0:
        return f"{seconds:.2f} s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes < 60:
        return f"{minutes}m {secs:.1f}s"
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours}h {mins}m {secs:.0f}s"


def _probability_color(probability: int) -> str:
    if probability >= 70:
        return "red"
    if probability >= 30:
        return "yellow"
    return "green"


def _format_delta(delta: FieldDelta, as_bytes: bool) -> str:
    if not delta.is_available or delta.diff is None:
        return "n/a"
    sign = "+" if delta.diff > 0 else ""
    if as_bytes:
        return f"{sign}{format_bytes(delta.diff)}"
    return f"{sign}{delta.diff:,.0f}"


# ============================================================================
# Report Generator
# ============================================================================


class ReportGenerator:
    """Generate memory reports in terminal and JSON formats.

    Usage::

        generator = ReportGenerator(
            result=engine.last_result,
            snapshots=engine.snapshots(),
            config=engine.config,
        )
        generator.generate_report(format="terminal")
        generator.generate_report(format="json", output_path="memwatch.json")
    """

    def __init__(
        self,
        result: Optional[TickResult] = None,
        snapshots: Optional[List[Snapshot]] = None,
        comparison: Optional[SnapshotComparison] = None,
        config: Optional[MonitorConfig] = None,
    ) -> None:
        self._result = result
        self._snapshots = list(snapshots or [])
        self._comparison = comparison
        self._config = config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_report(
        self,
        format: str = "terminal",
        output_path: Optional[str] = None,
        console: Optional[Console] = None,
    ) -> Optional[str]:
        """Dispatch to the appropriate report generation method.

        Parameters
        ----------
        format:
            ``"terminal"`` or ``"json"``.
        output_path:
            File path for JSON output.  Ignored for terminal format.
        console:
            Rich console to print to; a fresh one is created when omitted.

        Returns
        -------
        str | None
            The output file path for JSON, or ``None`` for terminal.

        Raises
        ------
        ValueError
            If *format* is not recognised.
        """
        fmt = format.lower().strip()
        if fmt == "terminal":
            self.generate_terminal_report(console)
            return None
        elif fmt == "json":
            if output_path is None:
                output_path = "memwatch_report.json"
            self.generate_json_report(output_path)
            return output_path
        else:
            raise ValueError(
                f"Unknown report format {fmt!r}. Expected one of: 'terminal', 'json'."
            )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "metadata": {
                "tool": "memwatch",
                "version": __version__,
                "report_generated": datetime.datetime.now().isoformat(),
                "format_version": "1.0",
            },
        }
        if self._config is not None:
            data["config"] = self._config.to_dict()
        if self._result is not None:
            data["analysis"] = self._result.to_dict()
        data["snapshots"] = [s.to_dict() for s in self._snapshots]
        if self._comparison is not None:
            data["comparison"] = self._comparison.to_dict()
        return data

    # ==================================================================
    # Terminal report
    # ==================================================================

    def generate_terminal_report(self, console: Optional[Console] = None) -> None:
        """Print the report: header, usage bar, leak and GC tables,
        snapshots and the optional comparison."""
        console = console or Console()

        header_text = Text()
        header_text.append("memwatch", style="bold magenta")
        header_text.append(" - Memory Telemetry Report", style="bold white")
        console.print()
        console.print(Panel(header_text, border_style="magenta", padding=(1, 2)))

        if self._result is None:
            console.print("[dim]No samples analysed yet.[/dim]")
        else:
            self._print_usage_panel(console, self._result)
            console.print()
            self._print_leak_table(console, self._result)
            console.print()
            self._print_gc_table(console, self._result)
            console.print()

        if self._snapshots:
            self.print_snapshot_table(console, self._snapshots)
            console.print()

        if self._comparison is not None:
            self.print_comparison_table(console, self._comparison)
            console.print()

    def _print_usage_panel(self, console: Console, result: TickResult) -> None:
        sample = result.sample
        color = _SEVERITY_COLORS[result.severity]

        bar = Text()
        if result.usage_percentage is not None:
            pct = max(0.0, min(100.0, result.usage_percentage))
            bar_width = 40
            filled = int(round(pct / 100.0 * bar_width))
            bar.append("[", style="dim")
            bar.append("█" * filled, style=color)
            bar.append("░" * (bar_width - filled), style="dim")
            bar.append("]", style="dim")
            bar.append(f" {result.usage_percentage:.1f}%", style=f"bold {color}")
        else:
            bar.append("Usage unknown (no limit reported)", style="dim")
        bar.append("\n")
        bar.append(
            f"Used {format_bytes(sample.used)}  "
            f"Total {format_bytes(sample.total)}  "
            f"Limit {format_bytes(sample.limit)}"
        )

        console.print(
            Panel(
                bar,
                title=f"[bold]Memory Usage ({result.severity.value})[/bold]",
                border_style=color,
                padding=(0, 1),
            )
        )

    def _print_leak_table(self, console: Console, result: TickResult) -> None:
        leak = result.leak
        trend = result.trend

        table = Table(
            title="Leak Analysis",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
            padding=(0, 1),
        )
        table.add_column("Metric", style="bold", min_width=20)
        table.add_column("Value", justify="right", min_width=14)

        color = _probability_color(leak.probability)
        table.add_row("Status", leak.status.value.replace("_", " "))
        table.add_row(
            "Leak probability",
            Text(f"{leak.probability}%", style=f"bold {color}"),
        )
        table.add_row("Trend", trend.trend.value)
        table.add_row("Growth per sample", format_bytes(trend.slope))
        table.add_row("R²", f"{trend.r_squared:.3f}")
        table.add_row("Samples", str(trend.sample_count))
        if leak.status is not LeakStatus.insufficient_samples:
            table.add_row("Observed", format_duration(leak.observation_ms / 1000.0))
        table.add_row("Confidence", f"{leak.confidence}%")
        console.print(table)

        if leak.recommendation:
            console.print(
                Panel(
                    Text(leak.recommendation),
                    title="[bold]Recommendation[/bold]",
                    border_style=color,
                    padding=(0, 1),
                )
            )

    def _print_gc_table(self, console: Console, result: TickResult) -> None:
        gc_analysis = result.gc_analysis
        baseline = result.baseline

        table = Table(
            title="GC & Baseline",
            box=box.SIMPLE,
            show_header=True,
            padding=(0, 1),
        )
        table.add_column("Metric", style="bold", min_width=20)
        table.add_column("Value", justify="right", min_width=14)
        table.add_row("GC events", str(gc_analysis.event_count))
        table.add_row("Avg. recovery", f"{gc_analysis.avg_recovery_ratio * 100:.1f}%")
        table.add_row("GC effective", "yes" if gc_analysis.is_effective else "no")
        table.add_row("Baseline", format_bytes(baseline.baseline_value))
        table.add_row("Baseline trend", baseline.trend.value)
        table.add_row("Baseline growth", f"{baseline.growth_ratio * 100:.1f}%")
        console.print(table)

    @staticmethod
    def print_snapshot_table(console: Console, snapshots: List[Snapshot]) -> None:
        table = Table(
            title="Snapshots",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
            padding=(0, 1),
        )
        table.add_column("ID", style="bold")
        table.add_column("Label")
        table.add_column("Used", justify="right")
        table.add_column("Usage", justify="right")
        table.add_column("Leak", justify="right")
        table.add_column("Auto", justify="center")

        for snap in snapshots:
            ctx = snap.analysis_context
            table.add_row(
                snap.id,
                snap.label,
                format_bytes(snap.heap_used),
                f"{ctx.usage_percentage:.1f}%",
                f"{ctx.leak_probability}%",
                "✓" if snap.is_auto else "",
            )
        console.print(table)

    @staticmethod
    def print_comparison_table(console: Console, comparison: SnapshotComparison) -> None:
        table = Table(
            title=(
                f"{comparison.snapshot_a.label} → {comparison.snapshot_b.label} "
                f"({format_duration(comparison.elapsed_ms / 1000.0)})"
            ),
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
            padding=(0, 1),
        )
        table.add_column("Field", style="bold")
        table.add_column("A", justify="right")
        table.add_column("B", justify="right")
        table.add_column("Change", justify="right")
        table.add_column("%", justify="right")

        for delta in comparison.deltas:
            as_bytes = delta.field.startswith("heap_")
            fmt = format_bytes if as_bytes else (
                lambda v: f"{v:,.0f}" if v is not None else "n/a"
            )
            if delta.direction == "up":
                style = "red"
            elif delta.direction == "down":
                style = "green"
            else:
                style = "dim"
            pct = f"{delta.percentage:+.1f}%" if delta.percentage is not None else "n/a"
            table.add_row(
                delta.field,
                fmt(delta.value_a),
                fmt(delta.value_b),
                Text(_format_delta(delta, as_bytes), style=style),
                Text(pct, style=style),
            )
        console.print(table)

    # ==================================================================
    # JSON report
    # ==================================================================

    def generate_json_report(self, output_path: str) -> None:
        """Export the analysis, snapshots and comparison as structured JSON.

        Parameters
        ----------
        output_path:
            File path to write the JSON report to.
        """
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(
            json.dumps(self.to_dict(), indent=2, default=str),
            encoding="utf-8",
        )
        logger.info("JSON report written to %s", output_path)
