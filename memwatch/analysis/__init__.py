"""Report generation and synthetic sample scenarios."""

from memwatch.analysis.report_generator import ReportGenerator
from memwatch.analysis.synthetic import generate_scenario

__all__ = ["ReportGenerator", "generate_scenario"]
