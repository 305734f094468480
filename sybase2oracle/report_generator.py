"""
Conversion report for Sybase to Oracle batch runs.

Summarizes per-unit outcomes, complexity metrics, warnings and failures
as a boxed text report or as JSON.
"""

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .translator import UnitResult


STATUS_CONVERTED = "converted"
STATUS_WARNINGS = "converted_with_warnings"
STATUS_FAILED = "failed"


@dataclass
class ConversionReport:
    """Aggregated outcome of a batch conversion."""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    total_units: int = 0
    successful_units: int = 0
    partial_units: int = 0  # Converted with warnings
    failed_units: int = 0

    original_complexity: int = 0
    converted_complexity: int = 0

    failures_by_kind: Dict[str, int] = field(default_factory=dict)
    warning_counts: Dict[str, int] = field(default_factory=dict)
    units: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def conversion_rate(self) -> float:
        """Units converted without warnings, as a percentage."""
        if self.total_units == 0:
            return 0.0
        return (self.successful_units / self.total_units) * 100

    @property
    def success_with_warnings_rate(self) -> float:
        if self.total_units == 0:
            return 0.0
        return ((self.successful_units + self.partial_units) / self.total_units) * 100


def _warning_category(warning: str) -> str:
    """Group warnings by their leading phrase so counts stay readable."""
    return warning.split(':', 1)[0].strip()


class ReportGenerator:
    """Builds and renders ConversionReport objects."""

    REPORT_WIDTH = 78

    def build_report(self, results: List[UnitResult]) -> ConversionReport:
        """
        Aggregate batch results.

        Args:
            results: UnitResult list as returned by convert_batch

        Returns:
            ConversionReport
        """
        report = ConversionReport(total_units=len(results))
        failures: Counter = Counter()
        warnings: Counter = Counter()

        for unit in results:
            entry: Dict[str, Any] = {"name": unit.name}
            if not unit.success:
                report.failed_units += 1
                failures[unit.failure.kind.value] += 1
                entry.update(status=STATUS_FAILED, failure=str(unit.failure))
            else:
                result = unit.result
                report.original_complexity += result.metrics.original_complexity
                report.converted_complexity += result.metrics.converted_complexity
                warnings.update(_warning_category(w) for w in result.warnings)
                if result.warnings:
                    report.partial_units += 1
                    entry["status"] = STATUS_WARNINGS
                else:
                    report.successful_units += 1
                    entry["status"] = STATUS_CONVERTED
                entry.update(metrics=result.metrics.to_dict(), warnings=list(result.warnings))
            report.units.append(entry)

        report.failures_by_kind = dict(failures)
        report.warning_counts = dict(warnings.most_common())
        return report

    def to_dict(self, report: ConversionReport) -> Dict[str, Any]:
        return {
            'timestamp': report.timestamp,
            'summary': {
                'total_units': report.total_units,
                'successful': report.successful_units,
                'partial': report.partial_units,
                'failed': report.failed_units,
                'conversion_rate': f"{report.conversion_rate:.1f}%",
                'success_with_warnings_rate': f"{report.success_with_warnings_rate:.1f}%",
            },
            'complexity': {
                'original': report.original_complexity,
                'converted': report.converted_complexity,
            },
            'failures_by_kind': report.failures_by_kind,
            'warning_counts': report.warning_counts,
            'units': report.units,
        }

    def format_report(self, report: ConversionReport, output_format: str = 'text') -> str:
        if output_format == 'json':
            return json.dumps(self.to_dict(report), indent=2)
        return self._format_text_report(report)

    def print_report(self, report: ConversionReport, output_format: str = 'text',
                     output_file: Optional[str] = None) -> None:
        """
        Print the report, or write it to ``output_file``.

        Args:
            report: ConversionReport to render
            output_format: 'text' or 'json'
            output_file: Optional file path to write the report
        """
        output = self.format_report(report, output_format)
        if output_file:
            with open(output_file, 'w', encoding='utf-8') as f:
                f.write(output)
            print(f"Report written to: {output_file}")
        else:
            print(output)

    def _section(self, title: str) -> List[str]:
        W = self.REPORT_WIDTH
        return [
            "┌" + "─" * W + "┐",
            "│" + f" {title} ".center(W) + "│",
            "└" + "─" * W + "┘",
        ]

    def _format_text_report(self, report: ConversionReport) -> str:
        W = self.REPORT_WIDTH
        total = max(report.total_units, 1)
        lines = [
            "",
            "╔" + "═" * W + "╗",
            "║" + " SYBASE TO ORACLE CONVERSION REPORT ".center(W) + "║",
            "╚" + "═" * W + "╝",
            f"  Generated: {report.timestamp}",
            "",
        ]

        lines.extend(self._section("CONVERSION SUMMARY"))
        bar_width = 50
        filled = int(bar_width * report.success_with_warnings_rate / 100)
        bar = "█" * filled + "░" * (bar_width - filled)
        lines.append(f"  Converted:                    [{bar}] {report.success_with_warnings_rate:.1f}%")
        lines.append("")
        lines.append(f"  Total Units:                  {report.total_units:>8}")
        lines.append(f"  ✓ Fully Converted:            {report.successful_units:>8}  "
                     f"({report.successful_units / total * 100:>5.1f}%)")
        lines.append(f"  ⚠ Converted (with warnings):  {report.partial_units:>8}  "
                     f"({report.partial_units / total * 100:>5.1f}%)")
        lines.append(f"  ✗ Failed:                     {report.failed_units:>8}  "
                     f"({report.failed_units / total * 100:>5.1f}%)")
        lines.append("")
        lines.append(f"  Complexity (original -> converted): "
                     f"{report.original_complexity} -> {report.converted_complexity}")
        lines.append("")

        if report.failures_by_kind:
            lines.extend(self._section("FAILURES"))
            for kind, count in sorted(report.failures_by_kind.items()):
                lines.append(f"  {kind:<30} {count:>8}")
            lines.append("")

        if report.warning_counts:
            lines.extend(self._section("WARNINGS"))
            for category, count in report.warning_counts.items():
                lines.append(f"  {category[:60]:<60} {count:>8}")
            lines.append("")

        lines.extend(self._section("UNITS"))
        lines.append(f"  {'Unit':<36} {'Status':<24} {'Improvement':>12}")
        lines.append("  " + "─" * 74)
        for unit in report.units:
            improvement = unit.get("metrics", {}).get("improvement_percent", "-")
            lines.append(f"  {unit['name'][:36]:<36} {unit['status']:<24} {improvement:>12}")
            if unit["status"] == STATUS_FAILED:
                lines.append(f"      {unit['failure']}")
        lines.append("")
        return "\n".join(lines)


def build_conversion_report(results: List[UnitResult]) -> ConversionReport:
    return ReportGenerator().build_report(results)


def print_conversion_report(report: ConversionReport, output_format: str = 'text',
                            output_file: Optional[str] = None) -> None:
    ReportGenerator().print_report(report, output_format, output_file)
