"""
Tests for the batch conversion report.
"""

import json

from sybase2oracle import ConversionFailure, FailureKind, UnitResult, convert_unit
from sybase2oracle.report_generator import (
    STATUS_CONVERTED,
    STATUS_FAILED,
    STATUS_WARNINGS,
    ConversionReport,
    ReportGenerator,
    build_conversion_report,
)


def sample_results():
    clean = convert_unit("SELECT ISNULL(a, 0) FROM t", name="clean.sql")
    warned = convert_unit("SELECT TOP 1 a FROM t ORDER BY a", name="warned.sql")
    timeout = UnitResult("slow.sql", failure=ConversionFailure(FailureKind.TIMEOUT, "Conversion exceeded 10s"))
    return [UnitResult(clean.name, result=clean), UnitResult(warned.name, result=warned), timeout]


class TestBuildReport:

    def test_counts(self):
        report = ReportGenerator().build_report(sample_results())
        assert report.total_units == 3
        assert report.successful_units == 1
        assert report.partial_units == 1
        assert report.failed_units == 1
        assert report.failures_by_kind == {"TIMEOUT": 1}
        assert report.warning_counts == {"TOP 1 with ORDER BY": 1}

    def test_unit_entries(self):
        report = build_conversion_report(sample_results())
        assert [u["status"] for u in report.units] == [STATUS_CONVERTED, STATUS_WARNINGS, STATUS_FAILED]
        assert report.units[2]["failure"] == "[TIMEOUT] Conversion exceeded 10s"
        assert "metrics" in report.units[0]

    def test_rates(self):
        report = build_conversion_report(sample_results())
        assert round(report.conversion_rate, 1) == 33.3
        assert round(report.success_with_warnings_rate, 1) == 66.7

    def test_empty_report(self):
        report = ConversionReport()
        assert report.conversion_rate == 0.0
        assert report.success_with_warnings_rate == 0.0


class TestFormatReport:

    def test_json(self):
        generator = ReportGenerator()
        data = json.loads(generator.format_report(generator.build_report(sample_results()), 'json'))
        assert set(data) == {"timestamp", "summary", "complexity", "failures_by_kind", "warning_counts", "units"}
        assert data["summary"]["failed"] == 1
        assert data["summary"]["conversion_rate"] == "33.3%"

    def test_text(self):
        generator = ReportGenerator()
        text = generator.format_report(generator.build_report(sample_results()))
        assert "SYBASE TO ORACLE CONVERSION REPORT" in text
        assert "FAILURES" in text
        assert "TIMEOUT" in text
        assert "slow.sql" in text

    def test_print_to_file(self, tmp_path, capsys):
        generator = ReportGenerator()
        path = tmp_path / "report.json"
        generator.print_report(generator.build_report(sample_results()), 'json', str(path))
        assert json.loads(path.read_text(encoding="utf-8"))["summary"]["total_units"] == 3
        assert f"Report written to: {path}" in capsys.readouterr().out
