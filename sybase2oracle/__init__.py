"""
Sybase to Oracle Translator

Rule-based rewriting of Sybase T-SQL scripts (tables, procedures,
triggers, functions and loose batches) to Oracle PL/SQL, with sqlglot
used for join rewriting and output validation.
"""

from .translator import (
    ConversionFailure,
    ConversionOptions,
    ConversionResult,
    FailureKind,
    OptimizationLevel,
    SybaseToOracleTranslator,
    UnitResult,
    convert,
    convert_batch,
    convert_unit,
    io_failure,
)
from .metrics import Metrics, compute_metrics
from .custom_rules import (
    CustomRule,
    CustomRulesConfig,
    load_custom_rules,
    save_sample_config,
    validate_config,
)
from .report_generator import (
    ConversionReport,
    ReportGenerator,
    build_conversion_report,
    print_conversion_report,
)
from .preprocessor import strip_literals

__version__ = "0.1.0"
__all__ = [
    "SybaseToOracleTranslator",
    "ConversionOptions",
    "ConversionResult",
    "ConversionFailure",
    "FailureKind",
    "OptimizationLevel",
    "UnitResult",
    "Metrics",
    "convert",
    "convert_unit",
    "convert_batch",
    "compute_metrics",
    "io_failure",
    "CustomRule",
    "CustomRulesConfig",
    "load_custom_rules",
    "save_sample_config",
    "validate_config",
    "ConversionReport",
    "ReportGenerator",
    "build_conversion_report",
    "print_conversion_report",
    "strip_literals",
]
