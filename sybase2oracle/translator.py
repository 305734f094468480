"""
Main translator for Sybase T-SQL to Oracle PL/SQL conversion.

Conversion is an ordered list of named text passes:

    preprocess -> protect literals -> type mapping -> identity columns ->
    routines -> statement rewriters -> syntax repair -> optimization ->
    restore literals -> strip

A pass that raises is skipped for that unit, logged and reported as a
warning; the remaining passes still run. Batches run units concurrently
with a per-unit time budget.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from .custom_rules import CustomRulesConfig, load_custom_rules
from .identity import rewrite_identity_columns
from .metrics import Metrics, compute_metrics
from .optimizer import DEFAULT_PARALLEL_DEGREE, OPTIMIZATION_LEVELS, optimize
from .patterns import DEFAULT_RULESET, RuleSet
from .preprocessor import LiteralVault, preprocess, protect
from .procedure_converter import transform_routines
from .statements import rewrite_statements
from .syntax_repair import repair_syntax
from .type_mappings import apply_type_mappings
from .validation import validate_sql


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_WORKERS = 4


class OptimizationLevel(Enum):
    CONSERVATIVE = "conservative"
    STANDARD = "standard"
    AGGRESSIVE = "aggressive"


class FailureKind(Enum):
    """Why a batch unit produced no result."""
    MALFORMED_INPUT = "MALFORMED_INPUT"
    TIMEOUT = "TIMEOUT"
    IO_FAILURE = "IO_FAILURE"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class ConversionOptions:
    """
    Options for one conversion.

    ``bulk_collect_cursors`` is implied by the aggressive level.
    """
    source_dialect: str = "sybase"
    target_dialect: str = "oracle"
    optimization_level: Union[str, OptimizationLevel] = "standard"
    bulk_collect_cursors: bool = False
    parallel_degree: int = DEFAULT_PARALLEL_DEGREE
    validate: bool = False
    timeout: float = DEFAULT_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS

    def __post_init__(self):
        level = self.optimization_level
        if isinstance(level, OptimizationLevel):
            level = level.value
        level = str(level).lower()
        if level not in OPTIMIZATION_LEVELS:
            raise ValueError(f"Unknown optimization level '{self.optimization_level}', "
                             f"expected one of: {', '.join(OPTIMIZATION_LEVELS)}")
        object.__setattr__(self, "optimization_level", level)
        if self.source_dialect.lower() != "sybase" or self.target_dialect.lower() != "oracle":
            raise ValueError(f"Unsupported conversion {self.source_dialect} -> {self.target_dialect}")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

    @property
    def use_bulk_collect(self) -> bool:
        return self.bulk_collect_cursors or self.optimization_level == OptimizationLevel.AGGRESSIVE.value


@dataclass(frozen=True)
class ConversionResult:
    """Result of converting one source unit."""
    original_text: str
    converted_text: str
    metrics: Metrics
    name: str = ""
    warnings: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.converted_text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "original_text": self.original_text,
            "converted_text": self.converted_text,
            "metrics": self.metrics.to_dict(),
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class ConversionFailure:
    kind: FailureKind
    message: str

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


@dataclass(frozen=True)
class UnitResult:
    """Outcome of one batch unit: a result or a failure, never both."""
    name: str
    result: Optional[ConversionResult] = None
    failure: Optional[ConversionFailure] = None

    @property
    def success(self) -> bool:
        return self.failure is None


@dataclass
class PassContext:
    """Mutable per-unit state shared by the passes of one conversion."""
    options: ConversionOptions
    rules: RuleSet
    warnings: List[str] = field(default_factory=list)
    vault: LiteralVault = field(default_factory=LiteralVault)


class Pass(NamedTuple):
    name: str
    fn: Callable[[str, PassContext], str]


# =============================================================================
# PASSES
# =============================================================================

def _protect(text: str, context: PassContext) -> str:
    masked, context.vault = protect(text)
    return masked


def _routines(text: str, context: PassContext) -> str:
    return transform_routines(text, context.options.use_bulk_collect, context.warnings)


def _statements(text: str, context: PassContext) -> str:
    return rewrite_statements(
        text,
        rules=context.rules,
        optimization_level=context.options.optimization_level,
        bulk_collect=context.options.use_bulk_collect,
        warnings=context.warnings,
    )


def _optimize(text: str, context: PassContext) -> str:
    return optimize(text, context.options.optimization_level,
                    context.options.parallel_degree, context.warnings)


def _validate(text: str, context: PassContext) -> str:
    if context.options.validate:
        context.warnings.extend(validate_sql(text))
    return text


DEFAULT_PASSES: Tuple[Pass, ...] = (
    Pass("preprocess", lambda text, context: preprocess(text)),
    Pass("protect", _protect),
    Pass("type_mapping", lambda text, context: apply_type_mappings(text)),
    Pass("identity", lambda text, context: rewrite_identity_columns(text)),
    Pass("routines", _routines),
    Pass("statements", _statements),
    Pass("syntax_repair", lambda text, context: repair_syntax(text)),
    Pass("optimization", _optimize),
    Pass("validation", _validate),
    Pass("restore", lambda text, context: context.vault.restore(text)),
    Pass("strip", lambda text, context: text.strip()),
)


def _unique(warnings: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(warnings))


def _unit_pair(unit: Union[Tuple[str, str], Dict[str, str]]) -> Tuple[str, str]:
    if isinstance(unit, dict):
        return unit.get("name", ""), unit.get("text", "")
    name, text = unit
    return name, text


class SybaseToOracleTranslator:
    """
    Translator for converting Sybase T-SQL scripts to Oracle PL/SQL.

    Example:
        >>> translator = SybaseToOracleTranslator()
        >>> print(translator.convert("SELECT ISNULL(a, 0) FROM t"))
        SELECT NVL(a, 0) FROM t

        # With custom rules
        >>> translator = SybaseToOracleTranslator(config_file="custom_rules.json")
    """

    def __init__(
        self,
        options: Optional[ConversionOptions] = None,
        config_file: Optional[str] = None,
        custom_rules_config: Optional[CustomRulesConfig] = None,
        rules: RuleSet = DEFAULT_RULESET,
    ):
        """
        Initialize the translator.

        Args:
            options: Conversion options; defaults to ConversionOptions()
            config_file: Optional path to a JSON file with custom rules
            custom_rules_config: Optional pre-loaded custom rules
            rules: Built-in rule set
        """
        self.options = options or ConversionOptions()
        self.rules = rules
        self.custom_rules_config = custom_rules_config
        if self.custom_rules_config is None and config_file is not None:
            self.custom_rules_config = load_custom_rules(config_file)
            logger.info("Loaded %d/%d custom rules from: %s",
                        len(self.custom_rules_config.get_enabled_rules()),
                        len(self.custom_rules_config.rules), config_file)
        self.passes = self._build_passes()

    def _build_passes(self) -> Tuple[Pass, ...]:
        config = self.custom_rules_config
        if config is None or not config.get_enabled_rules():
            return DEFAULT_PASSES
        custom = (Pass("custom_rules", self._apply_custom_rules),)
        if config.apply_before_default:
            return custom + DEFAULT_PASSES
        return DEFAULT_PASSES + custom

    def _apply_custom_rules(self, text: str, context: PassContext) -> str:
        text, applied = self.custom_rules_config.apply_all(text, context.warnings)
        context.warnings.extend(f"Applied custom rule: {name}" for name in applied)
        return text

    def _run_passes(self, text: str) -> Tuple[str, List[str]]:
        context = PassContext(options=self.options, rules=self.rules)
        for conversion_pass in self.passes:
            if conversion_pass.name == "custom_rules":
                # Rule failures honour continue_on_error instead of being skipped
                text = conversion_pass.fn(text, context)
                continue
            try:
                text = conversion_pass.fn(text, context)
            except Exception as e:
                logger.warning("Pass '%s' failed and was skipped: %s", conversion_pass.name, e)
                context.warnings.append(
                    f"Pass '{conversion_pass.name}' skipped: {type(e).__name__}: {e}"
                )
            else:
                logger.debug("Pass '%s' done (%d chars)", conversion_pass.name, len(text))
        return text, context.warnings

    def convert(self, source_text: str) -> str:
        """Convert Sybase source text to Oracle text."""
        return self.convert_unit(source_text).converted_text

    def convert_unit(self, source_text: str, name: str = "") -> ConversionResult:
        """
        Convert one source unit and score it.

        Args:
            source_text: Sybase source text
            name: Unit name carried into the result

        Returns:
            ConversionResult with metrics and warnings
        """
        converted, warnings = self._run_passes(source_text)
        return ConversionResult(
            original_text=source_text,
            converted_text=converted,
            metrics=compute_metrics(source_text, converted),
            name=name,
            warnings=_unique(warnings),
        )

    def _run_unit(self, name: str, text: str, cancel_event: Optional[threading.Event]) -> UnitResult:
        """
        Convert one batch unit within its time budget.

        The conversion runs in a daemon thread so that a unit over budget
        frees its pool worker; the thread itself is left to finish.
        """
        if cancel_event is not None and cancel_event.is_set():
            return UnitResult(name, failure=ConversionFailure(FailureKind.CANCELLED, "Batch cancelled"))

        outcome: Dict[str, Any] = {}

        def work() -> None:
            try:
                outcome["result"] = self.convert_unit(text, name)
            except BaseException as e:
                outcome["error"] = e

        thread = threading.Thread(target=work, name=f"convert-{name}", daemon=True)
        thread.start()
        thread.join(timeout=self.options.timeout)
        if thread.is_alive():
            logger.warning("Unit '%s' exceeded its %.1fs budget", name, self.options.timeout)
            return UnitResult(name, failure=ConversionFailure(
                FailureKind.TIMEOUT, f"Conversion exceeded {self.options.timeout:g}s"))

        error = outcome.get("error")
        if isinstance(error, (RuntimeError, ValueError)):
            return UnitResult(name, failure=ConversionFailure(FailureKind.MALFORMED_INPUT, str(error)))
        if error is not None:
            raise error
        return UnitResult(name, result=outcome["result"])

    def convert_batch(self, units: Sequence[Union[Tuple[str, str], Dict[str, str]]],
                      cancel_event: Optional[threading.Event] = None) -> List[UnitResult]:
        """
        Convert units concurrently, keeping input order.

        Each unit's time budget (``options.timeout``) starts when a worker
        picks it up. A unit over budget becomes a TIMEOUT failure and its
        worker moves on to the next unit; setting ``cancel_event`` turns
        units that have not started into CANCELLED failures. Units already
        running are left to finish.

        Args:
            units: ``(name, text)`` tuples or ``{"name", "text"}`` dicts
            cancel_event: Optional event that stops dispatching new units

        Returns:
            One UnitResult per unit, in input order
        """
        pairs = [_unit_pair(unit) for unit in units]
        if not pairs:
            return []

        with ThreadPoolExecutor(max_workers=min(self.options.max_workers, len(pairs))) as executor:
            futures = [executor.submit(self._run_unit, name, text, cancel_event) for name, text in pairs]
            return [future.result() for future in futures]


# =============================================================================
# MODULE-LEVEL API
# =============================================================================

def convert(source_text: str, options: Optional[ConversionOptions] = None) -> str:
    """
    Convert Sybase T-SQL text to Oracle PL/SQL text.

    Args:
        source_text: Sybase source text
        options: Conversion options

    Returns:
        Converted text
    """
    return SybaseToOracleTranslator(options).convert(source_text)


def convert_unit(source_text: str, options: Optional[ConversionOptions] = None,
                 name: str = "") -> ConversionResult:
    return SybaseToOracleTranslator(options).convert_unit(source_text, name)


def convert_batch(units: Sequence[Union[Tuple[str, str], Dict[str, str]]],
                  options: Optional[ConversionOptions] = None,
                  cancel_event: Optional[threading.Event] = None) -> List[UnitResult]:
    return SybaseToOracleTranslator(options).convert_batch(units, cancel_event)


def io_failure(name: str, error: Exception) -> UnitResult:
    """UnitResult for a unit whose source could not be read."""
    return UnitResult(name, failure=ConversionFailure(FailureKind.IO_FAILURE, str(error)))


__all__ = [
    "ConversionFailure",
    "ConversionOptions",
    "ConversionResult",
    "FailureKind",
    "OptimizationLevel",
    "Pass",
    "PassContext",
    "SybaseToOracleTranslator",
    "UnitResult",
    "compute_metrics",
    "convert",
    "convert_batch",
    "convert_unit",
    "io_failure",
]
