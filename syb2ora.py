#!/usr/bin/env python3
"""
Sybase to Oracle Translator - Command Line Interface

Usage:
    python syb2ora.py convert <input_file> [--output <output_file>] [--level <level>] [--config <rules_file>] [--report]
    python syb2ora.py batch <input_dir> <output_dir> [--recursive] [--config <rules_file>] [--report]
    python syb2ora.py inline "T-SQL text" [--level <level>] [--config <rules_file>]
    python syb2ora.py init-config [--output <config_file>]
    python syb2ora.py validate-config <config_file>
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from sybase2oracle import (
    ConversionOptions,
    SybaseToOracleTranslator,
    UnitResult,
    build_conversion_report,
    io_failure,
    load_custom_rules,
    print_conversion_report,
    save_sample_config,
    validate_config,
)
from sybase2oracle.custom_rules import CustomRuleError
from sybase2oracle.optimizer import OPTIMIZATION_LEVELS


SQL_EXTENSIONS = {'.sql', '.prc', '.proc', '.sp', '.trg', '.tab', '.ddl', '.fnc'}


def print_banner():
    print("=" * 60)
    print("  Sybase T-SQL to Oracle PL/SQL Translator")
    print("=" * 60)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def build_translator(args) -> SybaseToOracleTranslator:
    """Translator from the shared conversion flags; exits on a bad rules file."""
    options = ConversionOptions(
        optimization_level=args.level,
        bulk_collect_cursors=args.bulk_collect,
        parallel_degree=args.parallel_degree,
        validate=args.validate,
        timeout=getattr(args, 'timeout', 10.0),
        max_workers=getattr(args, 'workers', 4),
    )
    try:
        translator = SybaseToOracleTranslator(options, config_file=args.config)
    except (FileNotFoundError, CustomRuleError) as e:
        print(f"Error loading custom rules: {e}")
        sys.exit(1)
    if translator.custom_rules_config is not None:
        config = translator.custom_rules_config
        print(f"Loaded {len(config.get_enabled_rules())}/{len(config.rules)} "
              f"custom transformation rules from: {args.config}", file=sys.stderr)
    return translator


def print_unit_result(unit: UnitResult, verbose: bool = False) -> None:
    """Print the outcome of one unit to stderr."""
    if not unit.success:
        print(f"  ✗ {unit.name}: {unit.failure}", file=sys.stderr)
        return
    result = unit.result
    marker = "⚠" if result.warnings else "✓"
    print(f"  {marker} {unit.name}: complexity {result.metrics.original_complexity} -> "
          f"{result.metrics.converted_complexity}, improvement {result.metrics.improvement_percent}",
          file=sys.stderr)
    if verbose or len(result.warnings) <= 3:
        for warning in result.warnings:
            print(f"      - {warning}", file=sys.stderr)
    else:
        print(f"      {len(result.warnings)} warnings (use --verbose to list them)", file=sys.stderr)


def read_unit(path: Path, name: str) -> Tuple[Optional[str], Optional[UnitResult]]:
    """Read a source file; a read error becomes an IO_FAILURE unit."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read(), None
    except (OSError, UnicodeDecodeError) as e:
        return None, io_failure(name, e)


def convert_file(args):
    """Convert one Sybase script."""
    input_path = Path(args.input_file)
    text, failure = read_unit(input_path, input_path.name)
    if failure is not None:
        print(f"Error: {failure.failure}")
        return 1

    translator = build_translator(args)
    print(f"Converting: {input_path}", file=sys.stderr)
    try:
        unit = UnitResult(input_path.name, result=translator.convert_unit(text, input_path.name))
    except RuntimeError as e:
        print(f"Error: {e}")
        return 1
    result = unit.result

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            for warning in result.warnings:
                f.write(f"-- WARNING: {warning}\n")
            f.write(result.converted_text)
            f.write("\n")
        print(f"Output written to: {output_path}", file=sys.stderr)
    else:
        print(result.converted_text)

    print_unit_result(unit, args.verbose)
    if args.report:
        print_conversion_report(build_conversion_report([unit]),
                                output_format=args.report_format,
                                output_file=args.report_output)
    return 0


def find_sql_files(input_dir: Path, recursive: bool) -> List[Path]:
    candidates = input_dir.rglob('*') if recursive else input_dir.iterdir()
    return sorted(f for f in candidates if f.is_file() and f.suffix.lower() in SQL_EXTENSIONS)


def batch_translate(args):
    """Convert every Sybase script in a directory."""
    input_dir = Path(args.input_dir)
    output_dir = Path(args.output_dir)

    if not input_dir.is_dir():
        print(f"Error: Input directory '{input_dir}' not found or not a directory.")
        return 1

    sql_files = find_sql_files(input_dir, args.recursive)
    if not sql_files:
        print(f"No SQL files found in '{input_dir}'")
        return 0

    translator = build_translator(args)
    print_banner()
    print(f"Batch conversion of {len(sql_files)} file(s) from '{input_dir}'")

    names = [str(path.relative_to(input_dir)) for path in sql_files]
    units: List[Optional[UnitResult]] = []
    pending = []
    for path, name in zip(sql_files, names):
        text, failure = read_unit(path, name)
        units.append(failure)
        if failure is None:
            pending.append((name, text))

    converted = iter(translator.convert_batch(pending))
    results: List[UnitResult] = [unit if unit is not None else next(converted) for unit in units]

    output_dir.mkdir(parents=True, exist_ok=True)
    for unit in results:
        print_unit_result(unit, args.verbose)
        if not unit.success:
            continue
        output_path = output_dir / unit.name
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(unit.result.converted_text)
                f.write("\n")
        except OSError as e:
            print(f"  ✗ {unit.name}: cannot write output: {e}", file=sys.stderr)

    successful = sum(1 for unit in results if unit.success)
    print(f"\n{successful}/{len(results)} file(s) converted into '{output_dir}'")

    if args.report:
        print_conversion_report(build_conversion_report(results),
                                output_format=args.report_format,
                                output_file=args.report_output)
    return 0 if successful == len(results) else 1


def translate_inline(args):
    """Convert T-SQL given on the command line."""
    translator = build_translator(args)
    try:
        result = translator.convert_unit(args.sql, "inline")
    except RuntimeError as e:
        print(f"Error: {e}")
        return 1
    for warning in result.warnings:
        print(f"-- WARNING: {warning}", file=sys.stderr)
    print(result.converted_text)
    if args.verbose:
        print(f"-- Improvement: {result.metrics.improvement_percent}", file=sys.stderr)
    return 0


def init_config(args):
    """Generate a sample custom rules configuration file."""
    output_path = Path(args.output)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        save_sample_config(str(output_path))
    except OSError as e:
        print(f"Error creating configuration file: {e}")
        return 1
    print(f"\n✓ Configuration file created: {output_path}")
    print("\nEdit the file to add conversions for in-house procedures and functions.")
    print("\nUsage:")
    print(f"  python syb2ora.py convert input.sql -o output.sql --config {output_path}")
    return 0


def validate_config_cmd(args):
    """Validate a custom rules configuration file."""
    config_path = args.config_file
    print(f"Validating configuration file: {config_path}")

    is_valid, errors = validate_config(config_path)
    if not is_valid:
        print("\n✗ Configuration is invalid!")
        print("\nErrors:")
        for error in errors:
            print(f"  • {error}")
        return 1

    config = load_custom_rules(config_path)
    enabled_rules = config.get_enabled_rules()
    print("\n✓ Configuration is valid!")
    print("\nRules summary:")
    print(f"  Total rules:    {len(config.rules)}")
    print(f"  Enabled rules:  {len(enabled_rules)}")
    print(f"  Disabled rules: {len(config.rules) - len(enabled_rules)}")
    if enabled_rules:
        print("\nEnabled rules (by priority):")
        for rule in enabled_rules:
            print(f"  [{rule.priority:3d}] {rule.name}")
            if rule.description:
                print(f"        {rule.description}")
    print("\nSettings:")
    print(f"  Apply before default: {config.apply_before_default}")
    print(f"  Continue on error:    {config.continue_on_error}")
    return 0


def add_conversion_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--level', '-l',
        choices=OPTIMIZATION_LEVELS,
        default='standard',
        help='Optimization level (default: standard)'
    )
    parser.add_argument(
        '--bulk-collect',
        action='store_true',
        default=False,
        help='Rewrite cursor fetch loops to BULK COLLECT (implied by --level aggressive)'
    )
    parser.add_argument(
        '--parallel-degree',
        type=int,
        default=4,
        help='Degree used in PARALLEL hints at the aggressive level (default: 4)'
    )
    parser.add_argument(
        '--config', '-c',
        help='Path to JSON file containing custom transformation rules'
    )
    parser.add_argument(
        '--validate',
        action='store_true',
        default=False,
        help='Parse plain SQL statements of the output with sqlglot and report failures'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        default=False,
        help='Show every warning and enable debug logging'
    )


def add_report_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--report', '-R',
        action='store_true',
        default=False,
        help='Generate a conversion report'
    )
    parser.add_argument(
        '--report-format',
        choices=['text', 'json'],
        default='text',
        help='Format for the conversion report (default: text)'
    )
    parser.add_argument(
        '--report-output',
        help='Write report to file instead of stdout'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sybase T-SQL to Oracle PL/SQL Translator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Convert a script
  python syb2ora.py convert orders.sql --output orders_ora.sql

  # Aggressive optimization with a JSON report
  python syb2ora.py convert orders.sql -o out.sql --level aggressive --report --report-format json

  # Batch convert a directory with custom rules
  python syb2ora.py batch ./sybase_scripts ./oracle_scripts --recursive --config extra_config/custom_rules.json

  # Quick inline conversion
  python syb2ora.py inline "SELECT TOP 5 * FROM orders"

  # Generate and validate a custom rules configuration file
  python syb2ora.py init-config --output extra_config/custom_rules.json
  python syb2ora.py validate-config extra_config/custom_rules.json
"""
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    convert_parser = subparsers.add_parser('convert', help='Convert a Sybase T-SQL file to Oracle PL/SQL')
    convert_parser.add_argument('input_file', help='Input Sybase T-SQL file')
    convert_parser.add_argument(
        '--output', '-o',
        help='Output file path (prints to stdout if not specified)'
    )
    add_conversion_arguments(convert_parser)
    add_report_arguments(convert_parser)
    convert_parser.set_defaults(func=convert_file)

    batch_parser = subparsers.add_parser('batch', help='Convert all Sybase T-SQL files in a directory')
    batch_parser.add_argument('input_dir', help='Input directory containing Sybase scripts')
    batch_parser.add_argument('output_dir', help='Output directory for Oracle scripts')
    batch_parser.add_argument(
        '--recursive', '-r',
        action='store_true',
        default=False,
        help='Recursively process subdirectories'
    )
    batch_parser.add_argument(
        '--timeout',
        type=float,
        default=10.0,
        help='Time budget per file in seconds (default: 10)'
    )
    batch_parser.add_argument(
        '--workers',
        type=int,
        default=4,
        help='Number of worker threads (default: 4)'
    )
    add_conversion_arguments(batch_parser)
    add_report_arguments(batch_parser)
    batch_parser.set_defaults(func=batch_translate)

    inline_parser = subparsers.add_parser('inline', help='Convert T-SQL text given on the command line')
    inline_parser.add_argument('sql', help='Sybase T-SQL text to convert')
    add_conversion_arguments(inline_parser)
    inline_parser.set_defaults(func=translate_inline)

    init_config_parser = subparsers.add_parser(
        'init-config',
        help='Generate a sample custom_rules.json configuration file'
    )
    init_config_parser.add_argument(
        '--output', '-o',
        default='extra_config/custom_rules.json',
        help='Output path for the configuration file (default: extra_config/custom_rules.json)'
    )
    init_config_parser.set_defaults(func=init_config)

    validate_config_parser = subparsers.add_parser(
        'validate-config',
        help='Validate a custom rules configuration file'
    )
    validate_config_parser.add_argument('config_file', help='Path to the configuration file to validate')
    validate_config_parser.set_defaults(func=validate_config_cmd)
    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        print_banner()
        parser.print_help()
        return 0

    configure_logging(getattr(args, 'verbose', False))
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
