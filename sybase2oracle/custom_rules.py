"""
User-defined conversion rules.

In-house Sybase procedures, site-specific functions and schema renames are
handled by regex rules loaded from a JSON file and run around the built-in
passes.

Example JSON configuration:
{
  "custom_rules": [
    {
      "name": "Convert fn_fmt_amount",
      "description": "dbo.fn_fmt_amount(x) -> TO_CHAR(x, 'FM999G999D00')",
      "pattern": "(?:dbo\\.)?fn_fmt_amount\\s*\\(\\s*([^)]+?)\\s*\\)",
      "replacement": "TO_CHAR(\\1, 'FM999G999D00')",
      "flags": ["IGNORECASE"],
      "enabled": true,
      "priority": 100
    }
  ],
  "settings": {
    "apply_before_default": true,
    "continue_on_error": true
  }
}
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)

FLAG_NAMES = {
    'IGNORECASE': re.IGNORECASE,
    'I': re.IGNORECASE,
    'MULTILINE': re.MULTILINE,
    'M': re.MULTILINE,
    'DOTALL': re.DOTALL,
    'S': re.DOTALL,
    'VERBOSE': re.VERBOSE,
    'X': re.VERBOSE,
}


class CustomRuleError(ValueError):
    """A custom rule failed to compile or to apply."""


@dataclass
class CustomRule:
    """A single regex rule from the configuration file."""
    name: str
    pattern: str
    replacement: str
    description: str = ""
    flags: List[str] = field(default_factory=list)
    enabled: bool = True
    priority: int = 100  # Higher runs first

    def __post_init__(self):
        regex_flags = 0
        for flag in self.flags:
            if flag.upper() not in FLAG_NAMES:
                raise CustomRuleError(f"Unknown regex flag '{flag}' in rule '{self.name}'")
            regex_flags |= FLAG_NAMES[flag.upper()]
        try:
            self.compiled_pattern = re.compile(self.pattern, regex_flags)
        except re.error as e:
            raise CustomRuleError(f"Invalid regex pattern in rule '{self.name}': {e}")

    def apply(self, sql: str) -> Tuple[str, bool]:
        """
        Apply this rule.

        Returns:
            Tuple of (transformed text, was_modified)

        Raises:
            CustomRuleError: If the replacement template is invalid for the match
        """
        if not self.enabled:
            return sql, False
        try:
            new_sql = self.compiled_pattern.sub(self.replacement, sql)
        except (re.error, IndexError) as e:
            raise CustomRuleError(f"Error applying rule '{self.name}': {e}")
        return new_sql, new_sql != sql


@dataclass
class CustomRulesConfig:
    """Loaded rules plus the settings that control when they run."""
    rules: List[CustomRule] = field(default_factory=list)
    apply_before_default: bool = True
    continue_on_error: bool = True
    source_file: Optional[str] = None

    def get_enabled_rules(self) -> List[CustomRule]:
        """Enabled rules, highest priority first; ties keep file order."""
        return sorted([r for r in self.rules if r.enabled], key=lambda r: -r.priority)

    def apply_all(self, sql: str, warnings: Optional[List[str]] = None) -> Tuple[str, List[str]]:
        """
        Apply every enabled rule in priority order.

        Args:
            sql: Text to transform
            warnings: Optional list receiving one entry per failed rule

        Returns:
            Tuple of (transformed text, names of the rules that changed it)

        Raises:
            RuntimeError: If a rule fails and continue_on_error is off
        """
        applied_rules = []
        for rule in self.get_enabled_rules():
            try:
                sql, was_modified = rule.apply(sql)
            except CustomRuleError as e:
                if not self.continue_on_error:
                    raise RuntimeError(str(e)) from e
                logger.warning("%s", e)
                if warnings is not None:
                    warnings.append(str(e))
                continue
            if was_modified:
                logger.debug("Custom rule applied: %s", rule.name)
                applied_rules.append(rule.name)
        return sql, applied_rules


def load_custom_rules(config_path: str) -> CustomRulesConfig:
    """
    Load rules from a JSON configuration file.

    Raises:
        FileNotFoundError: If the file does not exist
        CustomRuleError: If the file is not valid JSON or a rule is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Custom rules configuration file not found: {config_path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config_data = json.load(f)
    except json.JSONDecodeError as e:
        raise CustomRuleError(f"Invalid JSON in configuration file '{config_path}': {e}")

    return parse_config(config_data, source_file=str(path))


def parse_config(config_data: Dict[str, Any], source_file: Optional[str] = None) -> CustomRulesConfig:
    if not isinstance(config_data, dict):
        raise CustomRuleError("Configuration must be a JSON object")

    settings = config_data.get('settings', {})
    rules = []
    for i, rule_data in enumerate(config_data.get('custom_rules', [])):
        for required in ('pattern', 'replacement'):
            if required not in rule_data:
                raise CustomRuleError(f"Rule {i + 1} is missing required '{required}' field")
        rules.append(CustomRule(
            name=rule_data.get('name', f'Rule_{i + 1}'),
            pattern=rule_data['pattern'],
            replacement=rule_data['replacement'],
            description=rule_data.get('description', ''),
            flags=rule_data.get('flags', []),
            enabled=rule_data.get('enabled', True),
            priority=rule_data.get('priority', 100),
        ))

    return CustomRulesConfig(
        rules=rules,
        apply_before_default=settings.get('apply_before_default', True),
        continue_on_error=settings.get('continue_on_error', True),
        source_file=source_file,
    )


def create_sample_config() -> Dict[str, Any]:
    """Sample configuration with a few typical Sybase shop rules."""
    return {
        "description": "Custom transformation rules for Sybase to Oracle conversion",
        "settings": {
            "apply_before_default": True,
            "continue_on_error": True
        },
        "custom_rules": [
            {
                "name": "Convert fn_fmt_amount",
                "description": "In-house dbo.fn_fmt_amount(x) -> TO_CHAR with a money format",
                "pattern": r"(?:dbo\.)?fn_fmt_amount\s*\(\s*([^)]+?)\s*\)",
                "replacement": r"TO_CHAR(\1, 'FM999G999D00')",
                "flags": ["IGNORECASE"],
                "enabled": True,
                "priority": 100
            },
            {
                "name": "Call audit procedure through package",
                "description": "sp_audit_log -> audit_pkg.log_event",
                "pattern": r"\bsp_audit_log\b",
                "replacement": "audit_pkg.log_event",
                "flags": ["IGNORECASE"],
                "enabled": True,
                "priority": 90
            },
            {
                "name": "Rename legacy database prefix",
                "description": "legacy_db.. -> app_schema.",
                "pattern": r"\blegacy_db\.\.",
                "replacement": "app_schema.",
                "flags": ["IGNORECASE"],
                "enabled": False,
                "priority": 50
            }
        ]
    }


def save_sample_config(output_path: str) -> None:
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(create_sample_config(), f, indent=2, ensure_ascii=False)
    logger.info("Sample configuration saved to: %s", output_path)


def validate_config(config_path: str) -> Tuple[bool, List[str]]:
    """
    Check that a configuration file loads and that every rule applies.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    try:
        config = load_custom_rules(config_path)
    except (FileNotFoundError, CustomRuleError) as e:
        return False, [str(e)]

    errors = []
    for rule in config.rules:
        try:
            rule.apply("SELECT * FROM test WHERE id = 1")
        except CustomRuleError as e:
            errors.append(str(e))
    return not errors, errors


def apply_custom_rules(sql: str, config: Optional[CustomRulesConfig],
                       warnings: Optional[List[str]] = None) -> Tuple[str, List[str]]:
    """Apply ``config`` to ``sql``; no config means no change."""
    if config is None:
        return sql, []
    return config.apply_all(sql, warnings)
