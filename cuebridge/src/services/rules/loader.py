"""Rule loader for TOML, YAML and JSON rule files.

This module provides rule file discovery, parsing, and validation.
A rule file holds one rule or a list of rules:

    # single rule (TOML)
    [rule]
    id = "greet-chat"
    on = "chat"
    condition = "len(data.comment) > 0"

    [[rule.actions]]
    type = "TTS"
    params = { message = "{{ data.comment }}" }

    # many rules (TOML)
    [[rules]]
    id = "a"
    ...

YAML and JSON files use the same keys; a top-level list is read as
many rules.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import toml
import yaml

from .condition import validate_condition
from .rule import ActionInvocation, Rule


logger = logging.getLogger(__name__)


RULE_FILE_SUFFIXES = frozenset({".toml", ".yaml", ".yml", ".json"})

# Accepted spellings for rule fields, first match wins
EVENT_NAME_KEYS = ("event_name", "eventName", "event", "on")
CONDITION_KEYS = ("condition", "if", "when")
ACTIONS_KEYS = ("actions", "do")
ACTION_TYPE_KEYS = ("type", "action", "name")
ACTION_RESERVED_KEYS = frozenset(
    {"type", "action", "name", "params", "condition", "if", "when", "as", "result_as"}
)


class RuleLoadError(Exception):
    """Raised when rule loading or validation fails."""

    pass


def is_rule_file(path: Path) -> bool:
    """Return True for visible files with a supported rule suffix."""
    return path.suffix.lower() in RULE_FILE_SUFFIXES and not path.name.startswith(".")


def _first(data: dict[str, Any], keys: tuple[str, ...], default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


class RuleLoader:
    """Loads rules from a directory of rule files.

    Files are read in sorted filename order and rules keep their order
    within each file, so the resulting list is deterministic.

    Example:
        loader = RuleLoader(Path("rules/"))
        rules = loader.load_all()
        for rule in rules:
            print(f"Loaded rule: {rule.id}")
    """

    def __init__(self, rules_dir: Path) -> None:
        self.rules_dir = rules_dir
        self.errors: list[str] = []

    def discover(self) -> list[Path]:
        """List rule files in load order."""
        if not self.rules_dir.is_dir():
            return []
        return sorted(p for p in self.rules_dir.iterdir() if p.is_file() and is_rule_file(p))

    def load_all(self, skip_invalid: bool = True) -> list[Rule]:
        """Load all rules from the rules directory.

        Args:
            skip_invalid: If True, skip invalid files and rules with a
                warning instead of raising.

        Returns:
            List of loaded Rule instances.

        Raises:
            RuleLoadError: If a file or rule is invalid and skip_invalid is False.
        """
        rules: list[Rule] = []
        seen_ids: dict[str, str] = {}
        self.errors = []

        if not self.rules_dir.exists():
            logger.warning(f"Rules directory does not exist: {self.rules_dir}")
            return rules

        for rule_file in self.discover():
            try:
                file_rules = self.load_file(rule_file, skip_invalid=skip_invalid)
            except RuleLoadError as e:
                self.errors.append(str(e))
                if skip_invalid:
                    logger.warning(f"Skipping invalid rule file {rule_file}: {e}")
                    continue
                raise

            for rule in file_rules:
                if rule.id in seen_ids:
                    message = (
                        f"Duplicate rule id '{rule.id}' in {rule_file} "
                        f"(already loaded from {seen_ids[rule.id]})"
                    )
                    self.errors.append(message)
                    if not skip_invalid:
                        raise RuleLoadError(message)
                    logger.warning(f"{message}; keeping the first definition")
                    continue
                seen_ids[rule.id] = rule.source_path
                rules.append(rule)
                logger.debug(f"Loaded rule: {rule.id} from {rule_file}")

        logger.info(f"Loaded {len(rules)} rules from {self.rules_dir}")
        return rules

    def load_file(self, path: Path, skip_invalid: bool = True) -> list[Rule]:
        """Load every rule declared in one file.

        Raises:
            RuleLoadError: If the file cannot be read or parsed, or if a
                rule is invalid and skip_invalid is False.
        """
        data = self._read(path)
        entries = self._rule_entries(data, path)

        rules: list[Rule] = []
        for index, entry in enumerate(entries):
            try:
                rules.append(self.parse_rule(entry, str(path)))
            except RuleLoadError as e:
                message = f"{path} rule #{index + 1}: {e}"
                if not skip_invalid:
                    raise RuleLoadError(message) from e
                self.errors.append(message)
                logger.warning(f"Skipping invalid rule: {message}")
        return rules

    def _read(self, path: Path) -> Any:
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise RuleLoadError(f"Rule file not found: {path}")
        except (OSError, UnicodeDecodeError) as e:
            raise RuleLoadError(f"Cannot read rule file {path}: {e}")

        suffix = path.suffix.lower()
        try:
            if suffix == ".toml":
                return toml.loads(content)
            if suffix in (".yaml", ".yml"):
                return yaml.safe_load(content)
            if suffix == ".json":
                return json.loads(content)
        except toml.TomlDecodeError as e:
            raise RuleLoadError(f"TOML parse error in {path}: {e}")
        except yaml.YAMLError as e:
            raise RuleLoadError(f"YAML parse error in {path}: {e}")
        except json.JSONDecodeError as e:
            raise RuleLoadError(f"JSON parse error in {path}: {e}")

        raise RuleLoadError(f"Unsupported rule file type: {path}")

    def _rule_entries(self, data: Any, path: Path) -> list[dict[str, Any]]:
        if data is None:
            return []
        if isinstance(data, list):
            entries = data
        elif isinstance(data, dict) and "rules" in data:
            entries = data["rules"]
        elif isinstance(data, dict) and "rule" in data:
            entries = [self._merge_sections(data)]
        elif isinstance(data, dict):
            entries = [data]
        else:
            raise RuleLoadError(f"Rule file {path} must contain a mapping or a list")

        if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
            raise RuleLoadError(f"Rules in {path} must be a list of tables/mappings")
        return entries

    @staticmethod
    def _merge_sections(data: dict[str, Any]) -> dict[str, Any]:
        """Fold ``[condition]`` and top-level ``[[actions]]`` into ``[rule]``."""
        entry = dict(data["rule"])
        condition = data.get("condition")
        if condition is not None and not any(key in entry for key in CONDITION_KEYS):
            entry["condition"] = condition
        for key in ACTIONS_KEYS:
            if key in data and not any(k in entry for k in ACTIONS_KEYS):
                entry["actions"] = data[key]
        return entry

    def parse_rule(self, data: dict[str, Any], source_path: str = "") -> Rule:
        """Parse and validate one rule mapping.

        Raises:
            RuleLoadError: If required fields are missing or invalid.
        """
        # YAML 1.1 reads a bare `on:` key as boolean True
        if True in data and "on" not in data:
            data = {("on" if key is True else key): value for key, value in data.items()}

        rule_id = data.get("id")
        if rule_id is not None:
            rule_id = str(rule_id)

        actions_data = _first(data, ACTIONS_KEYS, [])
        if isinstance(actions_data, (dict, str)):
            actions_data = [actions_data]
        if not isinstance(actions_data, list):
            raise RuleLoadError(f"Rule '{rule_id}' actions must be a list")

        actions = tuple(self._parse_action(a, rule_id) for a in actions_data)

        rule = Rule(
            id=rule_id or "",
            event_name=_first(data, EVENT_NAME_KEYS, ""),
            condition=self._parse_condition(_first(data, CONDITION_KEYS)),
            actions=actions,
            enabled=bool(data.get("enabled", True)),
            name=str(data.get("name", rule_id or "")),
            description=str(data.get("description", "")),
            source_path=source_path,
        )

        errors = rule.validate(require_actions=True)
        errors.extend(validate_condition(rule.condition))
        for action in rule.actions:
            errors.extend(f"action '{action.type}': {e}" for e in validate_condition(action.condition))
        if errors:
            raise RuleLoadError(
                "Validation errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )
        return rule

    @staticmethod
    def _parse_condition(condition: Any) -> Any:
        if isinstance(condition, dict) and set(condition) == {"expression"}:
            return str(condition["expression"])
        if isinstance(condition, str) and not condition.strip():
            return None
        return condition

    def _parse_action(self, data: Any, rule_id: Optional[str]) -> ActionInvocation:
        if isinstance(data, str):
            return ActionInvocation(type=data)
        if not isinstance(data, dict):
            raise RuleLoadError(f"Rule '{rule_id}' has an action that is not a table/mapping")

        action_type = _first(data, ACTION_TYPE_KEYS)
        if "params" in data:
            params = data["params"]
            if params is None:
                params = {}
        else:
            params = {k: v for k, v in data.items() if k not in ACTION_RESERVED_KEYS}

        return ActionInvocation(
            type=str(action_type) if action_type is not None else "",
            params=params,
            condition=self._parse_condition(_first(data, CONDITION_KEYS)),
            result_as=data.get("as", data.get("result_as")),
        )
