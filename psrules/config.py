"""
psrules/config.py
=================

Analyzer settings.

Settings come from a JSON object, usually a file passed with
``--settings``::

    {
      "include_rules": ["PSUseCmdlet*"],
      "exclude_rules": [],
      "severity": ["Warning", "Error"],
      "inventory": "commands.json",
      "culture": "en-US"
    }

Every key is optional.  Rule names may use shell wildcards.  A relative
``inventory`` path is taken relative to the settings file.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, FrozenSet, List, Mapping, Optional, Union

from psrules import strings
from psrules.diagnostics import DiagnosticSeverity
from psrules.errors import ConfigError

_log = logging.getLogger(__name__)

_LIST_KEYS = ("include_rules", "exclude_rules", "severity")
_STR_KEYS = ("inventory", "culture")


@dataclass
class AnalyzerConfig:
    """Rule selection, severity filter and metadata source for one run."""
    include_rules: List[str] = field(default_factory=list)
    exclude_rules: List[str] = field(default_factory=list)
    severity: List[str] = field(default_factory=list)
    inventory: Optional[str] = None
    culture: Optional[str] = None

    def severity_levels(self) -> FrozenSet[DiagnosticSeverity]:
        """The ``severity`` filter as enum members; raises ``ConfigError`` on unknown names."""
        levels = set()
        for name in self.severity:
            try:
                levels.add(DiagnosticSeverity.parse(name))
            except ValueError as exc:
                raise ConfigError(str(exc), cause=exc) from exc
        return frozenset(levels)

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        overlap = {r.lower() for r in self.include_rules} & {r.lower() for r in self.exclude_rules}
        if overlap:
            warnings.append(
                f"rules both included and excluded: {', '.join(sorted(overlap))}"
            )
        if self.culture and self.culture not in strings.available_cultures():
            warnings.append(
                f"culture {self.culture} has no messages; using {strings.DEFAULT_CULTURE}"
            )
        if self.inventory and not Path(self.inventory).is_file():
            warnings.append(f"inventory file {self.inventory} does not exist")
        return warnings

    def merge(self, **overrides: Any) -> "AnalyzerConfig":
        """A copy with every non-empty override applied (command-line flags win)."""
        values = {
            "include_rules": list(self.include_rules),
            "exclude_rules": list(self.exclude_rules),
            "severity": list(self.severity),
            "inventory": self.inventory,
            "culture": self.culture,
        }
        for key, value in overrides.items():
            if key not in values:
                raise ConfigError(f"Unknown setting {key!r}")
            if value:
                values[key] = list(value) if key in _LIST_KEYS else value
        return AnalyzerConfig(**values)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source: str = "<dict>") -> "AnalyzerConfig":
        if not isinstance(data, Mapping):
            raise ConfigError(f"{source}: settings must be a JSON object")
        unknown = sorted(set(data) - set(_LIST_KEYS) - set(_STR_KEYS))
        if unknown:
            raise ConfigError(f"{source}: unknown setting(s): {', '.join(unknown)}")
        values = {}
        for key in _LIST_KEYS:
            if key not in data:
                continue
            value = data[key]
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{source}: '{key}' must be a list of strings")
            values[key] = value
        for key in _STR_KEYS:
            if key not in data or data[key] is None:
                continue
            if not isinstance(data[key], str):
                raise ConfigError(f"{source}: '{key}' must be a string")
            values[key] = data[key]
        config = cls(**values)
        config.severity_levels()
        return config


def load_config(path: Union[str, Path]) -> AnalyzerConfig:
    """Read a JSON settings file.  Raises :class:`ConfigError` on bad data."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8-sig"))
    except OSError as exc:
        raise ConfigError(f"Cannot read settings {p}: {exc}", cause=exc) from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{p}: invalid JSON: {exc}", cause=exc) from exc
    config = AnalyzerConfig.from_dict(data, str(p))
    if config.inventory and not Path(config.inventory).is_absolute():
        config.inventory = str(p.parent / config.inventory)
    for warning in config.validate():
        _log.warning("%s: %s", p, warning)
    return config


__all__ = [
    "AnalyzerConfig",
    "load_config",
]
