"""
psrules/rules.py
════════════════

Rule framework: the :class:`ScriptRule` base class, an explicit
:class:`RuleRegistry`, and the :class:`RuleRunner` that drives a set of
rules over one syntax tree.

Architecture
────────────
::

    ScriptRule (ABC)
      ├── identity classmethods (get_name, get_common_name, ...)
      └── analyze_script(ast, file_name) → List[DiagnosticRecord]

    RuleRegistry   – rule classes keyed by qualified name, enable/disable
    RuleRunner     – parse → run every selected rule → RunResults
    RunResults     – aggregated diagnostics, per-rule grouping, timings

Rules are registered explicitly; nothing is discovered by scanning
modules.  A rule that raises is isolated: the runner records an
``INFORMATION`` diagnostic and carries on with the next rule.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Dict,
    List,
    Optional,
    Sequence,
    Set,
    Type,
    Union,
)

from psrules import strings
from psrules.ast_nodes import Ast, ScriptExtent
from psrules.diagnostics import DiagnosticRecord, DiagnosticSeverity, SourceType
from psrules.errors import InvalidAstError, ParseError
from psrules.metadata import (
    AliasResolver,
    CommandInventory,
    CommandMetadataProvider,
)
from psrules.parser import parse_script

if TYPE_CHECKING:
    from psrules.config import AnalyzerConfig

_log = logging.getLogger(__name__)

#: ``rule_name`` of the record emitted when a rule itself fails.
INTERNAL_ERROR_RULE = "ruleInternalError"
#: ``rule_name`` of the record emitted when a script cannot be parsed.
PARSE_ERROR_RULE = "ParseError"


# ═════════════════════════════════════════════════════════════════════════
#  PART 1: RULE BASE CLASS
# ═════════════════════════════════════════════════════════════════════════

class ScriptRule(ABC):
    """
    Abstract base class for rules that inspect a whole script.

    Subclass Contract
    ─────────────────
      - Set ``resource_key`` to the prefix of the rule's entries in
        :mod:`psrules.strings` (``<key>Name``, ``<key>CommonName``,
        ``<key>Description``)
      - Implement ``analyze_script()``
    """

    resource_key: ClassVar[str] = ""
    source_type: ClassVar[SourceType] = SourceType.BUILTIN

    def __init__(
        self,
        commands: Optional[CommandMetadataProvider] = None,
        aliases: Optional[AliasResolver] = None,
    ) -> None:
        if commands is None:
            commands = CommandInventory()
        if aliases is None:
            aliases = commands if isinstance(commands, AliasResolver) else CommandInventory()
        self.commands = commands
        self.aliases = aliases

    @abstractmethod
    def analyze_script(self, ast: Ast, file_name: str) -> List[DiagnosticRecord]:
        """
        Analyze one syntax tree.

        Raises ``InvalidAstError`` when *ast* is None.
        """
        ...

    # ── Identity ─────────────────────────────────────────────────────

    @classmethod
    def get_name(cls) -> str:
        """Qualified rule name, e.g. ``PSUseCmdletCorrectly``."""
        return strings.format_string(
            "NameSpaceFormat",
            cls.get_source_name(),
            strings.get_string(f"{cls.resource_key}Name"),
        )

    @classmethod
    def get_common_name(cls) -> str:
        return strings.get_string(f"{cls.resource_key}CommonName")

    @classmethod
    def get_description(cls) -> str:
        return strings.get_string(f"{cls.resource_key}Description")

    @classmethod
    def get_source_type(cls) -> SourceType:
        return cls.source_type

    @classmethod
    def get_source_name(cls) -> str:
        return strings.get_string("SourceName")


# ═════════════════════════════════════════════════════════════════════════
#  PART 2: REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class RuleRegistry:
    """
    Registry of available rules with filtering.

    Usage
    -----
    >>> registry = RuleRegistry()
    >>> registry.register(UseCmdletCorrectly)
    >>> rules = registry.get_enabled()
    """

    def __init__(self) -> None:
        self._rules: Dict[str, Type[ScriptRule]] = {}
        self._disabled: Set[str] = set()

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def register(self, rule_cls: Type[ScriptRule]) -> None:
        """Register a rule class under its qualified name."""
        self._rules[rule_cls.get_name()] = rule_cls

    def unregister(self, name: str) -> None:
        self._rules.pop(name, None)
        self._disabled.discard(name)

    def disable(self, name: str) -> None:
        self._disabled.add(name)

    def enable(self, name: str) -> None:
        self._disabled.discard(name)

    def get_all(self) -> List[Type[ScriptRule]]:
        return list(self._rules.values())

    def get_enabled(self) -> List[Type[ScriptRule]]:
        return [
            cls for name, cls in self._rules.items()
            if name not in self._disabled
        ]

    def get_by_name(self, name: str) -> Optional[Type[ScriptRule]]:
        rule = self._rules.get(name)
        if rule is None:
            # Rule names are case-insensitive on the command line.
            for key, cls in self._rules.items():
                if key.lower() == name.lower():
                    return cls
        return rule

    @property
    def names(self) -> List[str]:
        return sorted(self._rules.keys())


def default_registry() -> RuleRegistry:
    """A new registry holding the built-in rules."""
    from psrules.use_cmdlet_correctly import UseCmdletCorrectly

    registry = RuleRegistry()
    registry.register(UseCmdletCorrectly)
    return registry


# ═════════════════════════════════════════════════════════════════════════
#  PART 3: RESULTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class RunResults:
    """
    Aggregate results from running a suite of rules.

    Attributes
    ----------
    diagnostics         : All diagnostics from all rules
    diagnostics_by_rule : Diagnostics grouped by rule name
    stats               : Timing and counting statistics
    rule_names          : Names of rules that were run
    files               : Script paths that were analyzed
    """
    diagnostics: List[DiagnosticRecord] = field(default_factory=list)
    diagnostics_by_rule: Dict[str, List[DiagnosticRecord]] = field(
        default_factory=lambda: defaultdict(list)
    )
    stats: Dict[str, Any] = field(default_factory=dict)
    rule_names: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.by_severity(DiagnosticSeverity.ERROR))

    @property
    def warning_count(self) -> int:
        return len(self.by_severity(DiagnosticSeverity.WARNING))

    @property
    def parse_error_count(self) -> int:
        return len(self.by_severity(DiagnosticSeverity.PARSE_ERROR))

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    def by_severity(self, severity: DiagnosticSeverity) -> List[DiagnosticRecord]:
        return [d for d in self.diagnostics if d.severity == severity]

    def by_file(self, file: str) -> List[DiagnosticRecord]:
        return [d for d in self.diagnostics if d.script_path == file]

    def extend(self, other: "RunResults") -> None:
        """Fold *other* into this result, accumulating timings."""
        self.diagnostics.extend(other.diagnostics)
        for name, diags in other.diagnostics_by_rule.items():
            self.diagnostics_by_rule[name].extend(diags)
        for key, val in other.stats.items():
            if key in self.stats:
                self.stats[key] += val
            else:
                self.stats[key] = val
        for name in other.rule_names:
            if name not in self.rule_names:
                self.rule_names.append(name)
        self.files.extend(other.files)

    def to_json_lines(self) -> str:
        """All diagnostics as JSON, one object per line."""
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        """Human-readable summary."""
        lines = [
            f"Analyzed {len(self.files)} file(s): {self.total_count} diagnostics "
            f"({self.error_count} errors, {self.warning_count} warnings, "
            f"{self.parse_error_count} parse errors)",
        ]
        for name in self.rule_names:
            count = len(self.diagnostics_by_rule.get(name, []))
            elapsed = self.stats.get(f"{name}_elapsed_ms", 0)
            lines.append(f"  {name}: {count} findings ({elapsed:.1f}ms)")
        return "\n".join(lines)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4: RUNNER
# ═════════════════════════════════════════════════════════════════════════

def _matches_any(name: str, patterns: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(fnmatch.fnmatchcase(lowered, p.lower()) for p in patterns)


class RuleRunner:
    """
    Runs a suite of rules against parsed scripts.

    Usage
    -----
    >>> runner = RuleRunner(commands=load_inventory("inventory.json"))
    >>> results = runner.analyze_file("deploy.ps1")
    >>> print(results.summary())

    Parameters for constructor
    ─────────────────────────
    registry : RuleRegistry – source of rule classes (default: built-ins)
    commands : CommandMetadataProvider handed to every rule
    aliases  : AliasResolver handed to every rule (default: *commands*
               when it can resolve aliases)
    config   : AnalyzerConfig – rule selection and severity filter
    """

    def __init__(
        self,
        registry: Optional[RuleRegistry] = None,
        commands: Optional[CommandMetadataProvider] = None,
        aliases: Optional[AliasResolver] = None,
        config: Optional["AnalyzerConfig"] = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry()
        self.commands = commands
        self.aliases = aliases
        self.config = config

    def select_rules(self, rules: Optional[Sequence[str]] = None) -> List[Type[ScriptRule]]:
        """Rule classes to run: *rules* by name, else the enabled ones, then the config filters."""
        if rules is not None:
            selected: List[Type[ScriptRule]] = []
            for name in rules:
                cls = self.registry.get_by_name(name)
                if cls is None:
                    _log.warning("Unknown rule %s ignored", name)
                else:
                    selected.append(cls)
        else:
            selected = self.registry.get_enabled()
        if self.config is not None:
            if self.config.include_rules:
                selected = [c for c in selected
                            if _matches_any(c.get_name(), self.config.include_rules)]
            if self.config.exclude_rules:
                selected = [c for c in selected
                            if not _matches_any(c.get_name(), self.config.exclude_rules)]
        return selected

    def _keep(self, record: DiagnosticRecord) -> bool:
        if self.config is None or not self.config.severity:
            return True
        return record.severity in self.config.severity_levels()

    def run(
        self,
        ast: Ast,
        file_name: str = "",
        rules: Optional[Sequence[str]] = None,
    ) -> RunResults:
        """
        Run rules against a single syntax tree.

        Parameters
        ----------
        ast       : ScriptBlockAst root
        file_name : identifier reported in every diagnostic
        rules     : list of rule names to run (None = all enabled)
        """
        if ast is None:
            raise InvalidAstError()
        results = RunResults(files=[file_name])

        for cls in self.select_rules(rules):
            rule_name = cls.get_name()
            results.rule_names.append(rule_name)

            t0 = time.monotonic()
            try:
                rule = cls(self.commands, self.aliases)
                diags = rule.analyze_script(ast, file_name)
            except Exception as exc:
                _log.warning("Rule %s failed on %s: %s", rule_name, file_name or "<string>", exc)
                _log.debug("Rule failure details", exc_info=True)
                diags = [DiagnosticRecord(
                    message=strings.format_string("RuleInternalError", rule_name, exc),
                    extent=ScriptExtent(file=file_name),
                    rule_name=INTERNAL_ERROR_RULE,
                    severity=DiagnosticSeverity.INFORMATION,
                    script_path=file_name,
                )]
            elapsed_ms = (time.monotonic() - t0) * 1000.0

            diags = [d for d in diags if self._keep(d)]
            results.diagnostics.extend(diags)
            results.diagnostics_by_rule[rule_name] = diags
            results.stats[f"{rule_name}_elapsed_ms"] = elapsed_ms
            _log.debug("%s: %d findings in %.1fms", rule_name, len(diags), elapsed_ms)

        return results

    def analyze_source(
        self,
        text: str,
        file_name: str = "",
        rules: Optional[Sequence[str]] = None,
    ) -> RunResults:
        """Parse *text* and run the rules; a parse failure becomes one PARSE_ERROR record."""
        try:
            ast = parse_script(text, file_name)
        except ParseError as exc:
            _log.info("Cannot parse %s: %s", file_name or "<string>", exc)
            record = DiagnosticRecord(
                message=strings.format_string("ParseErrorMessage", exc.message),
                extent=exc.extent if exc.extent is not None else ScriptExtent(file=file_name),
                rule_name=PARSE_ERROR_RULE,
                severity=DiagnosticSeverity.PARSE_ERROR,
                script_path=file_name,
            )
            results = RunResults(files=[file_name])
            results.diagnostics.append(record)
            return results
        return self.run(ast, file_name, rules)

    def analyze_file(
        self,
        path: Union[str, Path],
        rules: Optional[Sequence[str]] = None,
    ) -> RunResults:
        """Read *path* (UTF-8, BOM tolerated) and analyze it.

        ``OSError`` and ``UnicodeDecodeError`` propagate.
        """
        p = Path(path)
        _log.info("Analyzing %s", p)
        return self.analyze_source(p.read_text(encoding="utf-8-sig"), str(p), rules)


__all__ = [
    "INTERNAL_ERROR_RULE",
    "PARSE_ERROR_RULE",
    "RuleRegistry",
    "RuleRunner",
    "RunResults",
    "ScriptRule",
    "default_registry",
]
