"""
psrules/diagnostics.py
══════════════════════

Diagnostic records produced by rules.

A :class:`DiagnosticRecord` is created once and never changed.  It can be
rendered as a JSON object (one per line when streaming) or in the familiar
GCC form ``file:line:col: severity: message [RuleName]``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from psrules.ast_nodes import ScriptExtent


class DiagnosticSeverity(Enum):
    """Severity levels, ordered from least to most severe."""
    INFORMATION = 0
    WARNING = 1
    ERROR = 2
    PARSE_ERROR = 3

    @property
    def label(self) -> str:
        return {
            DiagnosticSeverity.INFORMATION: "Information",
            DiagnosticSeverity.WARNING: "Warning",
            DiagnosticSeverity.ERROR: "Error",
            DiagnosticSeverity.PARSE_ERROR: "ParseError",
        }[self]

    @classmethod
    def parse(cls, text: str) -> "DiagnosticSeverity":
        """Accepts ``"Warning"``, ``"warning"``, ``"PARSE_ERROR"``, ``"ParseError"``."""
        key = str(text).replace("_", "").lower()
        for member in cls:
            if member.label.lower() == key:
                return member
        raise ValueError(f"Unknown severity {text!r}")


class SourceType(Enum):
    """Where a rule comes from."""
    BUILTIN = "Builtin"
    MANAGED = "Managed"
    MODULE = "Module"


@dataclass(frozen=True)
class DiagnosticRecord:
    """
    A single finding.

    Attributes
    ----------
    message     : Human-readable description
    extent      : Source span of the offending construct
    rule_name   : Qualified name of the rule that produced it
    severity    : DiagnosticSeverity
    script_path : File identifier supplied by the host for the whole pass
    """
    message: str
    extent: ScriptExtent
    rule_name: str
    severity: DiagnosticSeverity
    script_path: str = ""

    @property
    def line(self) -> int:
        return self.extent.start_line

    @property
    def column(self) -> int:
        return self.extent.start_column

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "ruleName": self.rule_name,
            "severity": self.severity.label,
            "message": self.message,
            "scriptPath": self.script_path,
            "line": self.extent.start_line,
            "column": self.extent.start_column,
            "endLine": self.extent.end_line,
            "endColumn": self.extent.end_column,
            "extent": self.extent.text,
        }

    def to_json_str(self) -> str:
        """Single-line JSON string."""
        return json.dumps(self.to_json_dict())

    def to_gcc_format(self) -> str:
        """GCC-style diagnostic string: file:line:col: severity: message."""
        location = f"{self.script_path or self.extent.file}:{self.line}:{self.column}"
        return f"{location}: {self.severity.label.lower()}: {self.message} [{self.rule_name}]"

    def __str__(self) -> str:
        return self.to_gcc_format()


__all__ = [
    "DiagnosticRecord",
    "DiagnosticSeverity",
    "SourceType",
]
