# psrules/errors.py
"""
Error types for the psrules analysis pipeline.

Hierarchy
─────────
::

    PsRulesError (base)
    ├── InvalidAstError   - caller passed no syntax tree (contract violation)
    ├── ParseError        - script text could not be turned into a syntax tree
    ├── MetadataError     - malformed command inventory data
    └── ConfigError       - malformed analyzer settings

Errors that carry a :class:`~psrules.ast_nodes.ScriptExtent` render in the
GCC-like ``file:line:col: message`` form so they can be shown next to
ordinary diagnostics.

Note that an *unresolvable command* is deliberately not an error: metadata
lookups report it as :class:`~psrules.metadata.UnresolvedCommand`.
"""

from __future__ import annotations

from typing import Any, Optional


class PsRulesError(Exception):
    """Base exception for all psrules errors."""

    def __init__(
        self,
        message: str,
        extent: Optional[Any] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.extent = extent
        self.cause = cause

    def __str__(self) -> str:
        if self.extent is None:
            return self.message
        location = str(self.extent)
        if not location:
            return self.message
        return f"{location}: {self.message}"


class InvalidAstError(PsRulesError, ValueError):
    """Raised when a rule is handed no syntax tree at all."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        # Lazy import keeps errors.py free of package-level cycles.
        from psrules.strings import get_string

        super().__init__(message or get_string("NullAstErrorMessage"), **kwargs)


class ParseError(PsRulesError):
    """Raised when script text cannot be parsed."""


class MetadataError(PsRulesError):
    """Raised when command inventory data is malformed."""


class ConfigError(PsRulesError):
    """Raised when analyzer settings are malformed."""


__all__ = [
    "PsRulesError",
    "InvalidAstError",
    "ParseError",
    "MetadataError",
    "ConfigError",
]
