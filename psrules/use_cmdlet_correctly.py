"""
psrules/use_cmdlet_correctly.py
═══════════════════════════════

UseCmdletCorrectly: cmdlets should be called with their mandatory
parameters.

For every statically named command in a script the rule resolves the
command (following one alias hop), works out which parameters are
mandatory in *every* parameter set, and warns when none of them is
supplied by name.

Anything the rule cannot decide stays silent:

* commands without metadata (unknown names, native executables, lookup
  faults),
* commands that are not cmdlets,
* invocations whose arguments may bind by position (bare arguments,
  splatting, pipeline input).

Supplying any one of the universally mandatory parameters clears the
invocation, even when several are required.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, List, Optional

from psrules import strings
from psrules.ast_helper import (
    find_invocations,
    is_positional_binding_used,
    named_parameters,
)
from psrules.ast_nodes import Ast, CommandAst
from psrules.diagnostics import DiagnosticRecord, DiagnosticSeverity
from psrules.errors import InvalidAstError
from psrules.metadata import CommandInfo, CommandType, resolve_command
from psrules.rules import ScriptRule

_log = logging.getLogger(__name__)

#: Command kinds whose parameter metadata is declarative.
ANALYZABLE_COMMAND_TYPES: FrozenSet[CommandType] = frozenset({CommandType.CMDLET})


def mandatory_parameters(info: CommandInfo) -> FrozenSet[str]:
    """
    Casefolded names of the parameters mandatory in every parameter set.

    A parameter declared fewer times than there are parameter sets is
    skipped outright; otherwise it qualifies when at least
    ``parameter_set_count`` of its declarations are mandatory.
    """
    required = info.parameter_set_count
    names = set()
    for key, param in info.parameters.items():
        if param.attribute_count < required:
            continue
        if param.mandatory_count >= required:
            names.add(key)
    return frozenset(names)


class UseCmdletCorrectly(ScriptRule):
    """Warns about cmdlet calls that supply none of the mandatory parameters."""

    resource_key = "UseCmdletCorrectly"

    def analyze_script(self, ast: Ast, file_name: str) -> List[DiagnosticRecord]:
        if ast is None:
            raise InvalidAstError()

        records: List[DiagnosticRecord] = []
        for cmd in find_invocations(ast):
            if self.is_mandatory_parameter_supplied(cmd):
                continue
            records.append(DiagnosticRecord(
                message=strings.format_string(
                    "UseCmdletCorrectlyError", cmd.get_command_name()),
                extent=cmd.extent,
                rule_name=self.get_name(),
                severity=DiagnosticSeverity.WARNING,
                script_path=file_name,
            ))
        return records

    def _lookup(self, name: str) -> Optional[CommandInfo]:
        result = resolve_command(name, self.aliases, self.commands)
        if not isinstance(result, CommandInfo):
            _log.debug("No metadata for %s (%s)", name, result.reason.value)
            return None
        return result

    def is_mandatory_parameter_supplied(self, cmd: CommandAst) -> bool:
        """
        True if *cmd* passes the check or cannot be checked.

        False only when the command is a known cmdlet with universally
        mandatory parameters, every argument is bound by name, and none of
        those parameters is named.
        """
        name = cmd.get_command_name()
        if name is None:
            return True

        try:
            info = self._lookup(name)
            if info is None or info.command_type not in ANALYZABLE_COMMAND_TYPES:
                return True
            mandatory = mandatory_parameters(info)
        except Exception as exc:
            _log.debug("Skipping %s: %s", name, exc)
            return True

        if not mandatory:
            return True
        if is_positional_binding_used(cmd, info.switch_parameters, info.value_parameters):
            return True
        return bool(named_parameters(cmd) & mandatory)


__all__ = [
    "ANALYZABLE_COMMAND_TYPES",
    "UseCmdletCorrectly",
    "mandatory_parameters",
]
