"""
psrules/ast_helper.py
═════════════════════

Syntax-tree queries shared by the rules.

    ┌─────────────────────────────────────────────────────────────────┐
    │  Invocation scanning                                            │
    │    • find_invocations: every statically named command           │
    ├─────────────────────────────────────────────────────────────────┤
    │  Parameter binding                                              │
    │    • is_positional_binding_used: any argument without a name    │
    │    • named_parameters / positional_arguments                    │
    └─────────────────────────────────────────────────────────────────┘

All functions are read-only over the frozen nodes of
:mod:`psrules.ast_nodes`.  When binding cannot be decided statically the
helpers answer "positional", so callers err towards silence.
"""

from __future__ import annotations

from typing import FrozenSet, Iterable, Iterator, List, Optional

from psrules.ast_nodes import (
    Ast,
    CommandAst,
    CommandParameterAst,
    VariableExpressionAst,
)
from psrules.errors import InvalidAstError


# ═══════════════════════════════════════════════════════════════════════════
#  INVOCATION SCANNING
# ═══════════════════════════════════════════════════════════════════════════

def is_named_invocation(node: Ast) -> bool:
    """True for a command whose name is known without evaluating anything."""
    return isinstance(node, CommandAst) and node.get_command_name() is not None


def find_invocations(tree: Ast) -> Iterator[CommandAst]:
    """
    Find every statically named command invocation in a syntax tree.

    The search is pre-order and enters nested script blocks, function
    bodies, pipelines and sub-expressions.  Commands invoked through an
    expression (``& $cmd``, ``& { ... }``) are not yielded.

    Args:
        tree: Root of the tree to search

    Returns:
        A fresh iterator; call again to restart the scan.

    Raises:
        InvalidAstError: if *tree* is None
    """
    if tree is None:
        raise InvalidAstError()
    return _iter_invocations(tree)


def _iter_invocations(tree: Ast) -> Iterator[CommandAst]:
    for node in tree.find_all(is_named_invocation):
        yield node  # type: ignore[misc]


# ═══════════════════════════════════════════════════════════════════════════
#  PARAMETER BINDING
# ═══════════════════════════════════════════════════════════════════════════

def _casefolded(names: Iterable[str]) -> FrozenSet[str]:
    return frozenset(n.casefold() for n in names)


def positional_arguments(
    cmd: CommandAst,
    switch_parameters: Iterable[str] = (),
    value_parameters: Optional[Iterable[str]] = None,
) -> List[Ast]:
    """
    Arguments of *cmd* that are not the value of a named parameter.

    An argument directly after ``-Name`` is taken as that parameter's value
    unless ``Name`` is listed in *switch_parameters* (switches take no
    separate value) or was written as ``-Name:value``.  When
    *value_parameters* is given, only the names it lists take a value;
    any other ``-Name`` is treated like a switch.
    """
    switches = _casefolded(switch_parameters)
    takes_value = None if value_parameters is None else _casefolded(value_parameters)
    expecting_value = False
    out: List[Ast] = []
    for element in cmd.elements[1:]:
        if isinstance(element, CommandParameterAst):
            name = element.name.casefold()
            expecting_value = (
                element.argument is None
                and name not in switches
                and (takes_value is None or name in takes_value)
            )
            continue
        if expecting_value:
            expecting_value = False
            continue
        out.append(element)
    return out


def uses_splatting(cmd: CommandAst) -> bool:
    return any(
        isinstance(e, VariableExpressionAst) and e.splatted
        for e in cmd.elements[1:]
    )


def is_positional_binding_used(
    cmd: CommandAst,
    switch_parameters: Iterable[str] = (),
    value_parameters: Optional[Iterable[str]] = None,
) -> bool:
    """
    Whether any argument of *cmd* may bind to a parameter by position.

    Besides bare arguments, pipeline input and splatted variables count as
    positional: either can fill any parameter, including mandatory ones.
    """
    if cmd.receives_pipeline_input or uses_splatting(cmd):
        return True
    return bool(positional_arguments(cmd, switch_parameters, value_parameters))


def named_parameters(cmd: CommandAst) -> FrozenSet[str]:
    """Casefolded names of the parameters written as ``-Name``."""
    return _casefolded(p.name for p in cmd.parameters)


__all__ = [
    "find_invocations",
    "is_named_invocation",
    "is_positional_binding_used",
    "named_parameters",
    "positional_arguments",
    "uses_splatting",
]
