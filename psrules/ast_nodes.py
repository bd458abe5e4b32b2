# psrules/ast_nodes.py
"""
PowerShell syntax tree node definitions.

Every node is a frozen dataclass and carries a :class:`ScriptExtent` as its
last field.  Children live in tuples so a parsed tree cannot be mutated by
the rules that read it.

Only the shapes the rules need are modelled precisely (commands, their
parameters and arguments, and every construct that can *contain* a
command); other expressions are kept as coarse :class:`ExpressionAst`
chains.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple


# ── Source extent ────────────────────────────────────────────────

@dataclass(frozen=True)
class ScriptExtent:
    """A span of script text.  Lines and columns are 1-based."""
    file: str = ""
    start_line: int = 0
    start_column: int = 0
    end_line: int = 0
    end_column: int = 0
    text: str = ""

    def __str__(self) -> str:
        if not self.file and self.start_line == 0:
            return ""
        if self.start_line == 0:
            return self.file
        return f"{self.file}:{self.start_line}:{self.start_column}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "startLine": self.start_line,
            "startColumn": self.start_column,
            "endLine": self.end_line,
            "endColumn": self.end_column,
            "text": self.text,
        }


# ── Base class & traversal ───────────────────────────────────────

class Ast:
    """Mixin shared by every node: child iteration and tree search."""

    extent: ScriptExtent

    def children(self) -> Iterator["Ast"]:
        """Yield direct child nodes in source order."""
        for f in fields(self):  # type: ignore[arg-type]
            if f.name == "extent":
                continue
            yield from _nodes_in(getattr(self, f.name))

    def find_all(
        self,
        predicate: Callable[["Ast"], bool],
        search_nested_script_blocks: bool = True,
    ) -> Iterator["Ast"]:
        """
        Pre-order search of the subtree rooted at this node.

        With ``search_nested_script_blocks=False`` the search does not enter
        script block expressions or function bodies below the root.
        """
        stack: List[Ast] = [self]
        while stack:
            node = stack.pop()
            if predicate(node):
                yield node
            if (
                not search_nested_script_blocks
                and node is not self
                and isinstance(node, (ScriptBlockExpressionAst,
                                      FunctionDefinitionAst))
            ):
                continue
            # Reverse so the leftmost child is popped first.
            stack.extend(reversed(list(node.children())))

    def find(
        self,
        predicate: Callable[["Ast"], bool],
        search_nested_script_blocks: bool = True,
    ) -> Optional["Ast"]:
        return next(self.find_all(predicate, search_nested_script_blocks), None)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dump of the subtree."""
        out: Dict[str, Any] = {"type": type(self).__name__}
        for f in fields(self):  # type: ignore[arg-type]
            out[f.name] = _dump(getattr(self, f.name))
        return out


def _nodes_in(value: Any) -> Iterator[Ast]:
    if isinstance(value, Ast):
        yield value
    elif isinstance(value, tuple):
        for item in value:
            yield from _nodes_in(item)


def _dump(value: Any) -> Any:
    if isinstance(value, (Ast, ScriptExtent)):
        return value.to_dict()
    if isinstance(value, tuple):
        return [_dump(v) for v in value]
    return value


# ── Script structure ─────────────────────────────────────────────

@dataclass(frozen=True)
class ScriptBlockAst(Ast):
    """Root of a parsed script, and the body of every ``{ ... }`` block."""
    statements: Tuple[Ast, ...] = ()
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class NamedBlockAst(Ast):
    """``begin``/``process``/``end``/``dynamicparam`` blocks."""
    name: str
    body: ScriptBlockAst
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class ParamBlockAst(Ast):
    statements: Tuple[Ast, ...] = ()
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class FunctionDefinitionAst(Ast):
    name: str
    body: ScriptBlockAst
    keyword: str = "function"
    parameters: Optional[Ast] = None
    extent: ScriptExtent = field(default_factory=ScriptExtent)


# ── Statements ───────────────────────────────────────────────────

@dataclass(frozen=True)
class PipelineAst(Ast):
    elements: Tuple[Ast, ...]
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class AssignmentStatementAst(Ast):
    left: Ast
    operator: str
    right: Ast
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class IfStatementAst(Ast):
    clauses: Tuple[Tuple[Ast, ScriptBlockAst], ...]
    else_clause: Optional[ScriptBlockAst] = None
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class LoopStatementAst(Ast):
    """``while``, ``for``, ``foreach``, ``switch`` and ``do`` loops."""
    keyword: str
    condition: Optional[Ast]
    body: ScriptBlockAst
    flags: Tuple[str, ...] = ()
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class CatchClauseAst(Ast):
    types: Tuple[str, ...]
    body: ScriptBlockAst
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class TryStatementAst(Ast):
    body: ScriptBlockAst
    catch_clauses: Tuple[CatchClauseAst, ...] = ()
    finally_block: Optional[ScriptBlockAst] = None
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class TrapStatementAst(Ast):
    trap_type: str
    body: ScriptBlockAst
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class KeywordStatementAst(Ast):
    """``return``, ``throw``, ``exit``, ``break`` and ``continue``."""
    keyword: str
    pipeline: Optional[Ast] = None
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class OpaqueStatementAst(Ast):
    """Statements kept as text only (``using``, ``class``, ``enum``)."""
    keyword: str
    extent: ScriptExtent = field(default_factory=ScriptExtent)


# ── Commands ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class RedirectionAst(Ast):
    operator: str
    target: Optional[Ast] = None
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class CommandParameterAst(Ast):
    """``-Name`` or ``-Name:value``; *argument* is set only for the latter."""
    name: str
    argument: Optional[Ast] = None
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class CommandAst(Ast):
    """
    One command invocation.

    ``elements[0]`` is the command name expression; the remaining elements
    are parameters and arguments in source order.
    """
    elements: Tuple[Ast, ...]
    invocation_operator: str = ""
    redirections: Tuple[RedirectionAst, ...] = ()
    receives_pipeline_input: bool = False
    extent: ScriptExtent = field(default_factory=ScriptExtent)

    def get_command_name(self) -> Optional[str]:
        """The statically known command name, or ``None``."""
        if not self.elements:
            return None
        head = self.elements[0]
        if isinstance(head, StringConstantAst):
            return head.value
        return None

    @property
    def parameters(self) -> Tuple[CommandParameterAst, ...]:
        return tuple(e for e in self.elements[1:]
                     if isinstance(e, CommandParameterAst))


@dataclass(frozen=True)
class CommandExpressionAst(Ast):
    """An expression used as a pipeline element (``$x | ...``)."""
    expression: Ast
    redirections: Tuple[RedirectionAst, ...] = ()
    extent: ScriptExtent = field(default_factory=ScriptExtent)


# ── Expressions ──────────────────────────────────────────────────

@dataclass(frozen=True)
class StringConstantAst(Ast):
    value: str
    string_kind: str = "bare"  # bare | single | double | here
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class ExpandableStringAst(Ast):
    value: str
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class ConstantExpressionAst(Ast):
    value: str
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class VariableExpressionAst(Ast):
    name: str
    splatted: bool = False
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class TypeExpressionAst(Ast):
    type_name: str
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class ArrayLiteralAst(Ast):
    """Comma-separated values: ``a, b, c``."""
    elements: Tuple[Ast, ...]
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class ParenExpressionAst(Ast):
    statements: Tuple[Ast, ...]
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class SubExpressionAst(Ast):
    """``$( ... )``"""
    statements: Tuple[Ast, ...]
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class ArrayExpressionAst(Ast):
    """``@( ... )``"""
    statements: Tuple[Ast, ...]
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class HashtableAst(Ast):
    pairs: Tuple[Tuple[Ast, Ast], ...] = ()
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class ScriptBlockExpressionAst(Ast):
    script_block: ScriptBlockAst
    extent: ScriptExtent = field(default_factory=ScriptExtent)


@dataclass(frozen=True)
class ExpressionAst(Ast):
    """Operands joined by operators, e.g. ``$a -eq 1``.  Not evaluated."""
    operands: Tuple[Ast, ...]
    operators: Tuple[str, ...] = ()
    extent: ScriptExtent = field(default_factory=ScriptExtent)


__all__ = [
    "ScriptExtent",
    "Ast",
    "ScriptBlockAst",
    "NamedBlockAst",
    "ParamBlockAst",
    "FunctionDefinitionAst",
    "PipelineAst",
    "AssignmentStatementAst",
    "IfStatementAst",
    "LoopStatementAst",
    "CatchClauseAst",
    "TryStatementAst",
    "TrapStatementAst",
    "KeywordStatementAst",
    "OpaqueStatementAst",
    "RedirectionAst",
    "CommandParameterAst",
    "CommandAst",
    "CommandExpressionAst",
    "StringConstantAst",
    "ExpandableStringAst",
    "ConstantExpressionAst",
    "VariableExpressionAst",
    "TypeExpressionAst",
    "ArrayLiteralAst",
    "ParenExpressionAst",
    "SubExpressionAst",
    "ArrayExpressionAst",
    "HashtableAst",
    "ScriptBlockExpressionAst",
    "ExpressionAst",
]
