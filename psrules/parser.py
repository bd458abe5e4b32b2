"""psrules/parser.py – PowerShell script text → syntax tree.

A small, hand-written front end that produces the node types defined in
:mod:`psrules.ast_nodes`.  It understands enough PowerShell to find every
command invocation together with its parameters and arguments; it does not
evaluate anything.

Design principles
-----------------
* **Two stages** – a context-free tokenizer followed by a recursive-descent
  parser over the token list.
* **Keyword dispatch** – statement keywords (``if``, ``function``, ...) are
  dispatched through a table populated by the ``@_register`` decorator.
* **Fail-fast with location** – malformed input raises
  :class:`~psrules.errors.ParseError` carrying the offending
  :class:`~psrules.ast_nodes.ScriptExtent`.
* **Coarse expressions** – operators are recorded but not given
  precedence; only command structure is modelled precisely.

Public API
----------
``tokenize(text, file_name="") -> List[Token]``
``parse_script(text, file_name="") -> ScriptBlockAst``
``parse_file(path) -> ScriptBlockAst``

Not analysed
------------
``class``/``enum`` bodies are kept as :class:`OpaqueStatementAst`, and
``$( ... )`` sub-expressions inside expandable strings stay part of the
string value.
"""

from __future__ import annotations

import bisect
import enum
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from psrules import ast_nodes as A
from psrules.errors import ParseError

_log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
#  Tokens
# ═══════════════════════════════════════════════════════════════════════

class TokenKind(enum.Enum):
    GENERIC = "generic"          # bareword: Get-Item, C:\temp, +, ...
    PARAMETER = "parameter"      # -Name, -Name:
    STRING = "string"
    NUMBER = "number"
    VARIABLE = "variable"        # $x, ${x}, @splat
    TYPE = "type"                # [string], [Parameter()]
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    SUBEXPR = "$("
    ARRAY = "@("
    HASH = "@{"
    PIPE = "|"
    CHAIN = "&&"                 # && and ||
    SEMI = ";"
    NEWLINE = "newline"
    AMP = "&"
    DOT = "."
    COMMA = ","
    ASSIGN = "="
    REDIRECT = ">"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    value: str
    offset: int
    end_offset: int
    line: int
    column: int
    end_line: int
    end_column: int
    colon: bool = False
    splatted: bool = False
    expandable: bool = False
    string_kind: str = ""

    def __repr__(self) -> str:
        return f"Token({self.kind.name}, {self.text!r}, {self.line}:{self.column})"


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "a": "\a",
            "b": "\b", "f": "\f", "v": "\v", "e": "\x1b"}

_VARIABLE_RE = re.compile(r"\$(?:[$?^]|(?:[A-Za-z_]\w*:)?\w+)")
_SPLAT_RE = re.compile(r"@\w+")
_PARAMETER_RE = re.compile(r"-[A-Za-z_?][\w?]*")
_MEMBER_RE = re.compile(r"(?:\.|::)\w+")
_REDIRECT_RE = re.compile(r"[1-6*]?>>?(?:&[12])?")
_NUMBER_RE = re.compile(
    r"[+-]?(?:0[xX][0-9a-fA-F]+|\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|\.\d+)"
    r"(?:[dDlL]|[kKmMgGtTpP][bB])?\Z"
)
_GENERIC_STOP = frozenset(";|(){},&=>")
_DOT_SOURCE_FOLLOW = frozenset("{$'\"(&")


class _Lexer:
    """Turns script text into a flat token list ending in ``EOF``."""

    def __init__(self, text: str, file_name: str) -> None:
        self._text = text
        self._n = len(text)
        self._file = file_name
        self._line_starts = [0] + [i + 1 for i, c in enumerate(text) if c == "\n"]
        self._tokens: List[Token] = []

    # ── positions ────────────────────────────────────────────────────

    def _position(self, offset: int) -> Tuple[int, int]:
        idx = bisect.bisect_right(self._line_starts, offset) - 1
        return idx + 1, offset - self._line_starts[idx] + 1

    def _error(self, message: str, start: int, end: Optional[int] = None) -> ParseError:
        end = start + 1 if end is None else end
        end = min(max(end, start), self._n)
        line, col = self._position(start)
        end_line, end_col = self._position(end)
        extent = A.ScriptExtent(self._file, line, col, end_line, end_col,
                                self._text[start:end])
        return ParseError(message, extent)

    def _add(self, kind: TokenKind, start: int, end: int,
             value: Optional[str] = None, **flags: object) -> None:
        line, col = self._position(start)
        end_line, end_col = self._position(end)
        text = self._text[start:end]
        self._tokens.append(Token(
            kind=kind, text=text, value=text if value is None else value,
            offset=start, end_offset=end, line=line, column=col,
            end_line=end_line, end_column=end_col, **flags,  # type: ignore[arg-type]
        ))

    # ── scanning helpers ─────────────────────────────────────────────

    def _skip_quoted(self, pos: int) -> int:
        """Return the offset just past the quoted string starting at *pos*."""
        quote = self._text[pos]
        i = pos + 1
        while i < self._n:
            ch = self._text[i]
            if ch == "`" and quote == '"':
                i += 2
                continue
            if ch == quote:
                if i + 1 < self._n and self._text[i + 1] == quote:
                    i += 2
                    continue
                return i + 1
            i += 1
        raise self._error(f"The string is missing the terminator: {quote}.", pos)

    def _scan_balanced(self, pos: int, open_ch: str, close_ch: str) -> int:
        depth = 0
        i = pos
        while i < self._n:
            ch = self._text[i]
            if ch in "'\"":
                i = self._skip_quoted(i)
                continue
            if ch == open_ch:
                depth += 1
            elif ch == close_ch:
                depth -= 1
                if depth == 0:
                    return i + 1
            i += 1
        raise self._error(f"Missing closing '{close_ch}'.", pos)

    def _scan_member_suffix(self, pos: int) -> int:
        """Extend a variable or type token over ``.Member``, ``[i]`` and ``(...)``."""
        while pos < self._n:
            ch = self._text[pos]
            m = _MEMBER_RE.match(self._text, pos)
            if m is not None:
                pos = m.end()
            elif ch == "[":
                pos = self._scan_balanced(pos, "[", "]")
            elif ch == "(" and (self._text[pos - 1].isalnum() or self._text[pos - 1] == "_"):
                pos = self._scan_balanced(pos, "(", ")")
            else:
                break
        return pos

    def _scan_generic(self, pos: int) -> int:
        while pos < self._n:
            ch = self._text[pos]
            if ch.isspace() or ch in _GENERIC_STOP:
                break
            if ch == "`":
                if pos + 1 < self._n and self._text[pos + 1] in "\r\n":
                    break
                pos += 2
                continue
            pos += 1
        return min(pos, self._n)

    # ── token producers ──────────────────────────────────────────────

    def _lex_double_quoted(self, pos: int) -> int:
        out: List[str] = []
        expandable = False
        i = pos + 1
        while i < self._n:
            ch = self._text[i]
            if ch == "`" and i + 1 < self._n:
                out.append(_ESCAPES.get(self._text[i + 1], self._text[i + 1]))
                i += 2
                continue
            if ch == '"':
                if i + 1 < self._n and self._text[i + 1] == '"':
                    out.append('"')
                    i += 2
                    continue
                self._add(TokenKind.STRING, pos, i + 1, "".join(out),
                          expandable=expandable, string_kind="double")
                return i + 1
            if ch == "$" and i + 1 < self._n:
                nxt = self._text[i + 1]
                if nxt == "(":
                    end = self._scan_balanced(i + 1, "(", ")")
                    out.append(self._text[i:end])
                    expandable = True
                    i = end
                    continue
                if nxt.isalnum() or nxt in "_{?^$":
                    expandable = True
            out.append(ch)
            i += 1
        raise self._error('The string is missing the terminator: ".', pos)

    def _lex_single_quoted(self, pos: int) -> int:
        out: List[str] = []
        i = pos + 1
        while i < self._n:
            ch = self._text[i]
            if ch == "'":
                if i + 1 < self._n and self._text[i + 1] == "'":
                    out.append("'")
                    i += 2
                    continue
                self._add(TokenKind.STRING, pos, i + 1, "".join(out),
                          string_kind="single")
                return i + 1
            out.append(ch)
            i += 1
        raise self._error("The string is missing the terminator: '.", pos)

    def _lex_here_string(self, pos: int) -> int:
        quote = self._text[pos + 1]
        m = re.compile(r"[ \t]*\r?\n").match(self._text, pos + 2)
        if m is None:
            raise self._error("No characters are allowed after a here-string header.", pos)
        body_start = m.end()
        closer = quote + "@"
        if self._text.startswith(closer, body_start):
            body, end = "", body_start + 2
        else:
            idx = self._text.find("\n" + closer, body_start)
            if idx == -1:
                raise self._error("The here-string is missing its terminator.", pos)
            body = self._text[body_start:idx].rstrip("\r")
            end = idx + 3
        expandable = quote == '"' and "$" in body
        self._add(TokenKind.STRING, pos, end, body,
                  expandable=expandable, string_kind="here")
        return end

    def _lex_dollar(self, pos: int) -> int:
        nxt = self._text[pos + 1] if pos + 1 < self._n else ""
        if nxt == "(":
            self._add(TokenKind.SUBEXPR, pos, pos + 2)
            return pos + 2
        if nxt == "{":
            close = self._text.find("}", pos + 2)
            if close == -1:
                raise self._error("Missing closing '}' in variable name.", pos)
            end = self._scan_member_suffix(close + 1)
            self._add(TokenKind.VARIABLE, pos, end, self._text[pos + 2:close])
            return end
        m = _VARIABLE_RE.match(self._text, pos)
        if m is None:
            end = self._scan_generic(pos + 1)
            self._add(TokenKind.GENERIC, pos, end)
            return end
        end = self._scan_member_suffix(m.end())
        self._add(TokenKind.VARIABLE, pos, end, m.group(0)[1:])
        return end

    def _lex_at(self, pos: int) -> int:
        nxt = self._text[pos + 1] if pos + 1 < self._n else ""
        if nxt == "(":
            self._add(TokenKind.ARRAY, pos, pos + 2)
            return pos + 2
        if nxt == "{":
            self._add(TokenKind.HASH, pos, pos + 2)
            return pos + 2
        if nxt in "\"'":
            return self._lex_here_string(pos)
        m = _SPLAT_RE.match(self._text, pos)
        if m is not None:
            self._add(TokenKind.VARIABLE, pos, m.end(), m.group(0)[1:], splatted=True)
            return m.end()
        end = self._scan_generic(pos + 1)
        self._add(TokenKind.GENERIC, pos, end)
        return end

    def _lex_dash(self, pos: int) -> int:
        if self._text.startswith("--%", pos):
            end = self._text.find("\n", pos)
            end = self._n if end == -1 else end
            self._add(TokenKind.GENERIC, pos, end, self._text[pos + 3:end].strip())
            return end
        if self._text.startswith("-=", pos):
            self._add(TokenKind.ASSIGN, pos, pos + 2)
            return pos + 2
        m = _PARAMETER_RE.match(self._text, pos)
        if m is not None:
            end = m.end()
            if end < self._n and self._text[end] == ":":
                self._add(TokenKind.PARAMETER, pos, end + 1, m.group(0)[1:], colon=True)
                return end + 1
            if end >= self._n or self._text[end].isspace() or self._text[end] in _GENERIC_STOP:
                self._add(TokenKind.PARAMETER, pos, end, m.group(0)[1:])
                return end
        return self._lex_generic(pos)

    def _lex_generic(self, pos: int) -> int:
        end = self._scan_generic(pos)
        if end == pos:
            raise self._error(f"Unexpected character '{self._text[pos]}'.", pos)
        raw = self._text[pos:end]
        value = re.sub(r"`(.)", r"\1", raw)
        kind = TokenKind.NUMBER if _NUMBER_RE.match(raw) else TokenKind.GENERIC
        self._add(kind, pos, end, value)
        return end

    # ── main loop ────────────────────────────────────────────────────

    def tokenize(self) -> List[Token]:
        text, n = self._text, self._n
        pos = 0
        simple = {
            ";": TokenKind.SEMI, "(": TokenKind.LPAREN, ")": TokenKind.RPAREN,
            "{": TokenKind.LBRACE, "}": TokenKind.RBRACE, ",": TokenKind.COMMA,
            "\n": TokenKind.NEWLINE, "=": TokenKind.ASSIGN,
        }
        while pos < n:
            ch = text[pos]
            nxt = text[pos + 1] if pos + 1 < n else ""
            if ch != "\n" and (ch.isspace() or ch == "\ufeff"):
                pos += 1
            elif ch == "`" and (nxt == "\n" or text.startswith("\r\n", pos + 1)):
                pos += 2 if nxt == "\n" else 3
            elif ch == "#":
                end = text.find("\n", pos)
                pos = n if end == -1 else end
            elif text.startswith("<#", pos):
                end = text.find("#>", pos + 2)
                if end == -1:
                    raise self._error("Missing the terminator '#>' in a block comment.", pos)
                pos = end + 2
            elif ch == "<":
                raise self._error("The '<' operator is reserved for future use.", pos)
            elif ch == "!":
                self._add(TokenKind.GENERIC, pos, pos + 1)
                pos += 1
            elif ch in simple:
                self._add(simple[ch], pos, pos + 1)
                pos += 1
            elif ch == "|":
                kind = TokenKind.CHAIN if nxt == "|" else TokenKind.PIPE
                width = 2 if nxt == "|" else 1
                self._add(kind, pos, pos + width)
                pos += width
            elif ch == "&":
                kind = TokenKind.CHAIN if nxt == "&" else TokenKind.AMP
                width = 2 if nxt == "&" else 1
                self._add(kind, pos, pos + width)
                pos += width
            elif ch in "+*/%" and nxt == "=":
                self._add(TokenKind.ASSIGN, pos, pos + 2)
                pos += 2
            elif ch == ">" or (ch in "123456*" and nxt == ">"):
                m = _REDIRECT_RE.match(text, pos)
                assert m is not None
                self._add(TokenKind.REDIRECT, pos, m.end())
                pos = m.end()
            elif ch == "$":
                pos = self._lex_dollar(pos)
            elif ch == "@":
                pos = self._lex_at(pos)
            elif ch == '"':
                pos = self._lex_double_quoted(pos)
            elif ch == "'":
                pos = self._lex_single_quoted(pos)
            elif ch == "[":
                end = self._scan_balanced(pos, "[", "]")
                inner = text[pos + 1:end - 1].strip()
                end = self._scan_member_suffix(end)
                self._add(TokenKind.TYPE, pos, end, inner)
                pos = end
            elif ch == "-":
                pos = self._lex_dash(pos)
            elif ch == "." and (nxt == "" or nxt.isspace() or nxt in _DOT_SOURCE_FOLLOW):
                self._add(TokenKind.DOT, pos, pos + 1)
                pos += 1
            else:
                pos = self._lex_generic(pos)
        self._add(TokenKind.EOF, n, n, "")
        return self._tokens


def tokenize(text: str, file_name: str = "") -> List[Token]:
    """Split *text* into tokens (comments and line continuations dropped)."""
    return _Lexer(text, file_name).tokenize()


# ═══════════════════════════════════════════════════════════════════════
#  Parser
# ═══════════════════════════════════════════════════════════════════════

# Statement keyword → parser callable; populated by ``@_register``.
_STATEMENT_DISPATCH: Dict[str, Callable[..., A.Ast]] = {}

# Keywords that only start a statement when a ``{`` follows.
_BLOCK_NAMES = frozenset({"begin", "process", "end", "dynamicparam", "default"})

_COMMAND_END = frozenset({
    TokenKind.PIPE, TokenKind.NEWLINE, TokenKind.SEMI, TokenKind.RPAREN,
    TokenKind.RBRACE, TokenKind.EOF, TokenKind.CHAIN,
})
_STATEMENT_END = _COMMAND_END
_MERGEABLE = frozenset({
    TokenKind.GENERIC, TokenKind.STRING, TokenKind.VARIABLE,
    TokenKind.NUMBER, TokenKind.TYPE, TokenKind.SUBEXPR,
})
_OPERATOR_WORDS = frozenset({"!", "+", "-", "*", "/", "%", "..", "++", "--"})


def _register(table: dict, *tags: str):
    """Decorator: register a parser method under each of *tags*."""
    def deco(fn):
        for tag in tags:
            table[tag] = fn
        return fn
    return deco


class _Parser:

    def __init__(self, tokens: List[Token], text: str, file_name: str) -> None:
        self._tokens = tokens
        self._text = text
        self._file = file_name
        self._pos = 0
        self._last: Optional[Token] = None

    # ── token access ─────────────────────────────────────────────────

    def _peek(self, ahead: int = 0) -> Token:
        idx = min(self._pos + ahead, len(self._tokens) - 1)
        return self._tokens[idx]

    def _next(self) -> Token:
        tok = self._peek()
        if tok.kind is not TokenKind.EOF:
            self._pos += 1
        self._last = tok
        return tok

    def _at(self, *kinds: TokenKind) -> bool:
        return self._peek().kind in kinds

    def _at_keyword(self, *words: str) -> bool:
        tok = self._peek()
        return tok.kind is TokenKind.GENERIC and tok.value.lower() in words

    def _skip_newlines(self) -> None:
        while self._at(TokenKind.NEWLINE):
            self._next()

    def _expect(self, kind: TokenKind, message: str) -> Token:
        if not self._at(kind):
            raise self._error(message)
        return self._next()

    def _error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        tok = tok or self._peek()
        extent = A.ScriptExtent(self._file, tok.line, tok.column,
                                tok.end_line, tok.end_column, tok.text)
        return ParseError(message, extent)

    def _extent(self, start: Token, end: Optional[Token] = None) -> A.ScriptExtent:
        end = end or self._last
        if end is None or end.end_offset < start.offset:
            end = start
        return A.ScriptExtent(
            self._file, start.line, start.column, end.end_line, end.end_column,
            self._text[start.offset:end.end_offset],
        )

    # ── statement lists & blocks ─────────────────────────────────────

    def parse_script(self) -> A.ScriptBlockAst:
        start = self._peek()
        statements = self._parse_statement_list(TokenKind.EOF)
        return A.ScriptBlockAst(tuple(statements), self._extent(start))

    def _parse_statement_list(self, closer: TokenKind) -> List[A.Ast]:
        statements: List[A.Ast] = []
        while True:
            while self._at(TokenKind.NEWLINE, TokenKind.SEMI):
                self._next()
            if self._at(closer):
                return statements
            if self._at(TokenKind.EOF):
                raise self._error(f"Missing closing '{closer.value}'.")
            statements.append(self._parse_statement())
            if self._last is not None and self._last.kind is TokenKind.RBRACE:
                continue
            if self._at(TokenKind.CHAIN):
                self._next()
                self._skip_newlines()
                continue
            if not self._at(TokenKind.NEWLINE, TokenKind.SEMI, closer, TokenKind.EOF):
                raise self._error(f"Unexpected token '{self._peek().text}' in expression or statement.")

    def _parse_block(self, what: str = "statement block") -> A.ScriptBlockAst:
        self._skip_newlines()
        start = self._expect(TokenKind.LBRACE, f"Missing opening '{{' of the {what}.")
        statements = self._parse_statement_list(TokenKind.RBRACE)
        self._expect(TokenKind.RBRACE, f"Missing closing '}}' of the {what}.")
        return A.ScriptBlockAst(tuple(statements), self._extent(start))

    def _parse_condition(self, keyword: str) -> A.ParenExpressionAst:
        self._skip_newlines()
        start = self._expect(TokenKind.LPAREN, f"Missing '(' after '{keyword}'.")
        statements = self._parse_statement_list(TokenKind.RPAREN)
        self._expect(TokenKind.RPAREN, f"Missing closing ')' after the {keyword} condition.")
        return A.ParenExpressionAst(tuple(statements), self._extent(start))

    # ── statements ───────────────────────────────────────────────────

    def _parse_statement(self) -> A.Ast:
        tok = self._peek()
        if tok.kind is TokenKind.GENERIC:
            word = tok.value.lower()
            handler = _STATEMENT_DISPATCH.get(word)
            if handler is not None and (word not in _BLOCK_NAMES or self._brace_follows()):
                return handler(self)
            if word in ("else", "elseif", "catch", "finally", "until"):
                raise self._error(f"Unexpected keyword '{tok.value}'.")
        return self._parse_pipeline_statement()

    def _brace_follows(self) -> bool:
        ahead = 1
        while self._peek(ahead).kind is TokenKind.NEWLINE:
            ahead += 1
        return self._peek(ahead).kind is TokenKind.LBRACE

    @_register(_STATEMENT_DISPATCH, "function", "filter", "workflow")
    def _parse_function(self) -> A.FunctionDefinitionAst:
        keyword = self._next()
        name = self._peek()
        if name.kind not in (TokenKind.GENERIC, TokenKind.NUMBER):
            raise self._error(f"Missing name after the {keyword.value} keyword.")
        self._next()
        parameters: Optional[A.Ast] = None
        if self._at(TokenKind.LPAREN):
            paren_start = self._next()
            statements = self._parse_statement_list(TokenKind.RPAREN)
            self._expect(TokenKind.RPAREN, "Missing closing ')' in function parameter list.")
            parameters = A.ParamBlockAst(tuple(statements), self._extent(paren_start))
        body = self._parse_block("function body")
        return A.FunctionDefinitionAst(name.value, body, keyword.value.lower(),
                                       parameters, self._extent(keyword))

    @_register(_STATEMENT_DISPATCH, "if")
    def _parse_if(self) -> A.IfStatementAst:
        start = self._next()
        clauses = [(self._parse_condition("if"), self._parse_block("if statement"))]
        else_clause: Optional[A.ScriptBlockAst] = None
        while True:
            saved = self._pos
            self._skip_newlines()
            if self._at_keyword("elseif"):
                self._next()
                clauses.append((self._parse_condition("elseif"),
                                self._parse_block("elseif clause")))
                continue
            if self._at_keyword("else"):
                self._next()
                else_clause = self._parse_block("else clause")
                break
            self._pos = saved
            break
        return A.IfStatementAst(tuple(clauses), else_clause, self._extent(start))

    @_register(_STATEMENT_DISPATCH, "while", "for", "foreach", "switch")
    def _parse_loop(self) -> A.LoopStatementAst:
        start = self._next()
        keyword = start.value.lower()
        flags: List[str] = []
        while self._at(TokenKind.PARAMETER):
            flags.append(self._next().value)
        self._skip_newlines()
        condition: Optional[A.Ast]
        if self._at(TokenKind.LPAREN):
            condition = self._parse_condition(keyword)
        elif keyword == "switch":
            # switch -File <path> { ... }
            condition = self._parse_argument()
        else:
            raise self._error(f"Missing '(' after '{keyword}'.")
        body = self._parse_block(f"{keyword} loop")
        return A.LoopStatementAst(keyword, condition, body, tuple(flags), self._extent(start))

    @_register(_STATEMENT_DISPATCH, "do")
    def _parse_do(self) -> A.LoopStatementAst:
        start = self._next()
        body = self._parse_block("do loop")
        self._skip_newlines()
        if not self._at_keyword("while", "until"):
            raise self._error("Missing while or until in do loop.")
        kind = self._next().value.lower()
        condition = self._parse_condition(kind)
        return A.LoopStatementAst("do", condition, body, (kind,), self._extent(start))

    @_register(_STATEMENT_DISPATCH, "try")
    def _parse_try(self) -> A.TryStatementAst:
        start = self._next()
        body = self._parse_block("try statement")
        catches: List[A.CatchClauseAst] = []
        finally_block: Optional[A.ScriptBlockAst] = None
        while True:
            saved = self._pos
            self._skip_newlines()
            if self._at_keyword("catch"):
                catch_start = self._next()
                types: List[str] = []
                while self._at(TokenKind.TYPE):
                    types.append(self._next().value)
                    if self._at(TokenKind.COMMA):
                        self._next()
                        self._skip_newlines()
                catch_body = self._parse_block("catch clause")
                catches.append(A.CatchClauseAst(tuple(types), catch_body,
                                                self._extent(catch_start)))
                continue
            if self._at_keyword("finally"):
                self._next()
                finally_block = self._parse_block("finally clause")
                break
            self._pos = saved
            break
        if not catches and finally_block is None:
            raise self._error("The Try statement is missing its Catch or Finally block.")
        return A.TryStatementAst(body, tuple(catches), finally_block, self._extent(start))

    @_register(_STATEMENT_DISPATCH, "trap")
    def _parse_trap(self) -> A.TrapStatementAst:
        start = self._next()
        trap_type = self._next().value if self._at(TokenKind.TYPE) else ""
        body = self._parse_block("trap statement")
        return A.TrapStatementAst(trap_type, body, self._extent(start))

    @_register(_STATEMENT_DISPATCH, "return", "throw", "exit")
    def _parse_flow_statement(self) -> A.KeywordStatementAst:
        start = self._next()
        pipeline = None
        if not self._at(*_STATEMENT_END):
            pipeline = self._parse_statement()
        return A.KeywordStatementAst(start.value.lower(), pipeline, self._extent(start))

    @_register(_STATEMENT_DISPATCH, "break", "continue")
    def _parse_loop_control(self) -> A.KeywordStatementAst:
        start = self._next()
        label = None
        if not self._at(*_STATEMENT_END):
            label = self._parse_argument()
        return A.KeywordStatementAst(start.value.lower(), label, self._extent(start))

    @_register(_STATEMENT_DISPATCH, "param")
    def _parse_param_block(self) -> A.ParamBlockAst:
        start = self._next()
        self._skip_newlines()
        self._expect(TokenKind.LPAREN, "Missing '(' after 'param'.")
        statements = self._parse_statement_list(TokenKind.RPAREN)
        self._expect(TokenKind.RPAREN, "Missing closing ')' of the param block.")
        return A.ParamBlockAst(tuple(statements), self._extent(start))

    @_register(_STATEMENT_DISPATCH, "begin", "process", "end", "dynamicparam", "default")
    def _parse_named_block(self) -> A.NamedBlockAst:
        start = self._next()
        body = self._parse_block(f"{start.value} block")
        return A.NamedBlockAst(start.value.lower(), body, self._extent(start))

    @_register(_STATEMENT_DISPATCH, "using")
    def _parse_using(self) -> A.OpaqueStatementAst:
        start = self._next()
        while not self._at(TokenKind.NEWLINE, TokenKind.SEMI, TokenKind.EOF):
            self._next()
        return A.OpaqueStatementAst("using", self._extent(start))

    @_register(_STATEMENT_DISPATCH, "class", "enum")
    def _parse_type_definition(self) -> A.OpaqueStatementAst:
        start = self._next()
        while not self._at(TokenKind.LBRACE):
            if self._at(TokenKind.EOF):
                raise self._error(f"Missing opening '{{' of the {start.value} body.")
            self._next()
        depth = 0
        while True:
            tok = self._next()
            if tok.kind in (TokenKind.LBRACE, TokenKind.HASH):
                depth += 1
            elif tok.kind is TokenKind.RBRACE:
                depth -= 1
                if depth == 0:
                    break
            elif tok.kind is TokenKind.EOF:
                raise self._error(f"Missing closing '}}' of the {start.value} body.", tok)
        return A.OpaqueStatementAst(start.value.lower(), self._extent(start))

    # ── pipelines ────────────────────────────────────────────────────

    def _parse_pipeline_statement(self) -> A.Ast:
        start = self._peek()
        first = self._parse_pipeline_element(receives_input=False)
        if self._at(TokenKind.ASSIGN) and isinstance(first, A.CommandExpressionAst):
            operator = self._next().text
            self._skip_newlines()
            if self._at(*_STATEMENT_END):
                raise self._error(f"Missing expression after '{operator}'.")
            right = self._parse_statement()
            return A.AssignmentStatementAst(first.expression, operator, right,
                                            self._extent(start))
        elements = [first]
        while self._at(TokenKind.PIPE):
            self._next()
            self._skip_newlines()
            if self._at(*_COMMAND_END):
                raise self._error("An empty pipe element is not allowed.")
            elements.append(self._parse_pipeline_element(receives_input=True))
        return A.PipelineAst(tuple(elements), self._extent(start))

    def _parse_pipeline_element(self, receives_input: bool) -> A.Ast:
        tok = self._peek()
        if tok.kind in (TokenKind.AMP, TokenKind.DOT):
            return self._parse_command(receives_input)
        if tok.kind is TokenKind.GENERIC:
            # After a pipe every bareword is a command (`%`, `?` aliases).
            if receives_input or (tok.value not in _OPERATOR_WORDS
                                  and not tok.value[:1].isdigit()):
                return self._parse_command(receives_input)
        return self._parse_command_expression()

    def _parse_command(self, receives_input: bool) -> A.CommandAst:
        start = self._peek()
        operator = ""
        if start.kind in (TokenKind.AMP, TokenKind.DOT):
            operator = self._next().text
            if self._at(*_COMMAND_END):
                raise self._error(f"Missing expression after '{operator}'.")
            head = self._parse_argument()
        else:
            name = self._next()
            head = A.StringConstantAst(name.value, "bare", self._extent(name, name))
        elements: List[A.Ast] = [head]
        redirections: List[A.RedirectionAst] = []
        while not self._at(*_COMMAND_END):
            tok = self._peek()
            if tok.kind is TokenKind.PARAMETER:
                self._next()
                argument = None
                if tok.colon:
                    if self._at(*_COMMAND_END):
                        raise self._error(f"Missing argument for parameter '-{tok.value}'.")
                    argument = self._parse_argument()
                elements.append(A.CommandParameterAst(tok.value, argument, self._extent(tok)))
            elif tok.kind is TokenKind.REDIRECT:
                redirections.append(self._parse_redirection())
            elif tok.kind is TokenKind.ASSIGN:
                self._next()
                elements.append(A.StringConstantAst(tok.text, "bare", self._extent(tok, tok)))
            elif tok.kind is TokenKind.AMP:
                # Trailing background operator.
                self._next()
                break
            else:
                elements.append(self._parse_argument_list())
        return A.CommandAst(tuple(elements), operator, tuple(redirections),
                            receives_input, self._extent(start))

    def _parse_redirection(self) -> A.RedirectionAst:
        tok = self._next()
        target = None
        if "&" not in tok.text:
            if self._at(*_COMMAND_END):
                raise self._error("Missing file specification after redirection operator.")
            target = self._parse_argument()
        return A.RedirectionAst(tok.text, target, self._extent(tok))

    def _parse_command_expression(self) -> A.CommandExpressionAst:
        start = self._peek()
        expression = self._parse_expression()
        redirections: List[A.RedirectionAst] = []
        while self._at(TokenKind.REDIRECT):
            redirections.append(self._parse_redirection())
        return A.CommandExpressionAst(expression, tuple(redirections), self._extent(start))

    # ── expressions ──────────────────────────────────────────────────

    def _is_operator(self, tok: Token) -> bool:
        if tok.kind in (TokenKind.PARAMETER, TokenKind.COMMA, TokenKind.DOT):
            return True
        return tok.kind is TokenKind.GENERIC and tok.value in _OPERATOR_WORDS

    def _parse_expression(self) -> A.Ast:
        start = self._peek()
        operands: List[A.Ast] = []
        operators: List[str] = []
        while not self._at(*_STATEMENT_END, TokenKind.REDIRECT):
            tok = self._peek()
            if tok.kind is TokenKind.ASSIGN:
                if len(operands) == 1 and not operators:
                    break
                operators.append(self._next().text)
                self._skip_newlines()
            elif self._is_operator(tok):
                operators.append(self._next().text)
                self._skip_newlines()
            else:
                operands.append(self._parse_argument())
        if not operands and not operators:
            raise self._error(f"Unexpected token '{start.text}' in expression or statement.")
        if len(operands) == 1 and not operators:
            return operands[0]
        return A.ExpressionAst(tuple(operands), tuple(operators), self._extent(start))

    def _parse_argument_list(self) -> A.Ast:
        start = self._peek()
        first = self._parse_argument()
        if not self._at(TokenKind.COMMA):
            return first
        items = [first]
        while self._at(TokenKind.COMMA):
            self._next()
            self._skip_newlines()
            items.append(self._parse_argument())
        return A.ArrayLiteralAst(tuple(items), self._extent(start))

    def _parse_argument(self) -> A.Ast:
        """One primary, plus any primaries written directly against it."""
        start = self._peek()
        parts = [self._parse_primary()]
        while (
            self._last is not None
            and self._peek().kind in _MERGEABLE
            and self._peek().offset == self._last.end_offset
        ):
            parts.append(self._parse_primary())
        if len(parts) == 1:
            return parts[0]
        return A.ExpressionAst(tuple(parts), (), self._extent(start))

    def _parse_primary(self) -> A.Ast:
        tok = self._peek()
        kind = tok.kind
        if kind is TokenKind.GENERIC or kind is TokenKind.DOT:
            self._next()
            return A.StringConstantAst(tok.value, "bare", self._extent(tok, tok))
        if kind is TokenKind.STRING:
            self._next()
            if tok.expandable:
                return A.ExpandableStringAst(tok.value, self._extent(tok, tok))
            return A.StringConstantAst(tok.value, tok.string_kind, self._extent(tok, tok))
        if kind is TokenKind.NUMBER:
            self._next()
            return A.ConstantExpressionAst(tok.value, self._extent(tok, tok))
        if kind is TokenKind.VARIABLE:
            self._next()
            return A.VariableExpressionAst(tok.value, tok.splatted, self._extent(tok, tok))
        if kind is TokenKind.TYPE:
            self._next()
            return A.TypeExpressionAst(tok.value, self._extent(tok, tok))
        if kind in (TokenKind.LPAREN, TokenKind.SUBEXPR, TokenKind.ARRAY):
            self._next()
            statements = tuple(self._parse_statement_list(TokenKind.RPAREN))
            self._expect(TokenKind.RPAREN, "Missing closing ')' in expression.")
            node_cls: type = {
                TokenKind.LPAREN: A.ParenExpressionAst,
                TokenKind.SUBEXPR: A.SubExpressionAst,
                TokenKind.ARRAY: A.ArrayExpressionAst,
            }[kind]
            return node_cls(statements, self._extent(tok))  # type: ignore[misc]
        if kind is TokenKind.HASH:
            return self._parse_hashtable()
        if kind is TokenKind.LBRACE:
            block = self._parse_block("script block")
            return A.ScriptBlockExpressionAst(block, block.extent)
        if kind is TokenKind.COMMA:
            # Unary array operator: ,$x
            self._next()
            operand = self._parse_argument()
            return A.ArrayLiteralAst((operand,), self._extent(tok))
        raise self._error(f"Unexpected token '{tok.text}' in expression or statement.")

    def _parse_hashtable(self) -> A.HashtableAst:
        start = self._next()
        pairs: List[Tuple[A.Ast, A.Ast]] = []
        while True:
            while self._at(TokenKind.NEWLINE, TokenKind.SEMI):
                self._next()
            if self._at(TokenKind.RBRACE):
                self._next()
                break
            if self._at(TokenKind.EOF):
                raise self._error("Missing closing '}' in hash literal.")
            key = self._parse_argument()
            self._expect(TokenKind.ASSIGN, "Missing '=' operator after key in hash literal.")
            self._skip_newlines()
            value = self._parse_statement()
            pairs.append((key, value))
        return A.HashtableAst(tuple(pairs), self._extent(start))


# ═══════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════

def parse_script(text: str, file_name: str = "") -> A.ScriptBlockAst:
    """Parse a complete script.  Raises :class:`ParseError` on bad input."""
    tokens = tokenize(text, file_name)
    _log.debug("Tokenized %s: %d tokens", file_name or "<string>", len(tokens))
    return _Parser(tokens, text, file_name).parse_script()


def parse_file(path: Union[str, Path]) -> A.ScriptBlockAst:
    """Read *path* (UTF-8, BOM tolerated) and parse it."""
    p = Path(path)
    text = p.read_text(encoding="utf-8-sig")
    return parse_script(text, str(p))


__all__ = [
    "Token",
    "TokenKind",
    "parse_file",
    "parse_script",
    "tokenize",
]
