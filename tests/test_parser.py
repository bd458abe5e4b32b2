# tests/test_parser.py
"""
Tests for the PowerShell front end: tokenizer, statements, commands and
parse errors.
"""

import textwrap

import pytest

from psrules.ast_nodes import (
    AssignmentStatementAst,
    CommandAst,
    CommandExpressionAst,
    CommandParameterAst,
    ConstantExpressionAst,
    ExpandableStringAst,
    FunctionDefinitionAst,
    HashtableAst,
    IfStatementAst,
    LoopStatementAst,
    NamedBlockAst,
    OpaqueStatementAst,
    PipelineAst,
    ScriptBlockAst,
    StringConstantAst,
    SubExpressionAst,
    TryStatementAst,
    VariableExpressionAst,
)
from psrules.errors import ParseError
from psrules.parser import TokenKind, parse_file, parse_script, tokenize


def _commands(tree):
    return list(tree.find_all(lambda n: isinstance(n, CommandAst)))


def _only_command(text):
    cmds = _commands(parse_script(textwrap.dedent(text)))
    assert len(cmds) == 1
    return cmds[0]


class TestTokenizer:
    """Token kinds, values and positions."""

    def test_command_with_colon_parameter(self):
        toks = tokenize("Get-Item -Path:C:\\temp")
        assert [t.kind for t in toks] == [
            TokenKind.GENERIC, TokenKind.PARAMETER, TokenKind.GENERIC, TokenKind.EOF,
        ]
        assert toks[1].value == "Path"
        assert toks[1].colon is True
        assert toks[2].value == "C:\\temp"

    def test_positions_are_one_based(self):
        toks = tokenize("a\n  b")
        b = [t for t in toks if t.value == "b"][0]
        assert (b.line, b.column) == (2, 3)

    def test_comments_are_dropped(self):
        toks = tokenize("# note\nGet-Item <# inline #> x")
        values = [t.value for t in toks if t.kind is TokenKind.GENERIC]
        assert values == ["Get-Item", "x"]

    def test_line_continuation(self):
        toks = tokenize("Copy-Item `\n  -Path a")
        assert TokenKind.NEWLINE not in [t.kind for t in toks]

    def test_variables_and_splats(self):
        toks = tokenize("$x @params ${my var}")
        assert [t.kind for t in toks[:3]] == [TokenKind.VARIABLE] * 3
        assert toks[0].value == "x"
        assert toks[1].splatted is True
        assert toks[2].value == "my var"

    def test_single_quoted_escape(self):
        toks = tokenize("'it''s'")
        assert toks[0].value == "it's"
        assert toks[0].string_kind == "single"

    def test_double_quoted_expandable(self):
        toks = tokenize('"plain" "hi $name"')
        assert toks[0].expandable is False
        assert toks[1].expandable is True

    def test_redirections(self):
        toks = tokenize("x 2>&1 >> log.txt")
        redirects = [t.text for t in toks if t.kind is TokenKind.REDIRECT]
        assert redirects == ["2>&1", ">>"]

    def test_numbers(self):
        toks = tokenize("5 0x1F 1.5 10MB")
        assert all(t.kind is TokenKind.NUMBER for t in toks[:4])

    def test_chain_operators(self):
        toks = tokenize("a && b || c")
        assert [t.kind for t in toks if t.kind is TokenKind.CHAIN] == [TokenKind.CHAIN] * 2


class TestCommands:
    """Command invocations and their elements."""

    def test_named_parameters(self):
        cmd = _only_command('Copy-Item -Path "src" -Destination "dst"')
        assert cmd.get_command_name() == "Copy-Item"
        assert [p.name for p in cmd.parameters] == ["Path", "Destination"]
        assert len(cmd.elements) == 5
        assert isinstance(cmd.elements[2], StringConstantAst)
        assert cmd.elements[2].value == "src"

    def test_colon_argument_is_attached(self):
        cmd = _only_command("Copy-Item -Path:src -Destination:dst")
        assert len(cmd.elements) == 3
        param = cmd.elements[1]
        assert isinstance(param, CommandParameterAst)
        assert isinstance(param.argument, StringConstantAst)
        assert param.argument.value == "src"

    def test_positional_arguments(self):
        cmd = _only_command('Copy-Item "src" "dst"')
        assert cmd.parameters == ()
        assert len(cmd.elements) == 3

    def test_extent(self):
        tree = parse_script('\nCopy-Item -Destination "foo"\n', "x.ps1")
        cmd = _commands(tree)[0]
        assert cmd.extent.file == "x.ps1"
        assert (cmd.extent.start_line, cmd.extent.start_column) == (2, 1)
        assert cmd.extent.text == 'Copy-Item -Destination "foo"'

    def test_call_operator_with_string_name(self):
        cmd = _only_command("& 'Get-Item' x")
        assert cmd.invocation_operator == "&"
        assert cmd.get_command_name() == "Get-Item"

    def test_call_operator_with_variable_has_no_name(self):
        cmd = _only_command("& $cmd -Force")
        assert cmd.get_command_name() is None

    def test_dot_source(self):
        cmd = _only_command(". .\\lib.ps1")
        assert cmd.invocation_operator == "."
        assert cmd.get_command_name() == ".\\lib.ps1"

    def test_splatted_argument(self):
        cmd = _only_command("Copy-Item @params")
        arg = cmd.elements[1]
        assert isinstance(arg, VariableExpressionAst)
        assert arg.splatted

    def test_number_argument(self):
        cmd = _only_command("Start-Sleep 5")
        assert isinstance(cmd.elements[1], ConstantExpressionAst)

    def test_expandable_string_argument(self):
        cmd = _only_command('Write-Output "Hello $name"')
        assert isinstance(cmd.elements[1], ExpandableStringAst)

    def test_redirections_are_not_elements(self):
        cmd = _only_command("Get-Item x 2>&1 > out.txt")
        assert len(cmd.elements) == 2
        assert [r.operator for r in cmd.redirections] == ["2>&1", ">"]
        assert cmd.redirections[0].target is None
        assert cmd.redirections[1].target.value == "out.txt"

    def test_line_continuation_joins_command(self):
        cmd = _only_command("""\
            Copy-Item `
                -Path a `
                -Destination b  # trailing comment
        """)
        assert [p.name for p in cmd.parameters] == ["Path", "Destination"]

    def test_pipeline_input_flag(self):
        tree = parse_script("Get-ChildItem | Where-Object { $_.Length -gt 0 } | Copy-Item -Destination d")
        pipeline = tree.statements[0]
        assert isinstance(pipeline, PipelineAst)
        assert len(pipeline.elements) == 3
        flags = [e.receives_pipeline_input for e in pipeline.elements]
        assert flags == [False, True, True]

    def test_expression_pipeline_head(self):
        tree = parse_script("$items | ForEach-Object { $_ }")
        pipeline = tree.statements[0]
        assert isinstance(pipeline.elements[0], CommandExpressionAst)
        assert pipeline.elements[1].get_command_name() == "ForEach-Object"

    def test_percent_alias_after_pipe(self):
        tree = parse_script("$items | % { $_ }")
        assert tree.statements[0].elements[1].get_command_name() == "%"


class TestStatements:
    """Keyword statements and nesting."""

    def test_assignment(self):
        tree = parse_script("$x = Get-Item foo")
        stmt = tree.statements[0]
        assert isinstance(stmt, AssignmentStatementAst)
        assert isinstance(stmt.left, VariableExpressionAst)
        assert len(_commands(stmt.right)) == 1

    def test_if_elseif_else(self):
        tree = parse_script(textwrap.dedent("""\
            if ($a) {
                Get-Item a
            }
            elseif ($b) { Get-Item b }
            else {
                Get-Item c
            }
        """))
        stmt = tree.statements[0]
        assert isinstance(stmt, IfStatementAst)
        assert len(stmt.clauses) == 2
        assert stmt.else_clause is not None
        assert len(_commands(tree)) == 3

    def test_keywords_are_case_insensitive(self):
        tree = parse_script("IF ($a) { Get-Item a } ELSE { Get-Item b }")
        assert isinstance(tree.statements[0], IfStatementAst)

    def test_function_with_param_block(self):
        tree = parse_script(textwrap.dedent("""\
            function Copy-Stuff {
                param(
                    [Parameter(Mandatory)][string]$Source,
                    [string]$Target = 'out'
                )
                Copy-Item -Path $Source -Destination $Target
            }
        """))
        fn = tree.statements[0]
        assert isinstance(fn, FunctionDefinitionAst)
        assert fn.name == "Copy-Stuff"
        assert [c.get_command_name() for c in _commands(tree)] == ["Copy-Item"]

    def test_named_blocks(self):
        tree = parse_script(textwrap.dedent("""\
            function Test-It {
                begin { Get-Item a }
                process { Get-Item b }
                end { Get-Item c }
            }
        """))
        blocks = list(tree.find_all(lambda n: isinstance(n, NamedBlockAst)))
        assert [b.name for b in blocks] == ["begin", "process", "end"]

    def test_end_without_brace_is_a_command(self):
        cmd = _only_command("end now")
        assert cmd.get_command_name() == "end"

    def test_loops(self):
        tree = parse_script(textwrap.dedent("""\
            foreach ($i in $list) { Get-Item $i }
            for ($i = 0; $i -lt 3; $i++) { Get-Item x }
            while ($true) { break }
            do { Get-Item y } until ($done)
        """))
        loops = [s for s in tree.statements if isinstance(s, LoopStatementAst)]
        assert [l.keyword for l in loops] == ["foreach", "for", "while", "do"]
        assert loops[3].flags == ("until",)

    def test_switch_with_default(self):
        tree = parse_script(textwrap.dedent("""\
            switch -Regex ($x) {
                'a' { Copy-Item -Destination d }
                default { Get-Item y }
            }
        """))
        stmt = tree.statements[0]
        assert isinstance(stmt, LoopStatementAst)
        assert stmt.flags == ("Regex",)
        assert [c.get_command_name() for c in _commands(tree)] == ["Copy-Item", "Get-Item"]

    def test_try_catch_finally(self):
        tree = parse_script(textwrap.dedent("""\
            try {
                Get-Item a
            }
            catch [System.IO.IOException] {
                Write-Output b
            }
            finally { Write-Output c }
        """))
        stmt = tree.statements[0]
        assert isinstance(stmt, TryStatementAst)
        assert stmt.catch_clauses[0].types == ("System.IO.IOException",)
        assert stmt.finally_block is not None

    def test_hashtable_values_are_statements(self):
        tree = parse_script("$h = @{ Path = 'a'; Items = (Get-ChildItem) }")
        assert tree.find(lambda n: isinstance(n, HashtableAst)) is not None
        assert [c.get_command_name() for c in _commands(tree)] == ["Get-ChildItem"]

    def test_subexpression(self):
        tree = parse_script("$r = $(Get-Item x)")
        assert tree.find(lambda n: isinstance(n, SubExpressionAst)) is not None
        assert len(_commands(tree)) == 1

    def test_class_body_is_opaque(self):
        tree = parse_script(textwrap.dedent("""\
            class Foo {
                [string] $Name
                Foo() { Copy-Item }
            }
            Get-Item x
        """))
        assert isinstance(tree.statements[0], OpaqueStatementAst)
        assert [c.get_command_name() for c in _commands(tree)] == ["Get-Item"]

    def test_here_string(self):
        tree = parse_script('$t = @"\nline one\nline two\n"@\nGet-Item x')
        assert [c.get_command_name() for c in _commands(tree)] == ["Get-Item"]

    def test_statement_chain(self):
        tree = parse_script("Get-Item a && Get-Item b")
        assert len(tree.statements) == 2

    def test_empty_script(self):
        tree = parse_script("")
        assert isinstance(tree, ScriptBlockAst)
        assert tree.statements == ()

    def test_to_dict(self):
        tree = parse_script("Get-Item x")
        dumped = tree.to_dict()
        assert dumped["type"] == "ScriptBlockAst"
        assert dumped["statements"][0]["type"] == "PipelineAst"


class TestParseErrors:
    """Malformed scripts raise ParseError with a location."""

    def test_unterminated_string(self):
        with pytest.raises(ParseError) as info:
            parse_script('Get-Item "oops', "bad.ps1")
        assert info.value.extent.start_line == 1
        assert str(info.value).startswith("bad.ps1:1:10:")

    def test_missing_closing_brace(self):
        with pytest.raises(ParseError):
            parse_script("if ($x) {\n Get-Item a\n")

    def test_try_without_catch(self):
        with pytest.raises(ParseError, match="Catch or Finally"):
            parse_script("try { Get-Item a }")

    def test_redirect_input_is_reserved(self):
        with pytest.raises(ParseError, match="reserved"):
            parse_script("Get-Item < file")

    def test_unterminated_block_comment(self):
        with pytest.raises(ParseError):
            parse_script("<# never closed")

    def test_stray_closing_paren(self):
        with pytest.raises(ParseError):
            parse_script("Get-Item )")


class TestParseFile:

    def test_reads_utf8_with_bom(self, tmp_path):
        path = tmp_path / "script.ps1"
        path.write_bytes("\ufeffGet-Item x\n".encode("utf-8"))
        tree = parse_file(path)
        cmd = _commands(tree)[0]
        assert cmd.get_command_name() == "Get-Item"
        assert cmd.extent.file == str(path)
