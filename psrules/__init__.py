"""psrules: static-analysis rules for PowerShell scripts.

Submodules
----------
parser
    Tokenizer and recursive-descent parser producing the syntax tree
    defined in ``ast_nodes``.

ast_helper
    Invocation scanning and parameter-binding queries.

metadata
    Command metadata and alias lookup protocols, ``CommandInventory``
    and the JSON inventory loader.

rules
    ``ScriptRule`` base class, ``RuleRegistry``, ``RuleRunner``.

use_cmdlet_correctly
    The ``PSUseCmdletCorrectly`` rule.

main
    CLI entry-point with subcommands: ``analyze``, ``rules``, ``parse``.

Usage
-----
Command-line::

    psrules analyze scripts/ --inventory commands.json
    python -m psrules parse deploy.ps1 --format json

Programmatic::

    from psrules.metadata import load_inventory
    from psrules.rules import RuleRunner

    runner = RuleRunner(commands=load_inventory("commands.json"))
    results = runner.analyze_file("deploy.ps1")
    print(results.to_gcc_format())
"""

from __future__ import annotations

__version__: str = "0.1.0"
__all__: list[str] = [
    "__version__",
    "ast_helper",
    "ast_nodes",
    "config",
    "diagnostics",
    "errors",
    "metadata",
    "parser",
    "rules",
    "strings",
    "use_cmdlet_correctly",
]
