# tests/conftest.py
"""Shared fixtures: a small command inventory and a parse helper."""

import json
import textwrap

import pytest

from psrules.metadata import CommandInventory
from psrules.parser import parse_script


INVENTORY_DATA = {
    "commands": [
        {
            "name": "Copy-Item",
            "type": "Cmdlet",
            "parameterSetCount": 1,
            "parameters": [
                {"name": "Path", "mandatory": [True]},
                {"name": "Destination", "mandatory": [True]},
                {"name": "Force", "switch": True, "mandatory": [False]},
                {"name": "Recurse", "switch": True, "mandatory": [False]},
            ],
        },
        {
            # Two sets; neither Path nor LiteralPath is required in both.
            "name": "Get-Content",
            "type": "Cmdlet",
            "parameterSetCount": 2,
            "parameters": [
                {"name": "Path", "mandatory": [True, False]},
                {"name": "LiteralPath", "mandatory": [False, True]},
                {"name": "Raw", "switch": True, "mandatory": [False, False]},
            ],
        },
        {
            # A is mandatory in both sets, B in only one.
            "name": "New-Widget",
            "type": "Cmdlet",
            "parameterSetCount": 2,
            "parameters": [
                {"name": "A", "mandatory": [True, True]},
                {"name": "B", "mandatory": [True, False]},
                {"name": "Tag", "mandatory": [False, False]},
            ],
        },
        {
            "name": "Write-Output",
            "type": "Cmdlet",
            "parameterSetCount": 1,
            "parameters": [
                {"name": "InputObject", "mandatory": [False]},
            ],
        },
        {
            "name": "Invoke-Helper",
            "type": "Function",
            "parameterSetCount": 1,
            "parameters": [
                {"name": "Target", "mandatory": [True]},
            ],
        },
        {
            "name": "git",
            "type": "Application",
            "parameterSetCount": 1,
            "parameters": [],
        },
    ],
    "aliases": {
        "cp": "Copy-Item",
        "copy": "Copy-Item",
        "gc": "Get-Content",
        "echo": "Write-Output",
    },
}


@pytest.fixture
def inventory():
    return CommandInventory.from_dict(INVENTORY_DATA)


@pytest.fixture
def parse():
    """Parse dedented script text."""
    def _parse(text, file_name="test.ps1"):
        return parse_script(textwrap.dedent(text), file_name)
    return _parse


@pytest.fixture
def inventory_file(tmp_path):
    path = tmp_path / "inventory.json"
    path.write_text(json.dumps(INVENTORY_DATA), encoding="utf-8")
    return path
