# tests/test_metadata.py
"""
Tests for command metadata types, the in-memory inventory, the JSON
loader and alias-aware resolution.
"""

import json
from unittest.mock import MagicMock

import pytest

from psrules.errors import MetadataError
from psrules.metadata import (
    AliasResolver,
    CommandInfo,
    CommandInventory,
    CommandMetadataProvider,
    CommandType,
    ParameterInfo,
    UnresolvedCommand,
    UnresolvedReason,
    load_inventory,
    resolve_command,
)


class TestCommandInfo:

    def test_parameters_are_case_insensitive(self):
        info = CommandInfo.create("Copy-Item", CommandType.CMDLET, 1, [
            ParameterInfo("Path", (True,)),
        ])
        assert info.get_parameter("PATH").name == "Path"
        assert "path" in info.parameters

    def test_switch_parameters(self):
        info = CommandInfo.create("Copy-Item", CommandType.CMDLET, 1, [
            ParameterInfo("Path", (True,)),
            ParameterInfo("Force", (False,), is_switch=True),
        ])
        assert info.switch_parameters == frozenset({"Force"})
        assert info.value_parameters == frozenset({"Path"})

    def test_needs_a_parameter_set(self):
        with pytest.raises(MetadataError):
            CommandInfo("Broken", CommandType.CMDLET, 0)

    def test_parameter_counts(self):
        p = ParameterInfo("A", (True, False, True))
        assert p.attribute_count == 3
        assert p.mandatory_count == 2

    def test_command_type_parse(self):
        assert CommandType.parse("cmdlet") is CommandType.CMDLET
        assert CommandType.parse("ExternalScript") is CommandType.EXTERNAL_SCRIPT
        with pytest.raises(MetadataError):
            CommandType.parse("Gadget")


class TestCommandInventory:

    def test_implements_both_protocols(self, inventory):
        assert isinstance(inventory, AliasResolver)
        assert isinstance(inventory, CommandMetadataProvider)

    def test_lookup(self, inventory):
        info = inventory.get_command_metadata("copy-item")
        assert isinstance(info, CommandInfo)
        assert info.name == "Copy-Item"
        assert info.command_type is CommandType.CMDLET

    def test_unknown_command(self, inventory):
        result = inventory.get_command_metadata("Invoke-Nothing")
        assert isinstance(result, UnresolvedCommand)
        assert result.reason is UnresolvedReason.NOT_FOUND

    def test_aliases(self, inventory):
        assert inventory.resolve_alias("CP") == "Copy-Item"
        assert inventory.resolve_alias("Copy-Item") is None

    def test_from_dict_shapes(self, inventory):
        assert len(inventory) == 6
        assert "git" in inventory
        gc = inventory.get_command_metadata("Get-Content")
        assert gc.parameter_set_count == 2
        assert gc.get_parameter("Raw").is_switch

    def test_scalar_mandatory_flag(self):
        inv = CommandInventory.from_dict({"commands": [
            {"name": "X", "parameters": [{"name": "P", "mandatory": True}]},
        ]})
        assert inv.get_command_metadata("X").get_parameter("P").mandatory_flags == (True,)

    @pytest.mark.parametrize("data", [
        [],
        {"commands": {}},
        {"commands": [{"type": "Cmdlet"}]},
        {"commands": [{"name": "X", "parameterSetCount": "2"}]},
        {"commands": [{"name": "X", "parameterSetCount": 0}]},
        {"commands": [{"name": "X", "parameters": [{"name": "P", "mandatory": ["yes"]}]}]},
        {"commands": [{"name": "X", "type": "Gadget"}]},
        {"aliases": {"cp": 3}},
    ])
    def test_bad_data(self, data):
        with pytest.raises(MetadataError):
            CommandInventory.from_dict(data)


class TestLoadInventory:

    def test_round_trip_from_file(self, tmp_path):
        path = tmp_path / "inv.json"
        path.write_text(json.dumps({
            "commands": [{"name": "Copy-Item", "parameters": [
                {"name": "Path", "mandatory": [True]}]}],
            "aliases": {"cp": "Copy-Item"},
        }), encoding="utf-8")
        inv = load_inventory(path)
        assert inv.resolve_alias("cp") == "Copy-Item"
        assert isinstance(inv.get_command_metadata("Copy-Item"), CommandInfo)

    def test_missing_file(self, tmp_path):
        with pytest.raises(MetadataError, match="Cannot read"):
            load_inventory(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "inv.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(MetadataError, match="invalid JSON"):
            load_inventory(path)


class TestResolveCommand:
    """Alias first, then the name itself; a faulting direct lookup is FAULT."""

    def test_alias_target(self, inventory):
        info = resolve_command("cp", inventory, inventory)
        assert isinstance(info, CommandInfo)
        assert info.name == "Copy-Item"

    def test_direct_name(self, inventory):
        info = resolve_command("Copy-Item", inventory, inventory)
        assert info.name == "Copy-Item"

    def test_unknown(self, inventory):
        result = resolve_command("Invoke-Nothing", inventory, inventory)
        assert isinstance(result, UnresolvedCommand)

    def test_alias_to_unknown_falls_back_to_name(self):
        inv = CommandInventory()
        inv.add_command(CommandInfo("dir", CommandType.CMDLET))
        inv.add_alias("dir", "Get-Missing")
        info = resolve_command("dir", inv, inv)
        assert isinstance(info, CommandInfo)
        assert info.name == "dir"

    def test_alias_shadows_command(self):
        inv = CommandInventory()
        inv.add_command(CommandInfo("ls", CommandType.APPLICATION))
        inv.add_command(CommandInfo("Get-ChildItem", CommandType.CMDLET))
        inv.add_alias("ls", "Get-ChildItem")
        assert resolve_command("ls", inv, inv).name == "Get-ChildItem"

    def test_provider_fault_is_unresolved(self):
        aliases = MagicMock()
        aliases.resolve_alias.return_value = None
        provider = MagicMock()
        provider.get_command_metadata.side_effect = RuntimeError("native exe")
        result = resolve_command("cmd.exe", aliases, provider)
        assert isinstance(result, UnresolvedCommand)
        assert result.reason is UnresolvedReason.FAULT
        assert "native exe" in result.detail

    def test_alias_fault_falls_back_to_name(self):
        aliases = MagicMock()
        aliases.resolve_alias.side_effect = KeyError("boom")
        result = resolve_command("x", aliases, CommandInventory())
        assert isinstance(result, UnresolvedCommand)
        assert result.reason is UnresolvedReason.NOT_FOUND

    def test_alias_target_fault_falls_back_to_name(self):
        aliases = MagicMock()
        aliases.resolve_alias.return_value = "Broken-Target"
        copy_item = CommandInfo("cp", CommandType.CMDLET)
        provider = MagicMock()

        def lookup(name):
            if name == "Broken-Target":
                raise RuntimeError("boom")
            return copy_item

        provider.get_command_metadata.side_effect = lookup
        assert resolve_command("cp", aliases, provider) is copy_item

    def test_at_most_two_lookups(self):
        aliases = MagicMock()
        aliases.resolve_alias.return_value = "Target"
        provider = MagicMock()
        provider.get_command_metadata.return_value = UnresolvedCommand("x")
        resolve_command("x", aliases, provider)
        assert [c.args[0] for c in provider.get_command_metadata.call_args_list] == ["Target", "x"]
