"""
psrules/metadata.py
═══════════════════

Command metadata and alias lookup.

Rules never talk to a live shell.  They ask two small collaborators:

* an :class:`AliasResolver` – ``resolve_alias(name) -> Optional[str]``
* a :class:`CommandMetadataProvider` – ``get_command_metadata(name)``

Both are :class:`typing.Protocol` contracts, so any object with the right
methods plugs in.  :class:`CommandInventory` implements both from an
in-memory table, usually loaded from a JSON snapshot of the installed
commands via :func:`load_inventory`.

A lookup that cannot produce metadata returns an
:class:`UnresolvedCommand` instead of raising; :func:`resolve_command`
also folds collaborator faults into that result.

Inventory file format::

    {
      "commands": [
        {"name": "Copy-Item", "type": "Cmdlet", "parameterSetCount": 2,
         "parameters": [
            {"name": "Path", "mandatory": [true, false]},
            {"name": "Force", "switch": true, "mandatory": [false, false]}
         ]}
      ],
      "aliases": {"cp": "Copy-Item"}
    }
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    Union,
    runtime_checkable,
)

from psrules.errors import MetadataError

_log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  METADATA TYPES
# ═══════════════════════════════════════════════════════════════════════════

class CommandType(enum.Enum):
    ALIAS = "Alias"
    FUNCTION = "Function"
    FILTER = "Filter"
    CMDLET = "Cmdlet"
    EXTERNAL_SCRIPT = "ExternalScript"
    APPLICATION = "Application"
    SCRIPT = "Script"
    WORKFLOW = "Workflow"
    CONFIGURATION = "Configuration"

    @classmethod
    def parse(cls, text: str) -> "CommandType":
        """Case-insensitive lookup by value (``"cmdlet"`` → ``CMDLET``)."""
        for member in cls:
            if member.value.lower() == str(text).lower():
                return member
        raise MetadataError(f"Unknown command type {text!r}")


@dataclass(frozen=True)
class ParameterInfo:
    """
    One parameter of a command.

    ``mandatory_flags`` holds one entry per parameter attribute declared on
    the parameter, i.e. one per parameter set it takes part in.
    """
    name: str
    mandatory_flags: Tuple[bool, ...] = ()
    is_switch: bool = False

    @property
    def attribute_count(self) -> int:
        return len(self.mandatory_flags)

    @property
    def mandatory_count(self) -> int:
        return sum(1 for flag in self.mandatory_flags if flag)


@dataclass(frozen=True)
class CommandInfo:
    """Resolved metadata for one command.  Parameter names are case-insensitive."""
    name: str
    command_type: CommandType
    parameter_set_count: int = 1
    parameters: Mapping[str, ParameterInfo] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.parameter_set_count < 1:
            raise MetadataError(
                f"Command {self.name!r} must have at least one parameter set, "
                f"got {self.parameter_set_count}"
            )
        folded = {key.casefold(): info for key, info in self.parameters.items()}
        object.__setattr__(self, "parameters", folded)

    @classmethod
    def create(
        cls,
        name: str,
        command_type: CommandType,
        parameter_set_count: int = 1,
        parameters: Iterable[ParameterInfo] = (),
    ) -> "CommandInfo":
        return cls(name, command_type, parameter_set_count,
                   {p.name: p for p in parameters})

    def get_parameter(self, name: str) -> Optional[ParameterInfo]:
        return self.parameters.get(name.casefold())

    @property
    def switch_parameters(self) -> FrozenSet[str]:
        return frozenset(p.name for p in self.parameters.values() if p.is_switch)

    @property
    def value_parameters(self) -> FrozenSet[str]:
        return frozenset(p.name for p in self.parameters.values() if not p.is_switch)


class UnresolvedReason(enum.Enum):
    NOT_FOUND = "not-found"
    FAULT = "fault"


@dataclass(frozen=True)
class UnresolvedCommand:
    """A lookup that produced no metadata.  Not an error."""
    name: str
    reason: UnresolvedReason = UnresolvedReason.NOT_FOUND
    detail: str = ""


CommandMetadata = Union[CommandInfo, UnresolvedCommand]


# ═══════════════════════════════════════════════════════════════════════════
#  COLLABORATOR PROTOCOLS
# ═══════════════════════════════════════════════════════════════════════════

@runtime_checkable
class AliasResolver(Protocol):
    """Maps an alias to its command name; ``None`` if *name* is no alias."""

    def resolve_alias(self, name: str) -> Optional[str]:
        ...


@runtime_checkable
class CommandMetadataProvider(Protocol):
    """Looks up command metadata by name."""

    def get_command_metadata(self, name: str) -> CommandMetadata:
        ...


# ═══════════════════════════════════════════════════════════════════════════
#  IN-MEMORY INVENTORY
# ═══════════════════════════════════════════════════════════════════════════

class CommandInventory:
    """
    Table of known commands and aliases.

    Implements both :class:`AliasResolver` and
    :class:`CommandMetadataProvider`.  Lookups are case-insensitive.
    """

    def __init__(self) -> None:
        self._commands: Dict[str, CommandInfo] = {}
        self._aliases: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.casefold() in self._commands

    def add_command(self, info: CommandInfo) -> None:
        key = info.name.casefold()
        if key in self._commands:
            _log.debug("Replacing inventory entry for %s", info.name)
        self._commands[key] = info

    def add_alias(self, alias: str, target: str) -> None:
        self._aliases[alias.casefold()] = target

    def commands(self) -> List[CommandInfo]:
        return sorted(self._commands.values(), key=lambda c: c.name.lower())

    def aliases(self) -> Dict[str, str]:
        return dict(self._aliases)

    # AliasResolver
    def resolve_alias(self, name: str) -> Optional[str]:
        return self._aliases.get(name.casefold())

    # CommandMetadataProvider
    def get_command_metadata(self, name: str) -> CommandMetadata:
        info = self._commands.get(name.casefold())
        if info is None:
            return UnresolvedCommand(name)
        return info

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source: str = "<dict>") -> "CommandInventory":
        """Build an inventory from the JSON structure described in the module docstring."""
        if not isinstance(data, Mapping):
            raise MetadataError(f"{source}: inventory must be a JSON object")
        inventory = cls()
        commands = data.get("commands", [])
        if not isinstance(commands, list):
            raise MetadataError(f"{source}: 'commands' must be a list")
        for index, entry in enumerate(commands):
            inventory.add_command(_command_from_dict(entry, f"{source}: commands[{index}]"))
        aliases = data.get("aliases", {})
        if not isinstance(aliases, Mapping):
            raise MetadataError(f"{source}: 'aliases' must be an object")
        for alias, target in aliases.items():
            if not isinstance(target, str):
                raise MetadataError(f"{source}: alias {alias!r} must map to a string")
            inventory.add_alias(alias, target)
        return inventory


def _parameter_from_dict(data: Any, where: str) -> ParameterInfo:
    if not isinstance(data, Mapping) or not isinstance(data.get("name"), str):
        raise MetadataError(f"{where}: parameter needs a string 'name'")
    flags = data.get("mandatory", [])
    if isinstance(flags, bool):
        flags = [flags]
    if not isinstance(flags, list) or not all(isinstance(f, bool) for f in flags):
        raise MetadataError(f"{where}: 'mandatory' must be a list of booleans")
    return ParameterInfo(data["name"], tuple(flags), bool(data.get("switch", False)))


def _command_from_dict(data: Any, where: str) -> CommandInfo:
    if not isinstance(data, Mapping) or not isinstance(data.get("name"), str):
        raise MetadataError(f"{where}: command needs a string 'name'")
    set_count = data.get("parameterSetCount", 1)
    if not isinstance(set_count, int) or isinstance(set_count, bool):
        raise MetadataError(f"{where}: 'parameterSetCount' must be an integer")
    params = data.get("parameters", [])
    if not isinstance(params, list):
        raise MetadataError(f"{where}: 'parameters' must be a list")
    return CommandInfo.create(
        data["name"],
        CommandType.parse(data.get("type", "Cmdlet")),
        set_count,
        [_parameter_from_dict(p, f"{where}.parameters[{i}]") for i, p in enumerate(params)],
    )


def load_inventory(path: Union[str, Path]) -> CommandInventory:
    """Read a JSON inventory file.  Raises :class:`MetadataError` on bad data."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8-sig"))
    except OSError as exc:
        raise MetadataError(f"Cannot read inventory {p}: {exc}", cause=exc) from exc
    except json.JSONDecodeError as exc:
        raise MetadataError(f"{p}: invalid JSON: {exc}", cause=exc) from exc
    inventory = CommandInventory.from_dict(data, str(p))
    _log.info("Loaded %d commands and %d aliases from %s",
              len(inventory), len(inventory.aliases()), p)
    return inventory


# ═══════════════════════════════════════════════════════════════════════════
#  RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════

def resolve_command(
    name: str,
    aliases: AliasResolver,
    provider: CommandMetadataProvider,
) -> CommandMetadata:
    """
    Resolve *name* to command metadata, following one alias hop.

    The alias target is tried first so an alias shadowing a command wins;
    if *name* is no alias, its target is unknown, or the alias hop faults,
    *name* itself is looked up.  A fault in that direct lookup comes back
    as ``UnresolvedCommand(reason=FAULT)``.
    """
    try:
        target = aliases.resolve_alias(name)
        if target:
            result = provider.get_command_metadata(target)
            if isinstance(result, CommandInfo):
                return result
    except Exception as exc:
        _log.debug("Alias lookup for %s failed: %s", name, exc)
    try:
        return provider.get_command_metadata(name)
    except Exception as exc:
        _log.debug("Metadata lookup for %s failed: %s", name, exc)
        return UnresolvedCommand(name, UnresolvedReason.FAULT, str(exc))


__all__ = [
    "AliasResolver",
    "CommandInfo",
    "CommandInventory",
    "CommandMetadata",
    "CommandMetadataProvider",
    "CommandType",
    "ParameterInfo",
    "UnresolvedCommand",
    "UnresolvedReason",
    "load_inventory",
    "resolve_command",
]
