# psrules/strings.py
"""
Message resources for rules and the analyzer host.

Messages are kept in per-culture tables and looked up by key.  Cultures
that are not known, or that lack a key, fall back to ``en-US``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

_log = logging.getLogger(__name__)

DEFAULT_CULTURE = "en-US"

_RESOURCES: Dict[str, Dict[str, str]] = {
    "en-US": {
        "SourceName": "PS",
        "NameSpaceFormat": "{0}{1}",
        "NullAstErrorMessage": "Parse error. Unable to analyze the script.",
        "UseCmdletCorrectlyName": "UseCmdletCorrectly",
        "UseCmdletCorrectlyCommonName": "Use Cmdlet Correctly",
        "UseCmdletCorrectlyDescription": (
            "Cmdlet should be called with the mandatory parameters."
        ),
        "UseCmdletCorrectlyError": (
            "Cmdlet '{0}' may be used incorrectly. Please check that all "
            "mandatory parameters are supplied."
        ),
        "RuleInternalError": "Rule '{0}' failed: {1}",
        "ParseErrorMessage": "Unable to parse the script: {0}",
    },
}

_current_culture = DEFAULT_CULTURE


def current_culture() -> str:
    return _current_culture


def set_culture(culture: Optional[str]) -> None:
    """Select the culture used when callers do not pass one explicitly."""
    global _current_culture
    _current_culture = culture or DEFAULT_CULTURE


def available_cultures() -> List[str]:
    return sorted(_RESOURCES)


def get_string(key: str, culture: Optional[str] = None) -> str:
    """
    Look up the resource *key* for *culture*.

    Raises ``KeyError`` if the key is unknown even in the default culture.
    """
    name = culture or _current_culture
    table = _RESOURCES.get(name)
    if table is not None and key in table:
        return table[key]
    if name != DEFAULT_CULTURE:
        _log.debug("No '%s' resource for culture %s; using %s",
                   key, name, DEFAULT_CULTURE)
    return _RESOURCES[DEFAULT_CULTURE][key]


def format_string(key: str, *args: Any, culture: Optional[str] = None) -> str:
    return get_string(key, culture).format(*args)


__all__ = [
    "DEFAULT_CULTURE",
    "available_cultures",
    "current_culture",
    "format_string",
    "get_string",
    "set_culture",
]
