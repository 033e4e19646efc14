"""
Variable store for a single deployment.

Variables are loaded once per process from a JSON object of string keys
to string values. Steps may set output variables in memory while the
pipeline runs; nothing is written back unless ``save()`` is called.

Usage:
    from deploycore.variables import VariableDictionary

    variables = VariableDictionary.from_file("variables.json")
    if variables.get_flag("DeployCore.Action.Package.SkipIfAlreadyInstalled"):
        ...
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

from deploycore.errors import ConfigurationError

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"#\{([^{}]+)\}")
_PATH_SEPARATORS = re.compile(r"[\r\n;]+")


def _coerce(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


class VariableDictionary:
    """Mapping of variable name to string value."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Optional[str]] = {}
        for key, value in (values or {}).items():
            self._values[str(key)] = _coerce(value)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "VariableDictionary":
        """
        Load variables from a JSON file.

        Raises:
            ConfigurationError: If the file cannot be read or is not a JSON object.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Variables file {path} is not valid JSON: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Variables file {path} could not be read: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Variables file {path} must contain a JSON object")

        logger.debug(f"Loaded {len(data)} variables from {path}")
        return cls(data)

    # Read

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._values.get(key)
        return default if value is None else value

    def get_flag(self, key: str, default: bool = False) -> bool:
        """Parse a "True"/"False" value; absent or unparsable gives ``default``."""
        value = self._values.get(key)
        if value is None:
            return default
        normalized = value.strip().lower()
        if normalized == "true":
            return True
        if normalized == "false":
            return False
        return default

    def get_strings(self, key: str, separators: str = ",") -> List[str]:
        """Split a value into trimmed, non-empty parts."""
        value = self._values.get(key)
        if not value:
            return []
        pattern = "[" + re.escape(separators) + "]"
        return [part.strip() for part in re.split(pattern, value) if part.strip()]

    def get_paths(self, key: str) -> List[str]:
        """Split a newline- or semicolon-separated list of paths."""
        value = self._values.get(key)
        if not value:
            return []
        return [part.strip() for part in _PATH_SEPARATORS.split(value) if part.strip()]

    def evaluate(self, text: str) -> str:
        """Replace ``#{Name}`` tokens with variable values; unknown tokens are kept."""
        def replace(match: "re.Match[str]") -> str:
            value = self._values.get(match.group(1).strip())
            return match.group(0) if value is None else value

        return _TOKEN_PATTERN.sub(replace, text)

    # Write

    def set(self, key: str, value: Any) -> None:
        self._values[key] = _coerce(value)

    def merge(self, other: "VariableDictionary") -> "VariableDictionary":
        """Return a new store; keys in ``other`` win over keys in this one."""
        merged = VariableDictionary(self._values)
        for key, value in other.items():
            merged.set(key, value)
        return merged

    def to_dict(self) -> Dict[str, Optional[str]]:
        return dict(self._values)

    def save(self, path: Union[str, Path]) -> None:
        """Export the variables as a JSON object."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2, sort_keys=True)

    # Mapping protocol

    def keys(self):
        return self._values.keys()

    def items(self):
        return self._values.items()

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VariableDictionary({len(self._values)} variables)"
