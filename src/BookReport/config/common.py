from __future__ import annotations

"""Typed access to one section of the raw YAML mapping.

Every error message carries the dotted key of the offending value, e.g.
`store.mongo.timeout_ms must be an integer`.
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping

_MISSING: Any = object()


@dataclass(frozen=True, slots=True)
class ConfigSection:
    """A mapping plus the dotted path it was read from.

    Attributes:
        path: Dotted path of the section; empty for the root mapping.
        values: Raw section values.
    """

    path: str
    values: Mapping[str, Any]

    @classmethod
    def root(cls, raw: Mapping[str, Any]) -> ConfigSection:
        return cls(path="", values=raw)

    def key(self, name: str) -> str:
        """Dotted key of a field in this section."""
        return f"{self.path}.{name}" if self.path else name

    def section(self, name: str, *, required: bool = False) -> ConfigSection:
        """Return a nested section.

        Raises:
            ValueError: If the section is required but missing.
            TypeError: If the value is not a mapping.
        """
        value = self.values.get(name)
        if value is None:
            if required:
                raise ValueError(f"Missing required config: {self.key(name)}")
            value = {}
        if not isinstance(value, Mapping):
            raise TypeError(f"{self.key(name)} must be an object")
        return ConfigSection(path=self.key(name), values=value)

    def value(self, name: str, default: Any = _MISSING) -> Any:
        """Return a raw field value; without a default the field is required.

        Raises:
            ValueError: If a required field is missing.
        """
        if name in self.values:
            return self.values[name]
        if default is _MISSING:
            raise ValueError(f"Missing required config: {self.key(name)}")
        return default

    def string(self, name: str, default: Any = _MISSING) -> str:
        return self._typed(name, default, lambda v: isinstance(v, str), "a string")

    def boolean(self, name: str, default: Any = _MISSING) -> bool:
        return self._typed(name, default, lambda v: isinstance(v, bool), "a boolean")

    def integer(self, name: str, default: Any = _MISSING) -> int:
        return self._typed(
            name, default, lambda v: isinstance(v, int) and not isinstance(v, bool), "an integer"
        )

    def string_list(self, name: str, default: Any = _MISSING) -> tuple[str, ...]:
        """Return a list of strings as a tuple.

        Raises:
            TypeError: If the value is not a list or an item is not a string;
                the message names the item index.
        """
        value = self._typed(name, default, lambda v: isinstance(v, list), "a list")
        for idx, item in enumerate(value):
            if not isinstance(item, str):
                raise TypeError(f"{self.key(name)}[{idx}] must be a string")
        return tuple(value)

    def _typed(self, name: str, default: Any, accepts: Callable[[Any], bool], kind: str) -> Any:
        value = self.value(name, default)
        if not accepts(value):
            raise TypeError(f"{self.key(name)} must be {kind}")
        return value


def check_non_empty(value: str, config_key: str) -> None:
    """Reject empty or whitespace-only strings."""
    if not value.strip():
        raise ValueError(f"{config_key} must not be empty")
