"""Helper registry for functions callable from conditions and templates."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Mapping


logger = logging.getLogger(__name__)


HelperFunction = Callable[..., Any]

# Names the evaluation context always binds; a helper under one of them would be shadowed
RESERVED_NAMES = frozenset(
    {"event", "event_name", "data", "platform", "timestamp", "helpers", "results", "last_result", "vars"}
)


class HelperRegistry:
    """Named pure functions exposed to rule conditions and parameters.

    ``get_all()`` returns a read-only snapshot so a dispatch sees one
    consistent helper set even if a plugin registers more mid-dispatch.
    """

    def __init__(self) -> None:
        self._helpers: dict[str, HelperFunction] = {}

    def register(self, name: str, fn: HelperFunction) -> None:
        if not name or not name.isidentifier():
            raise ValueError(f"Helper name must be a valid identifier: {name!r}")
        if name in RESERVED_NAMES:
            raise ValueError(f"Helper name '{name}' is reserved by the evaluation context")
        if not callable(fn):
            raise ValueError(f"Helper '{name}' is not callable")
        if name in self._helpers:
            logger.warning(f"Helper '{name}' re-registered; replacing previous function")
        self._helpers[name] = fn

    def unregister(self, name: str) -> bool:
        return self._helpers.pop(name, None) is not None

    def get(self, name: str) -> HelperFunction | None:
        return self._helpers.get(name)

    def get_all(self) -> Mapping[str, HelperFunction]:
        """Snapshot of all helpers as an immutable mapping."""
        return MappingProxyType(dict(self._helpers))

    def __contains__(self, name: object) -> bool:
        return name in self._helpers

    def __len__(self) -> int:
        return len(self._helpers)
