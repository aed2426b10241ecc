"""Evaluation context for a single event dispatch.

One EvaluationContext is created per dispatch. Conditions and
parameter templates read from it; the engine appends each action
result to it so later steps in the same dispatch can chain on
earlier results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from ..events.event import Event


@dataclass
class EvaluationContext:
    """Per-dispatch state visible to conditions, templates and actions.

    Attributes:
        event: The event being dispatched.
        helpers: Helper snapshot taken at dispatch start.
        results: Action results in execution order.
        vars: Results bound by name via an invocation's ``as``.
        rule_id: Id of the rule currently executing.
    """

    event: Event
    helpers: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    results: list[Any] = field(default_factory=list)
    vars: dict[str, Any] = field(default_factory=dict)
    rule_id: Optional[str] = None

    @property
    def data(self) -> dict[str, Any]:
        return self.event.data

    @property
    def platform(self) -> Optional[str]:
        return self.event.platform

    @property
    def last_result(self) -> Any:
        return self.results[-1] if self.results else None

    def record(self, result: Any, name: Optional[str] = None) -> None:
        """Append an action result and optionally bind it by name."""
        self.results.append(result)
        if name:
            self.vars[name] = result

    def names(self) -> dict[str, Any]:
        """Namespace exposed to expressions and templates.

        Helpers are available both as top-level names and under
        ``helpers``.
        """
        namespace: dict[str, Any] = dict(self.helpers)
        namespace.update(
            {
                "event": {
                    "name": self.event.name,
                    "platform": self.event.platform,
                    "timestamp": self.event.timestamp,
                    "data": self.event.data,
                },
                "event_name": self.event.name,
                "data": self.event.data,
                "platform": self.event.platform,
                "timestamp": self.event.timestamp,
                "helpers": self.helpers,
                "results": list(self.results),
                "last_result": self.last_result,
                "vars": dict(self.vars),
            }
        )
        return namespace
