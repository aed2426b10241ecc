"""Rule definitions for the rule engine.

This module defines the Rule and ActionInvocation dataclasses along
with their validation logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union


# A condition is either a simpleeval expression string or a structured
# mapping ({field, operator, value} or an all/any/not group).
Condition = Union[str, dict[str, Any]]


@dataclass(frozen=True)
class ActionInvocation:
    """One step in a rule's action list.

    Attributes:
        type: Registered action name to invoke.
        params: Parameters passed to the handler. String values may be
            Jinja2 templates rendered against the evaluation context.
        condition: Optional guard checked right before this action runs.
        result_as: Name under which the result is bound in ``vars``.
    """

    type: str
    params: dict[str, Any] = field(default_factory=dict)
    condition: Optional[Condition] = None
    result_as: Optional[str] = None

    def validate(self) -> list[str]:
        """Validate the invocation.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if not self.type or not isinstance(self.type, str):
            errors.append("Action requires a type")

        if not isinstance(self.params, dict):
            errors.append(f"Action '{self.type}' params must be a table/mapping")

        if self.result_as is not None and not str(self.result_as).isidentifier():
            errors.append(f"Action '{self.type}' result name is not an identifier: {self.result_as}")

        if self.condition is not None and not isinstance(self.condition, (str, dict)):
            errors.append(f"Action '{self.type}' condition must be a string or mapping")

        return errors


@dataclass(frozen=True)
class Rule:
    """A rule mapping an event name to an ordered list of actions.

    Attributes:
        id: Unique identifier within one active rule set.
        event_name: Event name this rule responds to (exact match).
        condition: Optional guard; None means the rule always matches.
        actions: Actions executed in order when the rule matches.
        enabled: Disabled rules are never evaluated.
        name: Human-readable name.
        description: What the rule does.
        source_path: File path the rule was loaded from.
    """

    id: str
    event_name: str
    actions: tuple[ActionInvocation, ...] = ()
    condition: Optional[Condition] = None
    enabled: bool = True
    name: str = ""
    description: str = ""
    source_path: str = ""

    def validate(self, require_actions: bool = False) -> list[str]:
        """Validate the rule.

        Args:
            require_actions: Reject rules with no actions (applied to
                rules read from files).

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        if not self.id or not isinstance(self.id, str):
            errors.append("Rule requires an id")

        if not self.event_name or not isinstance(self.event_name, str):
            errors.append(f"Rule '{self.id}' requires an event name")

        if self.condition is not None and not isinstance(self.condition, (str, dict)):
            errors.append(f"Rule '{self.id}' condition must be a string or mapping")
        elif isinstance(self.condition, str) and not self.condition.strip():
            errors.append(f"Rule '{self.id}' condition cannot be empty")

        if require_actions and not self.actions:
            errors.append(f"Rule '{self.id}' must declare at least one action")

        for index, action in enumerate(self.actions):
            for error in action.validate():
                errors.append(f"actions[{index}]: {error}")

        return errors

    @property
    def display_name(self) -> str:
        return self.name or self.id
