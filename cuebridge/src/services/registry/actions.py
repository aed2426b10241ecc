"""Action registry for rule-invoked handlers.

Actions are named callables contributed by plugins. Rules reference
them by name and the engine invokes them through this registry.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


# Type alias for action handlers: (invocation, context) -> result or awaitable
ActionHandler = Callable[[Any, Any], Any]


class ActionError(Exception):
    """Raised when action execution fails."""

    pass


class ActionNotFoundError(ActionError):
    """Raised when a rule references an action nobody registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Action not registered: {name}")


class DuplicateActionError(ActionError):
    """Raised in strict mode when an action name is already taken."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Action already registered: {name}")


class ActionRegistry:
    """Name to handler map shared by all plugins.

    Registration is last-writer-wins: registering an existing name
    replaces the previous handler and logs a warning. With
    ``strict=True`` duplicates are rejected unless the caller passes
    ``replace=True``.

    Example:
        registry = ActionRegistry()
        registry.register("log", lambda invocation, context: print(invocation.params))
        await registry.invoke("log", invocation, context)
    """

    def __init__(self, strict: bool = False) -> None:
        self._handlers: dict[str, ActionHandler] = {}
        self._strict = strict

    @property
    def strict(self) -> bool:
        return self._strict

    def register(self, name: str, handler: ActionHandler, replace: bool = False) -> None:
        """Register a handler under a name.

        Args:
            name: Action name used by rules.
            handler: Callable receiving (invocation, context).
            replace: Allow overwriting in strict mode.

        Raises:
            ValueError: If name is empty or handler is not callable.
            DuplicateActionError: If strict and the name is taken.
        """
        if not name or not isinstance(name, str):
            raise ValueError("Action name must be a non-empty string")
        if not callable(handler):
            raise ValueError(f"Handler for action '{name}' is not callable")

        if name in self._handlers:
            if self._strict and not replace:
                raise DuplicateActionError(name)
            logger.warning(f"Action '{name}' re-registered; replacing previous handler")

        self._handlers[name] = handler
        logger.debug(f"Registered action: {name}")

    def unregister(self, name: str) -> bool:
        """Remove a handler.

        Returns:
            True if a handler was removed, False if not found.
        """
        return self._handlers.pop(name, None) is not None

    def get(self, name: str) -> Optional[ActionHandler]:
        return self._handlers.get(name)

    def names(self) -> list[str]:
        return sorted(self._handlers)

    async def invoke(self, name: str, invocation: Any, context: Any) -> Any:
        """Invoke a registered handler, awaiting it if it returns an awaitable.

        Raises:
            ActionNotFoundError: If no handler is registered under name.
            Exception: Whatever the handler raises is propagated.
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise ActionNotFoundError(name)

        result = handler(invocation, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
