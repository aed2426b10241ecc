"""Action and helper registries shared by plugins and the rule engine."""

from .actions import (
    ActionError,
    ActionHandler,
    ActionNotFoundError,
    ActionRegistry,
    DuplicateActionError,
)
from .helpers import RESERVED_NAMES, HelperFunction, HelperRegistry

__all__ = [
    "ActionError",
    "ActionHandler",
    "ActionNotFoundError",
    "ActionRegistry",
    "DuplicateActionError",
    "HelperFunction",
    "HelperRegistry",
    "RESERVED_NAMES",
]
