"""Rule definitions, loading, hot reload and dispatch.

Components:
- rule.py: Rule and ActionInvocation dataclasses
- loader.py: RuleLoader for TOML/YAML/JSON rule files
- store.py: RuleStore (atomic RuleSet swaps) and RuleWatcher (watchdog)
- expression.py: ExpressionEvaluator using simpleeval
- condition.py: structured conditions and the ConditionEvaluator
- templating.py: Jinja2 rendering of action parameters
- context.py: per-dispatch EvaluationContext
- engine.py: RuleEngine

Example usage:
    from cuebridge.src.services.rules import RuleEngine, RuleLoader, RuleStore

    store = RuleStore(RuleLoader(Path("rules/")))
    store.reload()
    engine = RuleEngine(store, action_registry, helper_registry)
    await engine.process_event("chat", {"comment": "hello"})
"""

from .condition import ConditionError, ConditionEvaluator, ConditionOperator
from .context import EvaluationContext
from .engine import ActionOutcome, DispatchResult, RuleEngine, RuleEvaluationResult
from .expression import ExpressionError, ExpressionEvaluator
from .loader import RuleLoadError, RuleLoader
from .rule import ActionInvocation, Rule
from .store import RuleSet, RuleStore, RuleStoreError, RuleWatcher
from .templating import ParameterRenderError, ParameterRenderer

__all__ = [
    "ActionInvocation",
    "ActionOutcome",
    "ConditionError",
    "ConditionEvaluator",
    "ConditionOperator",
    "DispatchResult",
    "EvaluationContext",
    "ExpressionError",
    "ExpressionEvaluator",
    "ParameterRenderError",
    "ParameterRenderer",
    "Rule",
    "RuleEngine",
    "RuleEvaluationResult",
    "RuleLoadError",
    "RuleLoader",
    "RuleSet",
    "RuleStore",
    "RuleStoreError",
    "RuleWatcher",
]
