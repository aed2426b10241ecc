"""Rule Engine for event-driven rule evaluation and execution.

This module provides the RuleEngine class which:
- Takes one RuleStore snapshot per dispatch
- Selects enabled rules whose event name matches exactly
- Evaluates each rule's condition in declaration order
- Executes matched rules' actions sequentially via the ActionRegistry

Failures are isolated: a condition error skips only that rule and an
action error skips only that action. Every failure is logged with the
rule id and action name.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from ..events.event import Event
from ..registry.actions import ActionNotFoundError, ActionRegistry
from ..registry.helpers import HelperRegistry
from .condition import ConditionError, ConditionEvaluator
from .context import EvaluationContext
from .expression import ExpressionError
from .rule import ActionInvocation, Rule
from .store import RuleStore
from .templating import ParameterRenderError, ParameterRenderer


logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    """Result of invoking one action.

    Attributes:
        action: Action name.
        executed: False when the action's own guard skipped it.
        result: Handler return value (None on failure).
        error: Error message if the action failed.
        duration_ms: Time spent in the action in milliseconds.
    """

    action: str
    executed: bool = True
    result: Any = None
    error: Optional[str] = None
    duration_ms: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.executed and self.error is None


@dataclass
class RuleEvaluationResult:
    """Result of evaluating a rule.

    Attributes:
        rule: The rule that was evaluated.
        matched: Whether the rule condition matched.
        actions: Outcome for each action that was attempted.
        error: Condition error message, if any.
        evaluation_time_ms: Time taken for the rule in milliseconds.
    """

    rule: Rule
    matched: bool
    actions: List[ActionOutcome] = field(default_factory=list)
    error: Optional[str] = None
    evaluation_time_ms: Optional[float] = None


@dataclass
class DispatchResult:
    """Result of dispatching one event.

    Attributes:
        event: The dispatched event.
        generation: Rule set generation the dispatch used.
        results: Per-rule results in evaluation order.
        total_time_ms: Total dispatch time in milliseconds.
    """

    event: Event
    generation: int
    results: List[RuleEvaluationResult] = field(default_factory=list)
    total_time_ms: Optional[float] = None

    @property
    def matched_rules(self) -> List[Rule]:
        return [r.rule for r in self.results if r.matched]

    @property
    def outcomes(self) -> List[ActionOutcome]:
        return [o for r in self.results for o in r.actions]

    @property
    def action_results(self) -> List[Any]:
        """Results of successfully executed actions, in order."""
        return [o.result for o in self.outcomes if o.ok]

    @property
    def errors(self) -> List[str]:
        messages = [f"{r.rule.id}: {r.error}" for r in self.results if r.error]
        for r in self.results:
            messages.extend(f"{r.rule.id}/{o.action}: {o.error}" for o in r.actions if o.error)
        return messages


class RuleEngine:
    """Dispatches events to rules and rules to actions.

    The engine holds no lock. Concurrent dispatches are independent and
    each one sees the rule set that was current when it started.

    Example:
        store = RuleStore(RuleLoader(Path("rules/")))
        store.reload()
        engine = RuleEngine(store, ActionRegistry(), HelperRegistry())
        result = await engine.process_event("chat", {"comment": "hi"})
    """

    def __init__(
        self,
        store: RuleStore,
        actions: ActionRegistry,
        helpers: Optional[HelperRegistry] = None,
        conditions: Optional[ConditionEvaluator] = None,
        renderer: Optional[ParameterRenderer] = None,
        action_timeout: Optional[float] = None,
        enable_timing: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Source of rule snapshots.
            actions: Registry used to invoke actions.
            helpers: Registry snapshotted once per dispatch.
            conditions: Condition evaluator (default: new instance).
            renderer: Parameter renderer (default: new instance).
            action_timeout: Seconds before an action is abandoned; None disables.
            enable_timing: Log per-rule timing at DEBUG level.
        """
        self._store = store
        self._actions = actions
        self._helpers = helpers if helpers is not None else HelperRegistry()
        self._conditions = conditions or ConditionEvaluator()
        self._renderer = renderer or ParameterRenderer()
        self._action_timeout = action_timeout
        self._enable_timing = enable_timing

    @property
    def store(self) -> RuleStore:
        return self._store

    @property
    def actions(self) -> ActionRegistry:
        return self._actions

    @property
    def helpers(self) -> HelperRegistry:
        return self._helpers

    async def process_event(
        self,
        event_name: str,
        data: Optional[dict[str, Any]] = None,
        helpers: Optional[Mapping[str, Any]] = None,
        *,
        platform: Optional[str] = None,
    ) -> DispatchResult:
        """Dispatch an event by name.

        Args:
            event_name: Name rules match against.
            data: Event payload.
            helpers: Helper mapping to use instead of the registry snapshot.
            platform: Originating platform.

        Returns:
            DispatchResult describing every evaluated rule and action.
        """
        event = Event(name=event_name, data=dict(data or {}), platform=platform)
        return await self.dispatch(event, helpers=helpers)

    async def process_event_simple(
        self,
        event_name: str,
        data: Optional[dict[str, Any]] = None,
        helpers: Optional[Mapping[str, Any]] = None,
        *,
        platform: Optional[str] = None,
    ) -> List[Any]:
        """Dispatch an event and return only the successful action results."""
        result = await self.process_event(event_name, data, helpers, platform=platform)
        return result.action_results

    async def emulate_event(
        self,
        event_name: str,
        data: Optional[dict[str, Any]] = None,
        platform: Optional[str] = None,
    ) -> DispatchResult:
        """Dispatch a synthetic event, as if a platform adapter had emitted it."""
        logger.info(f"Emulating event '{event_name}' on {platform or 'no platform'}")
        return await self.process_event(event_name, data, platform=platform)

    async def dispatch(
        self,
        event: Event,
        helpers: Optional[Mapping[str, Any]] = None,
    ) -> DispatchResult:
        """Dispatch an Event through the current rule snapshot."""
        start_time = time.perf_counter()

        snapshot = self._store.current()
        helper_snapshot = helpers if helpers is not None else self._helpers.get_all()
        context = EvaluationContext(event=event, helpers=helper_snapshot)
        dispatch_result = DispatchResult(event=event, generation=snapshot.generation)

        candidates = snapshot.for_event(event.name)
        if not candidates:
            logger.debug(f"No rules for event '{event.name}'")
            dispatch_result.total_time_ms = (time.perf_counter() - start_time) * 1000
            return dispatch_result

        for rule in candidates:
            dispatch_result.results.append(await self._evaluate_rule(rule, context))

        dispatch_result.total_time_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            f"Dispatched '{event.name}' to {len(dispatch_result.matched_rules)} of "
            f"{len(candidates)} rules in {dispatch_result.total_time_ms:.2f}ms"
        )
        return dispatch_result

    async def _evaluate_rule(self, rule: Rule, context: EvaluationContext) -> RuleEvaluationResult:
        start_time = time.perf_counter()
        context.rule_id = rule.id

        try:
            matched = self._conditions.evaluate(rule.condition, context)
        except (ExpressionError, ConditionError) as e:
            logger.warning(f"Condition error in rule {rule.id}: {e}")
            return RuleEvaluationResult(
                rule=rule,
                matched=False,
                error=str(e),
                evaluation_time_ms=(time.perf_counter() - start_time) * 1000,
            )

        result = RuleEvaluationResult(rule=rule, matched=matched)
        if matched:
            logger.info(f"Rule matched: {rule.id}")
            for invocation in rule.actions:
                result.actions.append(await self._run_action(rule, invocation, context))

        result.evaluation_time_ms = (time.perf_counter() - start_time) * 1000
        if self._enable_timing:
            logger.debug(f"Rule {rule.id} evaluated in {result.evaluation_time_ms:.3f}ms")
        return result

    async def _run_action(
        self,
        rule: Rule,
        invocation: ActionInvocation,
        context: EvaluationContext,
    ) -> ActionOutcome:
        start_time = time.perf_counter()
        outcome = ActionOutcome(action=invocation.type)

        try:
            if not self._conditions.evaluate(invocation.condition, context):
                outcome.executed = False
                return outcome

            rendered = ActionInvocation(
                type=invocation.type,
                params=self._renderer.render(invocation.params, context),
                result_as=invocation.result_as,
            )

            call = self._actions.invoke(invocation.type, rendered, context)
            if self._action_timeout is not None:
                outcome.result = await asyncio.wait_for(call, timeout=self._action_timeout)
            else:
                outcome.result = await call

            context.record(outcome.result, invocation.result_as)

        except ActionNotFoundError as e:
            outcome.error = str(e)
            logger.error(f"Rule {rule.id}: {e}")
        except asyncio.TimeoutError:
            outcome.error = f"Timed out after {self._action_timeout}s"
            logger.error(f"Rule {rule.id}: action '{invocation.type}' timed out")
        except (ExpressionError, ConditionError) as e:
            outcome.error = f"Guard error: {e}"
            logger.warning(f"Rule {rule.id}: guard for action '{invocation.type}' failed: {e}")
        except ParameterRenderError as e:
            outcome.error = str(e)
            logger.error(f"Rule {rule.id}: cannot render params for '{invocation.type}': {e}")
        except Exception as e:
            outcome.error = str(e) or type(e).__name__
            logger.error(f"Rule {rule.id}: action '{invocation.type}' failed: {e}")
        finally:
            outcome.duration_ms = (time.perf_counter() - start_time) * 1000

        return outcome
