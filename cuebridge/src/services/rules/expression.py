"""Expression evaluator for rule conditions using simpleeval.

This module provides a safe expression evaluator for rule conditions,
using simpleeval with a whitelist of functions plus the helpers
registered for the current dispatch.
"""

from __future__ import annotations

import ast
import logging
import time
from functools import lru_cache
from typing import Any, Callable

from simpleeval import (
    AttributeDoesNotExist,
    EvalWithCompoundTypes,
    FeatureNotAvailable,
    InvalidExpression,
    NameNotDefined,
)

from .context import EvaluationContext


logger = logging.getLogger(__name__)


class ExpressionError(Exception):
    """Raised when expression parsing or evaluation fails."""

    pass


@lru_cache(maxsize=256)
def _parse_expression(expression: str) -> ast.Expression:
    """Parse an expression string into an AST (cached)."""
    return ast.parse(expression, mode="eval")


def check_syntax(expression: str) -> None:
    """Raise ExpressionError if the expression does not parse.

    Used by the rule loader so syntax errors surface at load time.
    """
    try:
        _parse_expression(expression.strip())
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression syntax: {e.msg}") from e


class ExpressionEvaluator:
    """Evaluates condition expressions safely using simpleeval.

    Names available to an expression:
    - ``event``, ``data``, ``platform``, ``timestamp``, ``event_name``
    - ``results``, ``last_result``, ``vars`` (earlier actions in the dispatch)
    - every registered helper, both as a function and under ``helpers``

    Dict keys can be read with attribute syntax, so ``data.comment``
    and ``data["comment"]`` are equivalent.

    Security:
    - No access to __dunder__ attributes
    - No import or exec capabilities
    - Limited function whitelist
    """

    def __init__(self, enable_timing: bool = False) -> None:
        self._safe_functions = self._build_safe_functions()
        self._enable_timing = enable_timing

    def _build_safe_functions(self) -> dict[str, Callable[..., Any]]:
        return {
            # Type conversions
            "int": int,
            "float": float,
            "str": str,
            "bool": bool,
            # Math
            "abs": abs,
            "min": min,
            "max": max,
            "round": round,
            "sum": sum,
            # Collections
            "len": len,
            "any": any,
            "all": all,
            "sorted": sorted,
            "reversed": lambda x: list(reversed(x)),
            # Strings
            "lower": lambda s: str(s).lower(),
            "upper": lambda s: str(s).upper(),
            "contains": lambda haystack, needle: needle in haystack,
            "startswith": lambda s, prefix: str(s).startswith(prefix),
            "endswith": lambda s, suffix: str(s).endswith(suffix),
        }

    def evaluate_value(self, expression: str, context: EvaluationContext) -> Any:
        """Evaluate an expression and return its raw value.

        Raises:
            ExpressionError: If the expression is invalid or evaluation fails.
        """
        start_time = time.perf_counter() if self._enable_timing else None

        expression = expression.strip()
        if not expression:
            raise ExpressionError("Expression cannot be empty")

        namespace = context.names()
        helpers = dict(context.helpers)

        evaluator = EvalWithCompoundTypes(
            names=namespace,
            functions={**self._safe_functions, **helpers},
        )

        try:
            result = evaluator.eval(expression, previously_parsed=_parse_expression(expression).body)
        except SyntaxError as e:
            logger.warning(f"Invalid expression syntax: {e}")
            raise ExpressionError(f"Invalid expression syntax: {e.msg}") from e
        except FeatureNotAvailable as e:
            logger.warning(f"Blocked unsafe feature in expression: {e}")
            raise ExpressionError(f"Feature not available: {e}") from e
        except NameNotDefined as e:
            raise ExpressionError(f"Undefined name: {e}") from e
        except AttributeDoesNotExist as e:
            raise ExpressionError(f"Attribute error: {e}") from e
        except InvalidExpression as e:
            raise ExpressionError(f"Invalid expression: {e}") from e
        except (AttributeError, KeyError, IndexError) as e:
            raise ExpressionError(f"Lookup error: {e}") from e
        except TypeError as e:
            raise ExpressionError(f"Type error: {e}") from e
        except ZeroDivisionError as e:
            raise ExpressionError(f"Division by zero: {e}") from e
        except Exception as e:
            raise ExpressionError(f"Evaluation error: {e}") from e

        if start_time is not None:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(
                f"Expression evaluation: {elapsed_ms:.3f}ms "
                f"(expr: {expression[:50]}{'...' if len(expression) > 50 else ''})"
            )

        return result

    def evaluate(self, expression: str, context: EvaluationContext) -> bool:
        """Evaluate an expression and coerce the result to bool.

        Raises:
            ExpressionError: If the expression is invalid or evaluation fails.
        """
        return bool(self.evaluate_value(expression, context))
