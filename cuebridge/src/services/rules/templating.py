"""Jinja2 rendering of action parameters.

String parameters are rendered against the dispatch context, so
``"{{ data.comment }}"`` becomes the event's comment. A string that is
a single ``{{ expression }}`` keeps the expression's native type,
which lets ``{{ data.likes }}`` stay an integer and
``{{ vars.reply }}`` pass a dict through unchanged.
"""

from __future__ import annotations

import re
from typing import Any

from jinja2 import BaseLoader, Environment, TemplateError, TemplateSyntaxError, UndefinedError

from .context import EvaluationContext


_SINGLE_EXPRESSION = re.compile(r"^\s*\{\{(?P<expr>.*?)\}\}\s*$", re.DOTALL)


class ParameterRenderError(Exception):
    """Raised when an action parameter template fails to render."""

    pass


class ParameterRenderer:
    """Renders action parameters recursively through dicts and lists."""

    def __init__(self) -> None:
        self._jinja_env = Environment(loader=BaseLoader(), autoescape=False)

    def render(self, params: Any, context: EvaluationContext) -> Any:
        """Render every string inside params.

        Raises:
            ParameterRenderError: If a template has bad syntax or fails.
        """
        return self._render(params, context.names())

    def render_string(self, template: str, context: EvaluationContext) -> Any:
        return self._render_string(template, context.names())

    def _render(self, value: Any, names: dict[str, Any]) -> Any:
        if isinstance(value, str):
            return self._render_string(value, names)
        if isinstance(value, dict):
            return {key: self._render(item, names) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._render(item, names) for item in value]
        return value

    def _render_string(self, template: str, names: dict[str, Any]) -> Any:
        if "{{" not in template and "{%" not in template:
            return template

        try:
            match = _SINGLE_EXPRESSION.match(template)
            if match and "{{" not in match.group("expr") and "}}" not in match.group("expr"):
                expression = self._jinja_env.compile_expression(
                    match.group("expr").strip(),
                    undefined_to_none=True,
                )
                result = expression(**names)
                return "" if result is None else result

            tpl = self._jinja_env.from_string(template)
            return tpl.render(**names)
        except TemplateSyntaxError as e:
            raise ParameterRenderError(f"Template syntax error: {e}") from e
        except UndefinedError as e:
            raise ParameterRenderError(f"Template undefined variable: {e}") from e
        except TemplateError as e:
            raise ParameterRenderError(f"Template error: {e}") from e
        except Exception as e:
            raise ParameterRenderError(f"Template evaluation failed: {e}") from e
