"""Unit tests for ParameterRenderer."""

import pytest

from cuebridge.src.services.events.event import Event
from cuebridge.src.services.rules.context import EvaluationContext
from cuebridge.src.services.rules.templating import ParameterRenderError, ParameterRenderer


@pytest.fixture
def renderer() -> ParameterRenderer:
    return ParameterRenderer()


@pytest.fixture
def context() -> EvaluationContext:
    event = Event(
        name="chat",
        data={"comment": "hello world", "likes": 7, "user": {"nickname": "Ana"}},
        platform="youtube",
    )
    return EvaluationContext(event=event, helpers={"shout": lambda s: str(s).upper()})


class TestParameterRenderer:
    """Tests for rendering action params against the dispatch context."""

    def test_plain_strings_pass_through(self, renderer, context):
        assert renderer.render({"message": "static"}, context) == {"message": "static"}

    def test_renders_event_data(self, renderer, context):
        rendered = renderer.render({"message": "{{ data.comment }}"}, context)

        assert rendered == {"message": "hello world"}

    def test_mixed_template_renders_to_string(self, renderer, context):
        rendered = renderer.render_string("{{ data.user.nickname }} says {{ data.comment }}", context)

        assert rendered == "Ana says hello world"

    def test_single_expression_keeps_native_type(self, renderer, context):
        assert renderer.render_string("{{ data.likes }}", context) == 7
        assert renderer.render_string("{{ data.user }}", context) == {"nickname": "Ana"}

    def test_undefined_single_expression_renders_empty(self, renderer, context):
        assert renderer.render_string("{{ data.missing }}", context) == ""

    def test_helpers_are_callable(self, renderer, context):
        assert renderer.render_string("{{ shout(data.comment) }}", context) == "HELLO WORLD"

    def test_previous_results_are_visible(self, renderer, context):
        context.record({"text": "from before"}, name="previous")

        assert renderer.render_string("{{ vars.previous.text }}", context) == "from before"
        assert renderer.render_string("{{ last_result.text }}", context) == "from before"

    def test_renders_nested_structures(self, renderer, context):
        params = {
            "outer": {"inner": "{{ platform }}"},
            "items": ["{{ event_name }}", 3, None],
            "count": 2,
        }

        assert renderer.render(params, context) == {
            "outer": {"inner": "youtube"},
            "items": ["chat", 3, None],
            "count": 2,
        }

    def test_block_tags_render(self, renderer, context):
        template = "{% if data.likes > 5 %}popular{% else %}quiet{% endif %}"

        assert renderer.render_string(template, context) == "popular"

    def test_syntax_error_raises(self, renderer, context):
        with pytest.raises(ParameterRenderError, match="syntax"):
            renderer.render_string("{{ data.comment ", context)

    def test_runtime_error_raises(self, renderer, context):
        with pytest.raises(ParameterRenderError):
            renderer.render_string("{{ data.likes / 0 }}", context)
