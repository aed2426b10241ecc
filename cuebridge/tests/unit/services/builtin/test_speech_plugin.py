"""Unit tests for the speech plugin and message evaluation."""

from unittest.mock import AsyncMock

import pytest

from cuebridge.src.services.builtin.action_registry import ActionRegistryPlugin
from cuebridge.src.services.builtin.speech import (
    LAST_MESSAGE_KEY,
    TTS_CONFIG_KEY,
    TTS_DEFAULTS,
    SpeechPlugin,
    SynthesisResult,
    evaluate_message,
)
from cuebridge.src.services.builtin.text_cleaner import TextCleaner
from cuebridge.src.services.events.bus import PlatformEventBus
from cuebridge.src.services.playlist.backend import SimulatedAudioBackend
from cuebridge.src.services.playlist.manager import PlaylistManager
from cuebridge.src.services.plugins.manager import PluginManager
from cuebridge.src.services.plugins.storage import StorageService
from cuebridge.src.services.registry.actions import ActionRegistry
from cuebridge.src.services.registry.helpers import HelperRegistry
from cuebridge.src.services.rules.rule import ActionInvocation


# =============================================================================
# Fixtures
# =============================================================================


def make_playlist() -> PlaylistManager:
    return PlaylistManager(
        SimulatedAudioBackend(duration=5.0),
        settle_delay=0.0,
        next_track_delay=0.0,
        poll_interval=0.01,
    )


class SpeechHarness:
    def __init__(self, synthesizer=None, responder=None) -> None:
        self.storage = StorageService(":memory:")
        self.manager = PluginManager(PlatformEventBus(), storage=self.storage)
        self.actions = ActionRegistry()
        self.playlist = make_playlist()
        self.plugin = SpeechPlugin(
            self.playlist,
            synthesizer=synthesizer,
            responder=responder,
            cleaner=TextCleaner(),
        )
        self.manager.register(ActionRegistryPlugin(self.actions, HelperRegistry()))
        self.manager.register(self.plugin)

    async def invoke(self, name: str, **params):
        return await self.actions.invoke(name, ActionInvocation(type=name, params=params), None)


@pytest.fixture
def synthesizer() -> AsyncMock:
    mock = AsyncMock()
    mock.synthesize.return_value = SynthesisResult(audio=b"RIFF....", voice="F1")
    return mock


@pytest.fixture
def responder() -> AsyncMock:
    mock = AsyncMock()
    mock.respond.return_value = "Paris is the capital of France"
    return mock


# =============================================================================
# evaluate_message
# =============================================================================


class TestEvaluateMessage:
    def test_ignore_keywords_win(self):
        assert evaluate_message("please stop, what is this?")["decision"] == "ignore"

    def test_question_goes_to_ai(self):
        result = evaluate_message("what is the capital of France", context="geography")

        assert result["decision"] == "ai_respond"
        assert result["prompt"] == "what is the capital of France\n\nContext: geography"
        assert "[Context: geography]" in result["reason"]

    def test_direct_prefix_is_stripped(self):
        result = evaluate_message("say welcome everyone")

        assert result["decision"] == "tts_direct"
        assert result["message"] == "welcome everyone"

    def test_short_message_spoken_directly(self):
        result = evaluate_message("welcome to the show")

        assert result == {"decision": "tts_direct", "reason": "Short message, direct TTS"}

    def test_long_message_summarized(self):
        message = "this is a very long message that keeps going on and on " * 2

        result = evaluate_message(message)

        assert result["decision"] == "ai_respond"
        assert result["prompt"] == f"Summarize and respond to: {message}"


# =============================================================================
# SpeechPlugin
# =============================================================================


class TestSpeechPluginLoad:
    @pytest.mark.asyncio
    async def test_registers_actions(self):
        harness = SpeechHarness()

        await harness.manager.load_all()

        for name in ("TTS", "tts_direct", "lastcomment", "evaluate", "ai_respond", "evaluate_and_speak", "datetime"):
            assert name in harness.actions

    @pytest.mark.asyncio
    async def test_writes_default_config(self):
        harness = SpeechHarness()

        await harness.manager.load_all()

        assert harness.storage.get("speech", TTS_CONFIG_KEY) == TTS_DEFAULTS

    @pytest.mark.asyncio
    async def test_invalid_voice_is_reset(self):
        harness = SpeechHarness()
        harness.storage.set("speech", TTS_CONFIG_KEY, {"volume": 80, "voice": "", "rate": "+10%"})

        await harness.manager.load_all()

        assert harness.storage.get("speech", TTS_CONFIG_KEY) == {"volume": 80, "voice": "F1", "rate": "+10%"}

    @pytest.mark.asyncio
    async def test_warns_without_synthesizer(self, caplog):
        harness = SpeechHarness()

        await harness.manager.load_all()

        assert "No speech synthesizer configured" in caplog.text

    @pytest.mark.asyncio
    async def test_unload_disposes_playlist(self, synthesizer):
        harness = SpeechHarness(synthesizer=synthesizer)
        await harness.manager.load_all()
        await harness.invoke("TTS", message="hello everyone out there")

        await harness.manager.unload_all()

        assert harness.playlist.total_tracks == 0


class TestSpeechActions:
    @pytest.mark.asyncio
    async def test_tts_synthesizes_and_plays(self, synthesizer):
        harness = SpeechHarness(synthesizer=synthesizer)
        await harness.manager.load_all()

        result = await harness.invoke("TTS", message="hello \U0001F44B everyone out there")

        assert result == "hello everyone out there"
        synthesizer.synthesize.assert_awaited_once_with(
            "hello everyone out there", voice="F1", rate="0%", volume=100
        )
        assert harness.playlist.tracks == [b"RIFF...."]
        assert harness.playlist.is_playing is True
        assert harness.storage.get("speech", LAST_MESSAGE_KEY) == "hello everyone out there"
        await harness.playlist.stop()

    @pytest.mark.asyncio
    async def test_second_message_queues_behind_first(self, synthesizer):
        harness = SpeechHarness(synthesizer=synthesizer)
        await harness.manager.load_all()

        await harness.invoke("TTS", message="first message of the day")
        await harness.invoke("TTS", message="second message of the day")

        assert harness.playlist.total_tracks == 2
        assert harness.playlist.current_index == 0
        await harness.playlist.stop()

    @pytest.mark.asyncio
    async def test_tts_rejects_low_quality(self, synthesizer):
        harness = SpeechHarness(synthesizer=synthesizer)
        await harness.manager.load_all()

        assert await harness.invoke("TTS", message="1111") is None
        synthesizer.synthesize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tts_direct_result_shape(self, synthesizer):
        synthesizer.synthesize.return_value = SynthesisResult(audio_path=None, audio=b"data")
        harness = SpeechHarness(synthesizer=synthesizer)
        await harness.manager.load_all()

        assert await harness.invoke("tts_direct") == {"error": "No message provided"}
        assert await harness.invoke("tts_direct", message="2222") == {
            "success": False,
            "reason": "Message rejected by quality check",
        }
        assert await harness.invoke("tts_direct", message="good evening chat") == {
            "success": True,
            "message": "good evening chat",
            "audioFile": None,
        }
        await harness.playlist.stop()

    @pytest.mark.asyncio
    async def test_without_synthesizer_still_records(self):
        harness = SpeechHarness()
        await harness.manager.load_all()

        assert await harness.invoke("TTS", message="nobody will hear this") == "nobody will hear this"
        assert harness.playlist.total_tracks == 0
        assert harness.storage.get("speech", LAST_MESSAGE_KEY) == "nobody will hear this"

    @pytest.mark.asyncio
    async def test_lastcomment_does_not_speak(self, synthesizer):
        harness = SpeechHarness(synthesizer=synthesizer)
        await harness.manager.load_all()

        assert await harness.invoke("lastcomment", message="just ✨ remember me") == "just remember me"
        synthesizer.synthesize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ai_respond_speaks_answer(self, synthesizer, responder):
        harness = SpeechHarness(synthesizer=synthesizer, responder=responder)
        await harness.manager.load_all()

        result = await harness.invoke("ai_respond", prompt="capital of France?", context="quiz")

        responder.respond.assert_awaited_once_with("capital of France?\n\nContext: quiz")
        assert result["success"] is True
        assert result["message"] == "Paris is the capital of France"
        await harness.playlist.stop()

    @pytest.mark.asyncio
    async def test_ai_respond_without_responder(self):
        harness = SpeechHarness()
        await harness.manager.load_all()

        assert await harness.invoke("ai_respond", prompt="hi") == {"error": "No responder configured"}
        assert await harness.invoke("ai_respond") == {"error": "No prompt provided"}

    @pytest.mark.asyncio
    async def test_ai_response_failing_quality_skips_tts(self, synthesizer, responder):
        responder.respond.return_value = "..."
        harness = SpeechHarness(synthesizer=synthesizer, responder=responder)
        await harness.manager.load_all()

        result = await harness.invoke("ai_respond", prompt="anything?")

        assert result == {"success": True, "response": "...", "ttsSkipped": True}
        synthesizer.synthesize.assert_not_awaited()


class TestEvaluateAndSpeak:
    @pytest.mark.asyncio
    async def test_direct_branch(self, synthesizer):
        harness = SpeechHarness(synthesizer=synthesizer)
        await harness.manager.load_all()

        result = await harness.invoke("evaluate_and_speak", message="say hello friends")

        assert result["success"] is True
        assert result["message"] == "hello friends"
        await harness.playlist.stop()

    @pytest.mark.asyncio
    async def test_ai_branch(self, synthesizer, responder):
        harness = SpeechHarness(synthesizer=synthesizer, responder=responder)
        await harness.manager.load_all()

        result = await harness.invoke("evaluate_and_speak", message="what is the capital of France")

        assert result["response"] == "Paris is the capital of France"
        responder.respond.assert_awaited_once()
        await harness.playlist.stop()

    @pytest.mark.asyncio
    async def test_ignore_branch(self, synthesizer):
        harness = SpeechHarness(synthesizer=synthesizer)
        await harness.manager.load_all()

        result = await harness.invoke("evaluate_and_speak", message="stop talking")

        assert result == {"ignored": True, "reason": "Message contains ignore keywords"}
        synthesizer.synthesize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_message(self):
        harness = SpeechHarness()
        await harness.manager.load_all()

        assert await harness.invoke("evaluate_and_speak") == {"error": "No message provided"}


class TestDatetime:
    @pytest.mark.asyncio
    async def test_shape(self):
        harness = SpeechHarness()
        await harness.manager.load_all()

        result = await harness.invoke("datetime")

        assert set(result) == {"iso", "locale", "timestamp", "timezone", "date", "time"}
        assert isinstance(result["timestamp"], int)
        assert set(result["date"]) == {"year", "month", "day"}
