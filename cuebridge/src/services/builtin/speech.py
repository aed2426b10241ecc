"""Speech plugin: turns chat messages into queued audio.

Synthesis and AI replies sit behind two small protocols so the plugin
works with any engine (or none: without a synthesizer messages are
still cleaned and recorded, they are just not spoken).

Registered actions:
- ``TTS``: clean a message and speak it if it passes the quality check
- ``tts_direct``: same as TTS, returns a result mapping
- ``lastcomment``: clean a message and return it without speaking
- ``evaluate``: decide between speaking, asking the AI, or ignoring
- ``ai_respond``: ask the responder and speak its answer
- ``evaluate_and_speak``: ``evaluate`` followed by the chosen action
- ``datetime``: current date and time
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol, Union

from ..playlist.manager import PlaylistError, PlaylistManager
from ..playlist.track import TrackError
from ..plugins.context import PluginContext
from ..plugins.plugin import ExposesRegistry, Plugin
from ..rules.rule import ActionInvocation
from .text_cleaner import TextCleaner


logger = logging.getLogger(__name__)


TTS_CONFIG_KEY = "ttsConfig"
LAST_MESSAGE_KEY = "lastMessage"
TTS_DEFAULTS = {"volume": 100, "voice": "F1", "rate": "0%"}

SHORT_MESSAGE_LIMIT = 50
IGNORE_KEYWORDS = ("stop", "silencio", "quiet", "para", "detente")
AI_KEYWORDS = ("ai", "responde", "answer", "explain", "what is", "how to", "por qué", "porque", "?")
DIRECT_PREFIXES = ("di", "say", "reproduce")
_DIRECT_PREFIX = re.compile(r"^(?:di|say|reproduce)\s+", re.IGNORECASE)


@dataclass
class SynthesisResult:
    """Audio produced by a synthesizer.

    Attributes:
        audio: Encoded audio bytes, if synthesized in memory.
        audio_path: Path of a written audio file, if any.
        voice: Voice actually used.
    """

    audio: Optional[bytes] = None
    audio_path: Optional[str] = None
    voice: Optional[str] = None

    @property
    def track(self) -> Optional[Union[bytes, str]]:
        """What to enqueue: the buffer when present, else the file."""
        return self.audio if self.audio is not None else self.audio_path


class SpeechSynthesizer(Protocol):
    """Protocol for text-to-speech engines."""

    async def synthesize(self, text: str, voice: str, rate: str, volume: int) -> SynthesisResult:
        """Synthesize text to speech.

        Args:
            text: Cleaned text to speak.
            voice: Voice identifier.
            rate: Speaking rate offset, e.g. ``"+10%"``.
            volume: Volume 0-100.
        """
        ...


class Responder(Protocol):
    """Protocol for whatever produces AI replies."""

    async def respond(self, prompt: str) -> str: ...


def evaluate_message(message: str, context: Optional[str] = None) -> dict[str, Any]:
    """Decide how a chat message should be handled.

    Returns:
        Mapping with ``decision`` (``tts_direct``, ``ai_respond`` or
        ``ignore``), a ``reason`` and, for ``ai_respond``, a ``prompt``.
    """
    lower = message.lower()
    context_info = f" [Context: {context[:100]}]" if context else ""

    if any(keyword in lower for keyword in IGNORE_KEYWORDS):
        return {"decision": "ignore", "reason": "Message contains ignore keywords"}

    if any(keyword in lower for keyword in AI_KEYWORDS):
        return {
            "decision": "ai_respond",
            "reason": "Message appears to be a question or request for AI response" + context_info,
            "prompt": f"{message}\n\nContext: {context}" if context else message,
        }

    if lower.startswith(DIRECT_PREFIXES):
        return {
            "decision": "tts_direct",
            "reason": "Direct TTS command detected",
            "message": _DIRECT_PREFIX.sub("", message).strip(),
        }

    if len(message) < SHORT_MESSAGE_LIMIT:
        return {"decision": "tts_direct", "reason": "Short message, direct TTS"}

    return {
        "decision": "ai_respond",
        "reason": "Long message, AI summary recommended",
        "prompt": f"Summarize and respond to: {message}",
    }


class SpeechPlugin(Plugin):
    """Speaks chat messages through a playlist.

    Exposes its ``playlist`` so other plugins can enqueue audio too.
    """

    name = "speech"
    version = "1.0.0"
    description = "Text-to-speech and AI replies for chat messages"

    def __init__(
        self,
        playlist: PlaylistManager,
        synthesizer: Optional[SpeechSynthesizer] = None,
        responder: Optional[Responder] = None,
        cleaner: Optional[TextCleaner] = None,
    ) -> None:
        self.playlist = playlist
        self.synthesizer = synthesizer
        self.responder = responder
        self.cleaner = cleaner or TextCleaner()
        self._context: Optional[PluginContext] = None
        self._registries: Optional[ExposesRegistry] = None

    def on_load(self, context: PluginContext) -> None:
        self._context = context
        self._registries = context.get_capability(ExposesRegistry)
        if self._registries is None:
            context.log.error("No plugin exposes the action registry; speech actions unavailable")
            return

        config = self.get_config()
        context.log.info(f"Config loaded: {config}")
        last_message = context.storage.get(LAST_MESSAGE_KEY)
        if last_message:
            context.log.info(f"Last message: {last_message}")

        registry = self._registries.action_registry
        registry.register("TTS", self.tts)
        registry.register("tts_direct", self.tts_direct)
        registry.register("lastcomment", self.last_comment)
        registry.register("evaluate", self.evaluate)
        registry.register("ai_respond", self.ai_respond)
        registry.register("evaluate_and_speak", self.evaluate_and_speak)
        registry.register("datetime", self.current_datetime)

        if self.synthesizer is None:
            context.log.warning("No speech synthesizer configured; messages will not be spoken")

    async def on_unload(self) -> None:
        await self.playlist.dispose()

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def get_config(self) -> dict[str, Any]:
        """Stored TTS config, written with defaults on first use."""
        storage = self._context.storage
        existing = storage.get(TTS_CONFIG_KEY)
        if not isinstance(existing, dict):
            storage.set(TTS_CONFIG_KEY, dict(TTS_DEFAULTS))
            return dict(TTS_DEFAULTS)

        config = {**TTS_DEFAULTS, **existing}
        if not isinstance(config["voice"], str) or not config["voice"]:
            self._context.log.info(f"Invalid voice {config['voice']!r}, resetting to {TTS_DEFAULTS['voice']}")
            config["voice"] = TTS_DEFAULTS["voice"]
            storage.set(TTS_CONFIG_KEY, config)
        return config

    # ------------------------------------------------------------------
    # Speaking
    # ------------------------------------------------------------------

    async def speak(self, text: str) -> Optional[SynthesisResult]:
        """Synthesize text and queue it, starting playback if idle."""
        if self.synthesizer is None:
            return None

        config = self.get_config()
        result = await self.synthesizer.synthesize(
            text, voice=config["voice"], rate=config["rate"], volume=int(config["volume"])
        )
        if result.track is None:
            logger.warning("Synthesizer returned no audio")
            return result

        try:
            await self.playlist.add_track(result.track)
            if not self.playlist.is_playing:
                await self.playlist.play_current_track()
        except (TrackError, PlaylistError) as e:
            logger.error(f"Cannot queue speech audio: {e}")
        return result

    def _accept(self, message: Any) -> Optional[str]:
        if not message:
            return None
        processed = self.cleaner.process_message(str(message))
        if processed is None:
            return None
        self._context.storage.set(LAST_MESSAGE_KEY, processed.cleaned_text)
        return processed.cleaned_text

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def tts(self, invocation: Any, context: Any = None) -> Optional[str]:
        text = self._accept(invocation.params.get("message"))
        if text is None:
            return None
        await self.speak(text)
        return text

    async def tts_direct(self, invocation: Any, context: Any = None) -> dict[str, Any]:
        message = invocation.params.get("message")
        if not message:
            return {"error": "No message provided"}

        text = self._accept(message)
        if text is None:
            return {"success": False, "reason": "Message rejected by quality check"}

        result = await self.speak(text)
        return {
            "success": True,
            "message": text,
            "audioFile": result.audio_path if result else None,
        }

    def last_comment(self, invocation: Any, context: Any = None) -> Optional[str]:
        return self._accept(invocation.params.get("message"))

    def evaluate(self, invocation: Any, context: Any = None) -> dict[str, Any]:
        message = invocation.params.get("message")
        if not message:
            return {"error": "No message provided"}
        message_context = invocation.params.get("context")
        logger.info(f"Evaluating message: {message!r}")
        return evaluate_message(str(message), str(message_context) if message_context else None)

    async def ai_respond(self, invocation: Any, context: Any = None) -> dict[str, Any]:
        prompt = invocation.params.get("prompt")
        if not prompt:
            return {"error": "No prompt provided"}
        if self.responder is None:
            return {"error": "No responder configured"}

        message_context = invocation.params.get("context")
        full_prompt = f"{prompt}\n\nContext: {message_context}" if message_context else str(prompt)
        response = await self.responder.respond(full_prompt)
        logger.info(f"AI responded: {response!r}")

        text = self._accept(response)
        if text is None:
            return {"success": True, "response": response, "ttsSkipped": True}

        result = await self.speak(text)
        return {
            "success": True,
            "response": response,
            "message": text,
            "audioFile": result.audio_path if result else None,
        }

    async def _call(self, name: str, params: dict[str, Any], context: Any) -> Any:
        return await self._registries.action_registry.invoke(
            name, ActionInvocation(type=name, params=params), context
        )

    async def evaluate_and_speak(self, invocation: Any, context: Any = None) -> dict[str, Any]:
        message = invocation.params.get("message")
        if not message:
            return {"error": "No message provided"}
        message_context = invocation.params.get("context")

        evaluation = await self._call("evaluate", {"message": message, "context": message_context}, context)
        decision = evaluation.get("decision")
        logger.info(f"Decision: {decision}")

        if decision == "tts_direct":
            return await self._call("tts_direct", {"message": evaluation.get("message") or message}, context)
        if decision == "ai_respond":
            return await self._call(
                "ai_respond",
                {"prompt": evaluation.get("prompt") or message, "context": message_context},
                context,
            )
        if decision == "ignore":
            logger.info(f"Ignoring message: {evaluation['reason']}")
            return {"ignored": True, "reason": evaluation["reason"]}
        return {"error": "Unknown decision"}

    def current_datetime(self, invocation: Any = None, context: Any = None) -> dict[str, Any]:
        now = datetime.now().astimezone()
        return {
            "iso": now.isoformat(),
            "locale": now.strftime("%c"),
            "timestamp": int(now.timestamp() * 1000),
            "timezone": now.tzname() or time.tzname[0],
            "date": {"year": now.year, "month": now.month, "day": now.day},
            "time": {"hours": now.hour, "minutes": now.minute, "seconds": now.second},
        }
