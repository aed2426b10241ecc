"""Plugins shipped with cuebridge."""

from .action_registry import ACTION_REGISTRY_PLUGIN, ActionRegistryPlugin
from .event_recorder import EventRecorderPlugin
from .simulator import SimulatorPlugin
from .speech import (
    Responder,
    SpeechPlugin,
    SpeechSynthesizer,
    SynthesisResult,
    evaluate_message,
)
from .text_cleaner import TextCleaner, clean_text, evaluate_quality

__all__ = [
    "ACTION_REGISTRY_PLUGIN",
    "ActionRegistryPlugin",
    "EventRecorderPlugin",
    "Responder",
    "SimulatorPlugin",
    "SpeechPlugin",
    "SpeechSynthesizer",
    "SynthesisResult",
    "TextCleaner",
    "clean_text",
    "evaluate_message",
    "evaluate_quality",
]
