"""Inline fill-in-the-middle suggestion engine."""

from inline_fim.acceptance_tracker import AcceptanceOutcome, AcceptanceRecord, AcceptanceTracker
from inline_fim.context_assembler import AssembledFimContext, ContextAssembler
from inline_fim.editor_types import (
    CompletionRequest,
    FimDocument,
    Position,
    Range,
    RecentlyEditedRange,
    Suggestion,
    TriggerKind,
    VisibleEditorInfo,
    VisibleRange,
    VisitedSnippet,
)
from inline_fim.fim_client import MistralFimClient
from inline_fim.fim_model import FimModel
from inline_fim.inline_controller import CompletionState, InlineSuggestionController
from inline_fim.provider_base import (
    CancelToken,
    FimCapabilityError,
    FimError,
    FimTransportError,
    ReasoningChunk,
    TextChunk,
)
from inline_fim.settings_schema import NormalizedFimAssistConfig, default_fim_settings, normalize_fim_settings
from inline_fim.suggestion_processor import clean_suggestion, parse_suggestion, process_suggestion
from inline_fim.telemetry import LoggingTelemetrySink, TelemetryEventName, TelemetrySink

__all__ = [
    "AcceptanceOutcome",
    "AcceptanceRecord",
    "AcceptanceTracker",
    "AssembledFimContext",
    "CancelToken",
    "CompletionRequest",
    "CompletionState",
    "ContextAssembler",
    "FimCapabilityError",
    "FimDocument",
    "FimError",
    "FimModel",
    "FimTransportError",
    "InlineSuggestionController",
    "LoggingTelemetrySink",
    "MistralFimClient",
    "NormalizedFimAssistConfig",
    "Position",
    "Range",
    "ReasoningChunk",
    "RecentlyEditedRange",
    "Suggestion",
    "TelemetryEventName",
    "TelemetrySink",
    "TextChunk",
    "TriggerKind",
    "VisibleEditorInfo",
    "VisibleRange",
    "VisitedSnippet",
    "clean_suggestion",
    "default_fim_settings",
    "normalize_fim_settings",
    "parse_suggestion",
    "process_suggestion",
]
