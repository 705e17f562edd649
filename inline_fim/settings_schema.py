from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict


class FimAssistSettings(TypedDict, total=False):
    enabled: bool
    auto_trigger: bool
    base_url: str
    api_key: str
    model: str
    fim_model_prefixes: list[str]
    debounce_ms: int
    reject_timeout_ms: int
    max_output_tokens: int
    request_timeout_ms: int
    max_context_tokens: int


def default_fim_settings() -> FimAssistSettings:
    return {
        "enabled": True,
        "auto_trigger": True,
        "base_url": "https://codestral.mistral.ai",
        "api_key": "",
        "model": "codestral-latest",
        "fim_model_prefixes": ["codestral-"],
        "debounce_ms": 300,
        "reject_timeout_ms": 10000,
        "max_output_tokens": 256,
        "request_timeout_ms": 10000,
        "max_context_tokens": 8000,
    }


def normalize_fim_settings(raw: Any) -> FimAssistSettings:
    defaults = default_fim_settings()
    data = dict(defaults)
    if isinstance(raw, dict):
        for key, value in raw.items():
            data[str(key)] = value

    def _clamp_int(value: Any, low: int, high: int, fallback: int) -> int:
        try:
            return max(low, min(high, int(value)))
        except Exception:
            return fallback

    raw_prefixes = data.get("fim_model_prefixes", defaults["fim_model_prefixes"])
    if isinstance(raw_prefixes, str):
        raw_prefixes = [raw_prefixes]
    prefixes = [str(item).strip() for item in (raw_prefixes or []) if str(item or "").strip()]

    return {
        "enabled": bool(data.get("enabled", defaults["enabled"])),
        "auto_trigger": bool(data.get("auto_trigger", defaults["auto_trigger"])),
        "base_url": str(data.get("base_url", defaults["base_url"]) or "").strip() or defaults["base_url"],
        "api_key": str(data.get("api_key", defaults["api_key"]) or "").strip(),
        "model": str(data.get("model", defaults["model"]) or "").strip(),
        "fim_model_prefixes": prefixes,
        "debounce_ms": _clamp_int(data.get("debounce_ms"), 0, 5000, int(defaults["debounce_ms"])),
        "reject_timeout_ms": _clamp_int(data.get("reject_timeout_ms"), 50, 120000, int(defaults["reject_timeout_ms"])),
        "max_output_tokens": _clamp_int(data.get("max_output_tokens"), 1, 8192, int(defaults["max_output_tokens"])),
        "request_timeout_ms": _clamp_int(data.get("request_timeout_ms"), 500, 60000, int(defaults["request_timeout_ms"])),
        "max_context_tokens": _clamp_int(data.get("max_context_tokens"), 256, 32768, int(defaults["max_context_tokens"])),
    }


@dataclass(slots=True)
class NormalizedFimAssistConfig:
    enabled: bool
    auto_trigger: bool
    base_url: str
    api_key: str
    model: str
    debounce_ms: int
    reject_timeout_ms: int
    max_output_tokens: int
    request_timeout_ms: int
    max_context_tokens: int
    fim_model_prefixes: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, data: Any) -> "NormalizedFimAssistConfig":
        n = normalize_fim_settings(data)
        return cls(
            enabled=bool(n["enabled"]),
            auto_trigger=bool(n["auto_trigger"]),
            base_url=str(n["base_url"]),
            api_key=str(n["api_key"]),
            model=str(n["model"]),
            debounce_ms=int(n["debounce_ms"]),
            reject_timeout_ms=int(n["reject_timeout_ms"]),
            max_output_tokens=int(n["max_output_tokens"]),
            request_timeout_ms=int(n["request_timeout_ms"]),
            max_context_tokens=int(n["max_context_tokens"]),
            fim_model_prefixes=tuple(n["fim_model_prefixes"]),
        )
