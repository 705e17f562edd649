"""Active-model gateway for fill-in-the-middle requests."""

from __future__ import annotations

import logging
from typing import Any, Iterator

from inline_fim.fim_client import MistralFimClient
from inline_fim.provider_base import (
    CancelToken,
    FimCapabilityError,
    FimProviderClient,
    FimStreamRequest,
    TextChunk,
)
from inline_fim.settings_schema import NormalizedFimAssistConfig

logger = logging.getLogger(__name__)

FIM_TEMPERATURE = 0.2
FIM_MAX_TOKENS_CAP = 256


class FimModel:
    def __init__(self, provider_client: FimProviderClient | None = None) -> None:
        self._provider = provider_client or MistralFimClient()
        self._cfg: NormalizedFimAssistConfig | None = None

    @property
    def loaded(self) -> bool:
        return self._cfg is not None

    @property
    def model_id(self) -> str:
        return self._cfg.model if self._cfg is not None else ""

    def reload(self, settings: Any) -> bool:
        """Load model settings; returns False and unloads when they are unusable."""
        cfg = settings if isinstance(settings, NormalizedFimAssistConfig) else NormalizedFimAssistConfig.from_mapping(settings)
        if not cfg.model or not cfg.base_url:
            logger.debug("FIM model reload failed: model or endpoint missing")
            self._cfg = None
            return False
        self._cfg = cfg
        return True

    def supports_fim(self) -> bool:
        cfg = self._cfg
        if cfg is None:
            return False
        return any(cfg.model.startswith(prefix) for prefix in cfg.fim_model_prefixes)

    def stream_fim(
        self,
        prefix: str,
        suffix: str,
        *,
        cancel_token: CancelToken | None = None,
    ) -> Iterator[str]:
        cfg = self._cfg
        if cfg is None:
            raise FimCapabilityError("No FIM model is loaded.")
        if not self.supports_fim():
            raise FimCapabilityError(f"Model {cfg.model!r} does not support fill-in-the-middle.")

        request = FimStreamRequest(
            base_url=cfg.base_url,
            api_key=cfg.api_key,
            model=cfg.model,
            prefix=prefix,
            suffix=suffix,
            max_tokens=min(FIM_MAX_TOKENS_CAP, cfg.max_output_tokens),
            temperature=FIM_TEMPERATURE,
            timeout_s=max(0.5, float(cfg.request_timeout_ms) / 1000.0),
        )
        chunks = self._provider.stream_fim_chunks(request, cancel_token=cancel_token)
        return (chunk.text for chunk in chunks if isinstance(chunk, TextChunk) and chunk.text)

    def complete_fim(self, prefix: str, suffix: str, *, cancel_token: CancelToken | None = None) -> str:
        return "".join(self.stream_fim(prefix, suffix, cancel_token=cancel_token))
