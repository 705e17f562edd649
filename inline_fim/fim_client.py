from __future__ import annotations

import json
import logging
import socket
import ssl
import urllib.error
import urllib.request
from typing import Any, Iterator

from inline_fim.provider_base import (
    CancelToken,
    FimProviderClient,
    FimStreamRequest,
    FimTransportError,
    ReasoningChunk,
    StreamChunk,
    TextChunk,
)

logger = logging.getLogger(__name__)


class MistralFimClient(FimProviderClient):
    """Streams ``/v1/fim/completions`` over server-sent events."""

    def stream_fim_chunks(
        self,
        request: FimStreamRequest,
        *,
        cancel_token: CancelToken | None = None,
    ) -> Iterator[StreamChunk]:
        base_url = self._normalize_base_url(request.base_url)
        if not base_url:
            raise FimTransportError("Base URL is missing.")

        payload = {
            "model": str(request.model),
            "prompt": str(request.prefix or ""),
            "suffix": str(request.suffix or ""),
            "max_tokens": max(1, int(request.max_tokens)),
            "temperature": float(request.temperature),
            "stream": True,
        }
        logger.debug(
            "FIM request model=%s prompt_chars=%d suffix_chars=%d max_tokens=%d",
            payload["model"],
            len(payload["prompt"]),
            len(payload["suffix"]),
            payload["max_tokens"],
        )
        # Opened eagerly so HTTP failures raise here rather than on first iteration.
        resp = self._open_stream(
            url=f"{base_url}/fim/completions",
            payload=payload,
            api_key=request.api_key,
            timeout_s=float(request.timeout_s or 10.0),
        )
        return self._iter_chunks(resp, cancel_token)

    def _open_stream(self, *, url: str, payload: dict[str, Any], api_key: str, timeout_s: float):
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "inline-fim/1.0",
        }
        token = str(api_key or "").strip()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        data_bytes = json.dumps(payload, ensure_ascii=True).encode("utf-8")
        req = urllib.request.Request(url=url, method="POST", data=data_bytes, headers=headers)
        try:
            return urllib.request.urlopen(req, timeout=max(0.5, float(timeout_s)))
        except urllib.error.HTTPError as exc:
            body_text = ""
            try:
                body_text = exc.read().decode("utf-8", errors="replace")
            except Exception:
                body_text = ""
            status = int(exc.code)
            raise FimTransportError(
                f"FIM streaming failed: {status} {self._friendly_http_status_text(status)} - {body_text}",
                status=status,
                body=body_text,
            ) from exc
        except urllib.error.URLError as exc:
            reason = getattr(exc, "reason", None)
            if isinstance(reason, ssl.SSLError):
                message = "TLS handshake failed. Check endpoint certificate settings."
            elif isinstance(reason, socket.timeout):
                message = "Connection timed out. Endpoint is unreachable."
            elif isinstance(reason, ConnectionRefusedError):
                message = "Connection refused by endpoint."
            else:
                message = "Could not reach FIM endpoint. Check base URL and network connectivity."
            raise FimTransportError(message) from exc
        except socket.timeout as exc:
            raise FimTransportError("Connection timed out. Endpoint is unreachable.") from exc

    def _iter_chunks(self, resp, cancel_token: CancelToken | None) -> Iterator[StreamChunk]:
        # cancel() may run while this thread holds the reader lock in
        # readline(); it only shuts the socket down, close stays here.
        if cancel_token is not None:
            cancel_token.on_cancel(lambda: self._interrupt_socket(resp))
        try:
            for data in self._iter_sse_data(resp, cancel_token):
                if cancel_token is not None and cancel_token.is_cancelled:
                    return
                if data == "[DONE]":
                    return
                try:
                    event = json.loads(data)
                except ValueError:
                    logger.debug("Skipping undecodable SSE payload: %r", data[:120])
                    continue
                yield from self._decode_event(event)
        finally:
            self._close_quietly(resp)

    def _iter_sse_data(self, resp, cancel_token: CancelToken | None) -> Iterator[str]:
        data_lines: list[str] = []
        while True:
            if cancel_token is not None and cancel_token.is_cancelled:
                return
            try:
                raw = resp.readline()
            except Exception as exc:
                if cancel_token is not None and cancel_token.is_cancelled:
                    return
                raise FimTransportError(f"FIM stream interrupted: {exc}") from exc
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                if data_lines:
                    yield "\n".join(data_lines)
                    data_lines = []
                continue
            if line.startswith(":"):
                continue
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip(" "))
        if data_lines:
            yield "\n".join(data_lines)

    def _decode_event(self, event: Any) -> Iterator[StreamChunk]:
        if not isinstance(event, dict):
            return
        choices = event.get("choices")
        if not isinstance(choices, list) or not choices:
            return
        first = choices[0]
        if not isinstance(first, dict):
            return
        delta = first.get("delta")
        if not isinstance(delta, dict):
            return
        content = delta.get("content")
        if isinstance(content, str):
            if content:
                yield TextChunk(content)
            return
        if not isinstance(content, list):
            return
        for item in content:
            if not isinstance(item, dict):
                continue
            kind = str(item.get("type") or "")
            if kind == "text":
                text = item.get("text")
                if isinstance(text, str) and text:
                    yield TextChunk(text)
            elif kind == "thinking":
                for part in item.get("thinking") or []:
                    if not isinstance(part, dict) or str(part.get("type") or "") != "text":
                        continue
                    text = part.get("text")
                    if isinstance(text, str) and text:
                        yield ReasoningChunk(text)

    def _close_quietly(self, resp) -> None:
        try:
            resp.close()
        except Exception:
            pass

    def _interrupt_socket(self, resp) -> None:
        raw = getattr(getattr(resp, "fp", None), "raw", None)
        sock = getattr(raw, "_sock", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            logger.debug("FIM stream socket already closed")

    def _normalize_base_url(self, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            return ""
        if text.endswith("/"):
            text = text[:-1]
        if not text.startswith("http://") and not text.startswith("https://"):
            text = f"https://{text}"
        if not text.endswith("/v1"):
            text = f"{text}/v1"
        return text.rstrip("/")

    def _friendly_http_status_text(self, status: int) -> str:
        if status in {401, 403}:
            return "Authentication failed. Verify API key and model access."
        if status == 404:
            return "Endpoint not found. Verify base URL and API path."
        if status == 429:
            return "Provider rate limited the request."
        if 500 <= status <= 599:
            return "Provider is unavailable."
        return "Provider request failed."
