from __future__ import annotations

import json
import sys
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from loguru import logger

from termchat.errors import TransportError
from termchat.memory.models import OutgoingMessage

DEFAULT_API_URL = "https://api.deepseek.com/chat/completions"

_SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
_ERROR_BODY_PREVIEW_CHARS = 500


class Spinner:
    """Thread-based spinner that renders on the current line using \\r."""

    def __init__(self, prefix: str = "", label: str = " Thinking..."):
        self._prefix = prefix
        self._label = label
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._frame_width = 1 + len(label)

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        if self._thread:
            self._thread.join()
        # Leave the cursor right after the prefix so the answer continues on this line
        clear = self._prefix + " " * self._frame_width
        sys.stdout.write("\r" + clear + "\r" + self._prefix)
        sys.stdout.flush()

    def _run(self) -> None:
        i = 0
        try:
            while not self._stop.is_set():
                frame = _SPINNER_FRAMES[i % len(_SPINNER_FRAMES)] + self._label
                sys.stdout.write("\r" + self._prefix + frame)
                sys.stdout.flush()
                self._stop.wait(0.08)
                i += 1
        except (UnicodeEncodeError, OSError):
            pass  # Terminal doesn't support these characters; fail silently


def build_request_body(model: str, messages: list[OutgoingMessage]) -> dict:
    return {
        "model": model,
        "stream": True,
        "messages": [m.to_wire() for m in messages],
    }


class ChatClient:
    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._timeout = timeout
        self._transport = transport

    @property
    def timeout(self) -> float:
        return self._timeout

    @asynccontextmanager
    async def open_stream(
        self,
        model: str,
        messages: list[OutgoingMessage],
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """POST one chat-completion request and yield its body as raw byte chunks.

        Connection failures, non-success statuses and read errors while the
        body is being consumed all surface as TransportError.
        """
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        body = json.dumps(build_request_body(model, messages), ensure_ascii=False)
        logger.debug(f"API request: url={self._api_url}, model={model}, messages={len(messages)}")

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                async with client.stream("POST", self._api_url, headers=headers, content=body) as response:
                    if not response.is_success:
                        await response.aread()
                        preview = response.text[:_ERROR_BODY_PREVIEW_CHARS]
                        raise TransportError(
                            f"HTTP {response.status_code} from {self._api_url}: {preview}",
                            status_code=response.status_code,
                        )
                    logger.debug(f"API response: status={response.status_code}")
                    yield response.aiter_bytes()
        except httpx.TimeoutException as ex:
            raise TransportError(f"Request timed out after {self._timeout:g}s: {ex}") from ex
        except httpx.HTTPError as ex:
            raise TransportError(f"{type(ex).__name__}: {ex}") from ex
