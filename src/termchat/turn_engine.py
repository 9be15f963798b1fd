from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum
from typing import Any

from loguru import logger

from termchat.errors import FrameParseError, TransportError
from termchat.llm_client import Spinner
from termchat.memory.models import OutgoingMessage, Role, Turn
from termchat.memory.session import SessionKey
from termchat.memory.store import TranscriptStore
from termchat.stream_decoder import StreamDecoder, decode_stream, log_frame_error
from termchat.system_prompt import DEFAULT_SYSTEM_PROMPT


class TurnState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


def write_stdout(text: str) -> None:
    print(text, end="", flush=True)


def build_outgoing_messages(
    transcript: list[Turn],
    prompt: str,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> list[OutgoingMessage]:
    if not transcript:
        return [
            OutgoingMessage(role=Role.SYSTEM, content=system_prompt),
            OutgoingMessage(role=Role.USER, content=prompt),
        ]
    messages = [OutgoingMessage.from_turn(t) for t in transcript]
    messages.append(OutgoingMessage(role=Role.USER, content=prompt))
    return messages


class TurnEngine:
    """Runs one prompt through request, streamed render and transcript commit.

    The user/assistant pair is written only after the answer has streamed in
    completely; any failure leaves the stored transcript untouched.
    """

    def __init__(
        self,
        *,
        client: Any,
        store: TranscriptStore,
        session_key: SessionKey,
        model: str,
        timeout: float | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        line_prefix: str = "Bot: ",
        show_spinner: bool = True,
        sink: Callable[[str], None] = write_stdout,
        on_frame_error: Callable[[FrameParseError], None] = log_frame_error,
    ) -> None:
        self._client = client
        self._store = store
        self._session_key = session_key
        self._model = model
        self._timeout = timeout
        self._system_prompt = system_prompt
        self._line_prefix = line_prefix
        self._show_spinner = show_spinner
        self._sink = sink
        self._on_frame_error = on_frame_error
        self._state = TurnState.IDLE

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def session_key(self) -> SessionKey:
        return self._session_key

    async def run(self, prompt: str) -> str:
        self._state = TurnState.IDLE
        try:
            transcript = self._store.load(self._session_key)
            messages = build_outgoing_messages(transcript, prompt, self._system_prompt)
            answer = await self._exchange_with_timeout(messages)
            self._store.append(
                self._session_key,
                Turn(role=Role.USER, content=prompt),
                Turn(role=Role.ASSISTANT, content=answer),
            )
        except BaseException:
            self._state = TurnState.FAILED
            raise

        self._state = TurnState.COMPLETED
        logger.info(f"Committed turn to session {self._session_key} ({len(answer)} chars)")
        return answer

    async def _exchange_with_timeout(self, messages: list[OutgoingMessage]) -> str:
        if self._timeout is None:
            return await self._exchange(messages)
        try:
            return await asyncio.wait_for(self._exchange(messages), timeout=self._timeout)
        except asyncio.TimeoutError as ex:
            raise TransportError(f"Exchange exceeded {self._timeout:g}s timeout") from ex

    async def _exchange(self, messages: list[OutgoingMessage]) -> str:
        self._state = TurnState.REQUESTING
        spinner: Spinner | None = None
        if self._show_spinner:
            spinner = Spinner(prefix=self._line_prefix)
            spinner.start()
        started = False

        def emit(text: str) -> None:
            nonlocal started
            if not started:
                started = True
                if spinner is not None:
                    spinner.stop()
                else:
                    self._sink(self._line_prefix)
            self._sink(text)

        try:
            async with self._client.open_stream(self._model, messages) as chunks:
                self._state = TurnState.STREAMING
                return await decode_stream(chunks, emit, decoder=StreamDecoder(self._on_frame_error))
        finally:
            if spinner is not None:
                spinner.stop()
            if started or spinner is not None:
                self._sink("\n")
