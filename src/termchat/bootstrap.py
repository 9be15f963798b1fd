from __future__ import annotations

from dataclasses import dataclass

from termchat.app_config import AppConfig, RuntimeEnv
from termchat.llm_client import ChatClient
from termchat.logging_config import setup_logging
from termchat.memory import SessionKey, TranscriptStore
from termchat.system_prompt import get_system_prompt
from termchat.turn_engine import TurnEngine


@dataclass
class AppRuntime:
    engine: TurnEngine
    store: TranscriptStore
    session_key: SessionKey
    model: str
    log_descriptions: list[str]


def bootstrap_runtime(
    app: AppConfig,
    env: RuntimeEnv,
    session_key: SessionKey,
    *,
    model_override: str | None = None,
) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    model = (model_override or "").strip() or app.model
    store = TranscriptStore(app.chatlog_dir)
    client = ChatClient(
        env.api_key,
        api_url=app.api_url,
        timeout=float(app.request_timeout_secs),
    )
    engine = TurnEngine(
        client=client,
        store=store,
        session_key=session_key,
        model=model,
        timeout=float(app.request_timeout_secs),
        system_prompt=get_system_prompt(),
        show_spinner=app.show_spinner,
    )

    return AppRuntime(
        engine=engine,
        store=store,
        session_key=session_key,
        model=model,
        log_descriptions=log_descriptions,
    )
