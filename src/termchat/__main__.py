import argparse
import asyncio
import sys
from importlib.metadata import PackageNotFoundError, version

from dotenv import load_dotenv
from loguru import logger

from termchat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from termchat.bootstrap import AppRuntime, bootstrap_runtime
from termchat.errors import ConfigError, TermchatError
from termchat.memory import SessionKey

_USER_PROMPT = "You: "
_EXIT_COMMANDS = ("exit", "quit")


def _package_version() -> str:
    try:
        return version("termchat")
    except PackageNotFoundError:
        return "0.0.0"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termchat",
        description="Chat with a streaming chat-completion API from your terminal.",
    )
    parser.add_argument("prompt", nargs="*", help="The prompt to send (joined with spaces)")
    parser.add_argument("-m", "--model", help="Chat model to use for this session")
    parser.add_argument("--version", action="version", version=f"%(prog)s {_package_version()}")
    return parser


async def chat_loop(runtime: AppRuntime, first_prompt: str | None = None) -> None:
    pending = first_prompt
    while True:
        if pending is not None:
            user_input, pending = pending, None
        else:
            try:
                user_input = input(_USER_PROMPT)
            except (EOFError, KeyboardInterrupt):
                print()
                break

        trimmed = user_input.strip()

        if trimmed in _EXIT_COMMANDS:
            break

        if not trimmed:
            continue

        try:
            await runtime.engine.run(trimmed)
        except TermchatError as ex:
            logger.error(f"Turn failed: {ex}")
        except Exception as ex:
            logger.error(f"Unhandled error: {ex}")


async def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_arg_parser().parse_args(argv)

    session_key = SessionKey.for_current_process()
    try:
        app = parse_app_config(load_json_config())
        env = resolve_runtime_env()
        runtime = bootstrap_runtime(app, env, session_key, model_override=args.model)
    except ConfigError as ex:
        logger.error(str(ex))
        return 1

    logger.info(
        f"Session {session_key} (model: {runtime.model}, transcript: {runtime.store.path_for(session_key)})"
    )
    if runtime.log_descriptions:
        logger.debug(f"Logging: {', '.join(runtime.log_descriptions)}")

    first_prompt = " ".join(args.prompt).strip() or None
    await chat_loop(runtime, first_prompt)
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
