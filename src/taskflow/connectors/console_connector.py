# src/taskflow/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..cli.commands import render_focus
from ..core.state import AppState, ChatLine
from ..focus.session import SessionPhase
from ..llm.client import friendly_llm_error_message

logger = logging.getLogger(__name__)

GREETING = "Hi! I'm your study buddy. Need to change times or move tasks? Just ask!"


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def _companion_reply(state: AppState, user_input: str) -> str:
    state.chat.append(ChatLine("user", user_input))
    result = await state.interpreter.interpret(user_input)
    if result.changed:
        state.session.refresh()
    state.chat.append(ChatLine("agent", result.response_text))
    return result.response_text


def _on_phase_change(state: AppState, phase: SessionPhase) -> None:
    if state.mode != "focus":
        return
    if phase == SessionPhase.EXPIRED:
        _print_ts("[FOCUS] Time's up! Mark it /done when you finish, or /stop to leave.")
    elif phase == SessionPhase.IDLE:
        _print_ts("[FOCUS] All done! You've completed your flow for today.")


async def run_console_loop(state: AppState) -> None:
    """
    Async REPL.

    stdin is read in a worker thread so the focus countdown keeps ticking on
    the event loop while we wait; every state change still happens on the loop.
    """
    logger.info("Console connector started (ai=%s).", type(state.ai).__name__)
    _print_ts("[CONSOLE] Type your messages. Use /help for commands. Use /exit to quit.\n")
    _print_ts(f"<<< companion: {GREETING}")

    app_name = str(getattr(state.settings, "app_name", "taskflow"))
    state.session.on_phase_change = lambda phase: _on_phase_change(state, phase)

    while True:
        prompt = ">>> focus: " if state.mode == "focus" else ">>> You: "
        try:
            user_input = (await asyncio.to_thread(input, prompt)).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            if state.mode == "focus":
                _print_ts(render_focus(state))
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            cmd_response = await command_registry.handle(state, user_input)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is not None:
            _print_ts(cmd_response)
            continue

        try:
            reply = await _companion_reply(state, user_input)
        except RuntimeError as e:
            msg = friendly_llm_error_message(e)
            logger.info("AI runtime error: %s", msg)
            _print_ts(f"[AI] {msg}")
            continue
        except Exception:
            logger.exception("Companion chat handler crashed.")
            _print_ts("Oops, something went wrong. Try again?")
            continue

        _print_ts(f"<<< {app_name}: {reply}")

    logger.info("Console connector finished.")
