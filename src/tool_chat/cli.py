import asyncio
import logging
import signal

from .cancellation import CancelToken
from .config import SUPPORTED_PROVIDERS, ChatConfig
from .core import send
from .models import TOOL_STATUS_CALLING, ConversationTurn
from .runtime import init_runtime
from .tools import InMemoryNoteStore, ToolRegistry, register_notes_tools
from .tools.notes import MAX_LIST_LIMIT

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("/exit", "exit", "quit")


def _print_chunk(text):
    print(text, end="", flush=True)


def _print_tool_event(event):
    """Print tool progress on its own line."""
    if event.status == TOOL_STATUS_CALLING:
        print(f"\n[tool] {event.name} {event.arguments}", flush=True)
        return
    result = event.result
    if result is not None and not result.success and result.error is not None:
        print(f"[tool] {event.name} failed: {result.error.message}", flush=True)
    else:
        print(f"[tool] {event.name} done", flush=True)


def _handle_system_command(args, system_prompt):
    """Handle /system command"""
    if not args:
        if system_prompt:
            print(f"Current system prompt: {system_prompt}")
        else:
            print("No system prompt is set.")
        return system_prompt

    if args == "clear":
        print("System prompt cleared.")
        return ""

    print(f"System prompt set: {args}")
    return args


def _handle_provider_command(args, provider):
    """Handle /provider command"""
    if not args:
        print(f"Current provider: {provider}")
        return provider
    choice = args.strip().lower()
    if choice not in SUPPORTED_PROVIDERS:
        print(f"Error: unknown provider `{choice}`. Choose one of: {', '.join(SUPPORTED_PROVIDERS)}")
        return provider
    print(f"Provider set: {choice}")
    return choice


def _print_notes(store):
    notes = asyncio.run(store.list(limit=MAX_LIST_LIMIT))
    if not notes:
        print("No notes yet.")
        return
    for note in notes:
        pin = "*" if note.is_pinned else " "
        print(f"{pin} [{note.id}] {note.title}")


async def _run_exchange(history, turn, config, registry):
    """Send one turn; Ctrl-C cancels the exchange instead of exiting."""
    token = CancelToken()
    loop = asyncio.get_running_loop()
    handler_installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted by user")
        handler_installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        logger.debug("SIGINT handler not available; Ctrl-C will abort the CLI")

    try:
        return await send(
            history,
            turn,
            config,
            on_chunk=_print_chunk,
            cancel_token=token,
            on_tool_event=_print_tool_event,
            registry=registry,
        )
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def main():
    """Main CLI loop"""
    app_config = init_runtime()

    store = InMemoryNoteStore()
    registry = ToolRegistry()
    register_notes_tools(registry, store)

    history = []
    system_prompt = ""
    provider = app_config.provider

    while True:
        try:
            prompt = input("> ").strip()
        except EOFError:
            break

        if not prompt:
            continue
        if prompt.lower() in EXIT_COMMANDS:
            break

        if prompt.startswith("/"):
            parts = prompt.split(None, 1)
            command = parts[0]
            args = parts[1] if len(parts) > 1 else ""

            if command == "/system":
                system_prompt = _handle_system_command(args, system_prompt)
            elif command == "/provider":
                provider = _handle_provider_command(args, provider)
            elif command == "/notes":
                _print_notes(store)
            elif command == "/clear":
                history = []
                print("Conversation cleared.")
            else:
                print(
                    f"Error: `{command}` is not a known command. "
                    "Available commands: /system, /provider, /notes, /clear, /exit"
                )
            continue

        config = ChatConfig.from_app_config(
            app_config, system_instruction=system_prompt, provider=provider
        )
        turn = ConversationTurn.user(prompt)
        print(f"[{provider.capitalize()}]: ", end="", flush=True)
        reply = asyncio.run(_run_exchange(history, turn, config, registry))
        print()

        history.append(turn)
        history.append(ConversationTurn.assistant(reply))

    return history, system_prompt


if __name__ == "__main__":
    main()
