import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from chatbot_core.app_config import load_json_config, parse_app_config, resolve_runtime_env
from chatbot_core.bootstrap import AppRuntime, bootstrap_runtime
from chatbot_core.commands.router import CommandRouter
from chatbot_core.errors import ChatCoreError

_PREFIX = "assistant> "

_HELP_LINES = [
    "/new                      start a fresh conversation",
    "/resume <id>              load a saved conversation",
    "/model [id]               show models or switch (starts a fresh conversation)",
    "/list                     list saved conversations",
    "/delete <id>              delete a saved conversation",
    "/attach <ref> [ref...]    stage attachment references for the next message",
    "/settings dark|voice on|off",
    "exit                      quit",
]


def _print_fragment(event_type: str, payload: dict) -> None:
    if event_type == "message.fragment":
        print(payload["fragment"], end="", flush=True)


def _build_router(runtime: AppRuntime, available_models: list[str]) -> CommandRouter:
    sessions = runtime.sessions

    async def on_help() -> None:
        for line in _HELP_LINES:
            print(f"  {line}")

    async def on_new() -> None:
        sessions.start_conversation()
        print("Started a new conversation.")

    async def on_resume(conversation_id: str) -> None:
        if not conversation_id:
            print("Usage: /resume <id>")
            return
        sessions.start_conversation(conversation_id)
        print(f"Resumed {conversation_id} ({len(sessions.messages)} messages)")
        for message in sessions.messages:
            print(f"  {message.role.value}> {message.content}")

    async def on_model(model_id: str) -> None:
        if not model_id:
            for model in available_models:
                marker = "*" if model == sessions.selected_model else " "
                print(f"  {marker} {model}")
            return
        sessions.select_model(model_id)
        print(f"Model: {sessions.selected_model} (new conversation)")

    async def on_list() -> None:
        summaries = sessions.list_conversations(limit=20)
        if not summaries:
            print("No saved conversations.")
            return
        for summary in summaries:
            marker = "*" if summary.conversation_id == sessions.active_conversation_id else " "
            prompt = " ".join(summary.last_prompt.split())[:60]
            print(f"  {marker} {summary.conversation_id} ({summary.updated_at}) {prompt}")

    async def on_delete(conversation_id: str) -> None:
        if not conversation_id:
            print("Usage: /delete <id>")
            return
        sessions.delete_conversation(conversation_id)
        print(f"Deleted {conversation_id}")

    async def on_attach(refs: list[str]) -> None:
        sessions.stage_attachments(refs)
        print(f"Staged {len(sessions.pending_attachments)} attachment(s)")

    async def on_settings(args: str) -> None:
        name, _, value = args.partition(" ")
        enabled = value.strip().lower() in {"on", "true", "1", "yes"}
        if name == "dark":
            runtime.settings.toggle_dark_mode(enabled)
        elif name == "voice":
            runtime.settings.toggle_voice(enabled)
        else:
            print("Usage: /settings dark|voice on|off")
            return
        current = runtime.settings.settings
        print(f"Settings: dark_mode={current.dark_mode}, voice_enabled={current.voice_enabled}")

    def on_unknown(command: str) -> None:
        print(f"Unknown command: {command} (try /help)")

    return CommandRouter(
        on_help=on_help,
        on_new=on_new,
        on_resume=on_resume,
        on_model=on_model,
        on_list=on_list,
        on_delete=on_delete,
        on_attach=on_attach,
        on_settings=on_settings,
        on_unknown=on_unknown,
    )


async def main() -> None:
    load_dotenv()

    env = resolve_runtime_env()
    app = parse_app_config(load_json_config(), env)
    runtime = bootstrap_runtime(app, env)
    runtime.sessions.subscribe(_print_fragment)
    router = _build_router(runtime, app.available_models)

    print("chatbot-core (type 'exit' to quit, '/help' for commands)")
    print(f"Model: {runtime.sessions.selected_model}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break

            try:
                if await router.try_handle(trimmed):
                    continue
                print(_PREFIX, end="", flush=True)
                await runtime.sessions.send(trimmed)
                print("\n")
            except ChatCoreError as ex:
                print()
                logger.error(f"{type(ex).__name__}: {ex}")
                print(f"[{type(ex).__name__}] {ex}\n")
    finally:
        await runtime.aclose()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
