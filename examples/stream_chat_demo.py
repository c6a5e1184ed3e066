"""Minimal console client for the streaming agent.

Commands: /new, /list, /quit. Press Ctrl-C while an answer is streaming to stop it.
"""

import asyncio
import signal

from dotenv import load_dotenv

# 加载.env文件中的环境变量（需在导入 settings 之前）
load_dotenv()

from agent_chat.config.settings import settings  # noqa: E402
from agent_chat.infrastructure.storage.memory_store import InMemoryConversationStore  # noqa: E402
from agent_chat.session.controller import SessionController  # noqa: E402
from agent_chat.transport import create_transport  # noqa: E402


class ConsolePrinter:
    """把 live 消息的新增内容增量打印到终端。"""

    def __init__(self, controller: SessionController):
        self._controller = controller
        self._printed = 0

    def reset(self) -> None:
        self._printed = 0

    def __call__(self, conversation_id):
        session = self._controller.live_session
        if session is None or session.conversation_id != conversation_id:
            return
        message = self._controller.store.get_message(session.conversation_id, session.message_id)
        print(message.content[self._printed:], end="", flush=True)
        self._printed = len(message.content)


async def main() -> None:
    store = InMemoryConversationStore()
    controller = SessionController(
        store=store,
        transport=create_transport(settings),
        notifier=lambda text: print(f"\n[!] {text}"),
    )
    printer = ConsolePrinter(controller)
    store.subscribe(printer)
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, controller.stop_generation)

    while True:
        text = (await loop.run_in_executor(None, input, "\nUser: ")).strip()
        if text == "/quit":
            break
        if text == "/new":
            controller.new_conversation()
            continue
        if text == "/list":
            for conv in store.list_conversations():
                print(f"{conv.id}  {conv.title}  (server: {conv.server_id})")
            continue
        if not text:
            continue
        printer.reset()
        print("Agent: ", end="", flush=True)
        session = controller.send_message(text)
        await session.handle.wait()
        print()
        message = store.get_message(session.conversation_id, session.message_id)
        for line in message.tool_log:
            print(f"  {line}")
        print(f"[{message.outcome.value if message.outcome else 'stopped'}]")


if __name__ == "__main__":
    asyncio.run(main())
