from typing import Callable, List, Optional, Protocol

from .frames import StreamFrame
from .models import AgentResponse, Conversation, Message, ThoughtStep


# 变更回调：参数为发生变化的会话 id，列表级变化（新建/删除）时同样传入对应 id
ChangeListener = Callable[[Optional[str]], None]


class ConversationStore(Protocol):
    def create_conversation(self, first_user_text: str) -> str:
        ...

    def get_conversation(self, conversation_id: str) -> Conversation:
        ...

    def list_conversations(self) -> List[Conversation]:
        ...

    def list_messages(self, conversation_id: str) -> List[Message]:
        ...

    def get_message(self, conversation_id: str, message_id: str) -> Message:
        ...

    def thought_steps(self, conversation_id: str) -> List[ThoughtStep]:
        ...

    def append_user_message(self, conversation_id: str, text: str) -> str:
        ...

    def begin_assistant_message(self, conversation_id: str) -> str:
        ...

    def apply_frame(self, conversation_id: str, message_id: str, frame: StreamFrame) -> bool:
        ...

    def apply_response(self, conversation_id: str, message_id: str, response: AgentResponse) -> bool:
        ...

    def finalize_assistant_message(
        self,
        conversation_id: str,
        message_id: str,
        server_conversation_id: Optional[str],
        ok: bool,
    ) -> bool:
        ...

    def mark_aborted(self, conversation_id: str, message_id: str) -> bool:
        ...

    def delete_conversation(self, conversation_id: str) -> None:
        ...

    @property
    def active_conversation_id(self) -> Optional[str]:
        ...

    def set_active(self, conversation_id: Optional[str]) -> None:
        ...

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        ...
