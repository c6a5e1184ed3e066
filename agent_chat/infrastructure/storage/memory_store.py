"""进程内的会话存储。

InMemoryConversationStore 是会话与消息数据的唯一所有者，流式帧只在这里
被折叠进消息状态。所有写操作都以 (conversation_id, message_id) 显式寻址，
并在写入前确认目标消息仍是会话的最后一条且仍在流式中，过期会话的迟到
写入会被丢弃。
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from agent_chat.config.settings import settings
from agent_chat.domain.conversation import ChangeListener, ConversationStore
from agent_chat.domain.exceptions import BusinessError
from agent_chat.domain.frames import FrameType, StreamFrame
from agent_chat.domain.models import (
    AgentResponse,
    Conversation,
    Message,
    Outcome,
    StepType,
    ThoughtStep,
)
from agent_chat.infrastructure.logging.logger import log_event


TOOL_LOG_LIMIT = 100
STEP_CONTENT_LIMIT = 200
ELLIPSIS = "..."

NO_RESPONSE_TEXT = "Sorry, no response was received from the agent."
STOPPED_ANNOTATION = "\n\n(stopped)"
ERROR_ANNOTATION = "\n\n[Error] {}"


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryConversationStore(ConversationStore):
    def __init__(self, title_max_chars: Optional[int] = None):
        self._title_max_chars = title_max_chars or settings.title_max_chars
        # 最近创建的会话排在最前
        self._conversations: List[Conversation] = []
        self._index: Dict[str, Conversation] = {}
        self._active_id: Optional[str] = None
        self._listeners: List[ChangeListener] = []

    # ---- 查询 ----

    def get_conversation(self, conversation_id: str) -> Conversation:
        return copy.deepcopy(self._require(conversation_id))

    def list_conversations(self) -> List[Conversation]:
        return copy.deepcopy(self._conversations)

    def list_messages(self, conversation_id: str) -> List[Message]:
        return copy.deepcopy(self._require(conversation_id).messages)

    def get_message(self, conversation_id: str, message_id: str) -> Message:
        for message in self._require(conversation_id).messages:
            if message.id == message_id:
                return copy.deepcopy(message)
        raise BusinessError(code="MESSAGE_NOT_FOUND", message=message_id)

    def thought_steps(self, conversation_id: str) -> List[ThoughtStep]:
        """按时间顺序汇总会话内所有 assistant 消息的思考步骤。"""

        steps: List[ThoughtStep] = []
        for message in self._require(conversation_id).messages:
            if message.role == "assistant":
                steps.extend(copy.deepcopy(message.thought_steps))
        return steps

    @property
    def active_conversation_id(self) -> Optional[str]:
        return self._active_id

    # ---- 会话生命周期 ----

    def create_conversation(self, first_user_text: str) -> str:
        cid = f"c-{uuid4().hex}"
        conv = Conversation(
            id=cid,
            title=_truncate(first_user_text, self._title_max_chars),
            created_at=_utcnow(),
        )
        self._conversations.insert(0, conv)
        self._index[cid] = conv
        self._notify(cid)
        return cid

    def set_active(self, conversation_id: Optional[str]) -> None:
        if conversation_id is not None:
            self._require(conversation_id)
        self._active_id = conversation_id
        self._notify(conversation_id)

    def delete_conversation(self, conversation_id: str) -> None:
        conv = self._require(conversation_id)
        self._conversations.remove(conv)
        del self._index[conversation_id]
        if self._active_id == conversation_id:
            self._active_id = None
        self._notify(conversation_id)

    # ---- 消息写入 ----

    def append_user_message(self, conversation_id: str, text: str) -> str:
        conv = self._require(conversation_id)
        mid = f"m-{uuid4().hex}"
        conv.messages.append(Message(id=mid, role="user", content=text, created_at=_utcnow()))
        self._notify(conversation_id)
        return mid

    def begin_assistant_message(self, conversation_id: str) -> str:
        conv = self._require(conversation_id)
        mid = f"m-{uuid4().hex}"
        conv.messages.append(
            Message(id=mid, role="assistant", content="", created_at=_utcnow(), streaming=True)
        )
        self._notify(conversation_id)
        return mid

    def apply_frame(self, conversation_id: str, message_id: str, frame: StreamFrame) -> bool:
        """把一帧折叠进目标消息，过期帧返回 False 且不做任何修改。"""

        message = self._live_message(conversation_id, message_id)
        if message is None:
            log_event(
                logging.INFO,
                "Dropped stale frame",
                {"conversation_id": conversation_id, "message_id": message_id},
                frame_type=frame.type.value,
            )
            return False

        if frame.type == FrameType.CONTENT:
            message.content += frame.data
        elif frame.type == FrameType.TOOL_CALL:
            message.tool_log.append(f"Tool call: {frame.data}")
            message.thought_steps.append(ThoughtStep(step_type=StepType.ACTION, content=frame.data))
        elif frame.type == FrameType.TOOL_RESULT:
            message.tool_log.append(_truncate(f"Tool result: {frame.data}", TOOL_LOG_LIMIT))
            message.thought_steps.append(
                ThoughtStep(
                    step_type=StepType.OBSERVATION,
                    content=_truncate(frame.data, STEP_CONTENT_LIMIT),
                )
            )
        elif frame.type == FrameType.ERROR:
            message.content += ERROR_ANNOTATION.format(frame.data)
            message.outcome = Outcome.FAILURE
        else:
            # END 帧由传输层转换为 on_complete，不应出现在这里
            return False

        self._notify(conversation_id)
        return True

    def apply_response(self, conversation_id: str, message_id: str, response: AgentResponse) -> bool:
        """折叠非流式接口的完整响应，之后仍需调用 finalize_assistant_message。"""

        message = self._live_message(conversation_id, message_id)
        if message is None:
            return False
        message.content += response.final_answer or response.error_message or ""
        message.thought_steps.extend(response.thought_steps)
        message.token_stats = response.token_stats
        if not response.success:
            message.outcome = Outcome.FAILURE
        self._notify(conversation_id)
        return True

    def finalize_assistant_message(
        self,
        conversation_id: str,
        message_id: str,
        server_conversation_id: Optional[str],
        ok: bool,
    ) -> bool:
        """结束一条 assistant 消息，只会生效一次。"""

        message = self._live_message(conversation_id, message_id)
        if message is None:
            return False

        message.streaming = False
        if not message.content:
            # 空回答不是有效结果，无论传输层报告成功还是失败
            message.outcome = Outcome.FAILURE
            message.content = NO_RESPONSE_TEXT
        elif not ok:
            message.outcome = Outcome.FAILURE
        elif message.outcome != Outcome.FAILURE:
            message.outcome = Outcome.SUCCESS

        conv = self._index[conversation_id]
        if server_conversation_id and conv.server_id is None:
            conv.server_id = server_conversation_id
        self._notify(conversation_id)
        return True

    def mark_aborted(self, conversation_id: str, message_id: str) -> bool:
        message = self._live_message(conversation_id, message_id)
        if message is None:
            return False
        message.streaming = False
        message.content += STOPPED_ANNOTATION
        self._notify(conversation_id)
        return True

    # ---- 订阅 ----

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- 内部 ----

    def _require(self, conversation_id: str) -> Conversation:
        conv = self._index.get(conversation_id)
        if conv is None:
            raise BusinessError(code="CONVERSATION_NOT_FOUND", message=conversation_id)
        return conv

    def _live_message(self, conversation_id: str, message_id: str) -> Optional[Message]:
        """目标消息仍是最后一条且仍在流式中时返回它，否则返回 None。"""

        conv = self._index.get(conversation_id)
        if conv is None or not conv.messages:
            return None
        last = conv.messages[-1]
        if last.id != message_id or last.role != "assistant" or not last.streaming:
            return None
        return last

    def _notify(self, conversation_id: Optional[str]) -> None:
        for listener in list(self._listeners):
            listener(conversation_id)
