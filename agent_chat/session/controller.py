"""会话控制器。

负责编排一轮对话：定位或创建会话、写入用户消息、为每轮打开唯一一个
传输句柄，并把收到的帧转交给 ConversationStore。控制器本身从不修改消息
内容，也从不阻塞；所有回调都在同一个事件循环上执行。

全局最多只有一个进行中的会话（live session）。发送新消息或停止生成都会
先中止它；只有占据 live 槽位的会话才能清空槽位，已被中止的会话迟到的
回调会被直接忽略。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from agent_chat.domain.conversation import ConversationStore
from agent_chat.domain.exceptions import ApiError, BusinessError, ValidationError
from agent_chat.domain.frames import FrameType, StreamFrame
from agent_chat.domain.models import AgentResponse, Outcome
from agent_chat.infrastructure.logging.logger import log_event
from agent_chat.transport.base import AgentTransport, StreamHandle


class TurnState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class StreamingSession:
    """一轮对话的进行中状态，绑定传输句柄与它所填充的消息。"""

    conversation_id: str
    message_id: str
    state: TurnState = TurnState.STARTING
    handle: Optional[StreamHandle] = None
    # 非流式响应的 success 标志，流式轮次始终为 True
    response_ok: bool = True

    @property
    def session_id(self) -> Optional[str]:
        return self.handle.id if self.handle else None


class _SessionListener:
    """把传输回调绑定到某一个具体的 StreamingSession。"""

    def __init__(self, controller: "SessionController", session: StreamingSession):
        self._controller = controller
        self._session = session

    def on_message(self, frame: StreamFrame) -> None:
        self._controller._on_message(self._session, frame)

    def on_response(self, response: AgentResponse) -> None:
        self._controller._on_response(self._session, response)

    def on_complete(self, server_conversation_id: Optional[str]) -> None:
        self._controller._on_complete(self._session, server_conversation_id)

    def on_error(self, error: BusinessError) -> None:
        self._controller._on_error(self._session, error)


class SessionController:
    def __init__(
        self,
        store: ConversationStore,
        transport: AgentTransport,
        notifier: Optional[Callable[[str], None]] = None,
    ):
        self._store = store
        self._transport = transport
        # 传输失败时的用户提示（toast），由展示层注入
        self._notifier = notifier
        self._live: Optional[StreamingSession] = None

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def live_session(self) -> Optional[StreamingSession]:
        return self._live

    @property
    def active_conversation_id(self) -> Optional[str]:
        return self._store.active_conversation_id

    # ---- 用户意图 ----

    def send_message(self, text: str) -> StreamingSession:
        """发起新一轮对话，返回本轮的 StreamingSession。

        若已有进行中的会话，先将其直接转为 ABORTED，不等待它的终止事件。
        """

        text = (text or "").strip()
        if not text:
            raise ValidationError(code="EMPTY_TASK", message="Message text is empty")

        self._supersede()

        conversation_id = self._store.active_conversation_id
        if conversation_id is None:
            conversation_id = self._store.create_conversation(text)
            self._store.set_active(conversation_id)
        server_id = self._store.get_conversation(conversation_id).server_id

        self._store.append_user_message(conversation_id, text)
        message_id = self._store.begin_assistant_message(conversation_id)
        session = StreamingSession(conversation_id=conversation_id, message_id=message_id)
        self._live = session

        try:
            session.handle = self._transport.open(text, server_id, _SessionListener(self, session))
        except Exception:
            self._clear(session)
            session.state = TurnState.FAILED
            self._store.finalize_assistant_message(conversation_id, message_id, None, ok=False)
            raise
        session.state = TurnState.STREAMING
        self._log(
            logging.INFO,
            "Started turn",
            session,
            transport=self._transport.name,
            server_conversation_id=server_id,
        )
        return session

    def stop_generation(self) -> bool:
        """中止进行中的会话；没有进行中的会话时返回 False。"""

        session = self._live
        if session is None:
            return False
        if session.handle is not None:
            session.handle.abort()
        self._store.mark_aborted(session.conversation_id, session.message_id)
        session.state = TurnState.ABORTED
        self._clear(session)
        self._log(logging.INFO, "Aborted turn", session)
        return True

    def new_conversation(self) -> None:
        """清空当前选择，下一次发送会新建会话。"""

        self._store.set_active(None)

    def select_conversation(self, conversation_id: str) -> None:
        self._store.set_active(conversation_id)

    def delete_conversation(self, conversation_id: str) -> None:
        if self._live is not None and self._live.conversation_id == conversation_id:
            self.stop_generation()
        self._store.delete_conversation(conversation_id)

    # ---- 传输回调 ----

    def _on_message(self, session: StreamingSession, frame: StreamFrame) -> None:
        if self._live is not session:
            return
        self._store.apply_frame(session.conversation_id, session.message_id, frame)

    def _on_response(self, session: StreamingSession, response: AgentResponse) -> None:
        if self._live is not session:
            return
        session.response_ok = response.success
        self._store.apply_response(session.conversation_id, session.message_id, response)

    def _on_complete(self, session: StreamingSession, server_conversation_id: Optional[str]) -> None:
        if self._live is not session:
            return
        self._store.finalize_assistant_message(
            session.conversation_id,
            session.message_id,
            server_conversation_id,
            ok=session.response_ok,
        )
        message = self._store.get_message(session.conversation_id, session.message_id)
        session.state = TurnState.COMPLETED if message.outcome == Outcome.SUCCESS else TurnState.FAILED
        self._clear(session)
        self._log(
            logging.INFO,
            "Completed turn",
            session,
            outcome=message.outcome.value if message.outcome else None,
            server_conversation_id=server_conversation_id,
        )

    def _on_error(self, session: StreamingSession, error: BusinessError) -> None:
        if self._live is not session:
            return
        description = self._describe(error)
        self._store.apply_frame(
            session.conversation_id,
            session.message_id,
            StreamFrame(type=FrameType.ERROR, data=description),
        )
        self._store.finalize_assistant_message(session.conversation_id, session.message_id, None, ok=False)
        session.state = TurnState.FAILED
        self._clear(session)
        self._log(logging.WARNING, "Turn failed", session, code=error.code, error=description)
        if self._notifier is not None:
            self._notifier(f"Request failed: {description}")

    # ---- 内部 ----

    def _supersede(self) -> None:
        previous = self._live
        if previous is None:
            return
        self._log(logging.INFO, "Superseding live turn", previous)
        self.stop_generation()

    def _clear(self, session: StreamingSession) -> None:
        if self._live is session:
            self._live = None

    @staticmethod
    def _describe(error: BusinessError) -> str:
        if isinstance(error, ApiError) or error.http_status == 429:
            return f"HTTP {error.http_status}: {error.message}"
        return error.message

    @staticmethod
    def _log(level: int, message: str, session: StreamingSession, **fields) -> None:
        log_event(
            level,
            message,
            {
                "conversation_id": session.conversation_id,
                "message_id": session.message_id,
                "session_id": session.session_id,
                "state": session.state.value,
            },
            **fields,
        )
