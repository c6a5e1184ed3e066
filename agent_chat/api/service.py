"""对外 API 服务模块。

提供简化的函数接口供展示层调用：用户意图（发送、停止、选择、删除、新建）
转交给默认的 SessionController，读取接口返回只读的 dict 快照。
"""

from typing import Any, Dict, List, Optional

from agent_chat.config.settings import settings
from agent_chat.domain.conversation import ConversationStore
from agent_chat.domain.models import Message
from agent_chat.infrastructure.storage.memory_store import InMemoryConversationStore
from agent_chat.session.controller import SessionController
from agent_chat.transport import create_transport


_store: Optional[ConversationStore] = None
_controller: Optional[SessionController] = None


def get_default_controller() -> SessionController:
    """获取默认的 SessionController 实例（单例）。"""
    global _store, _controller
    if _store is None:
        _store = InMemoryConversationStore(title_max_chars=settings.title_max_chars)
    if _controller is None:
        _controller = SessionController(store=_store, transport=create_transport(settings))
    return _controller


def send_message(text: str) -> Dict[str, Any]:
    """发起一轮对话（需在运行中的事件循环内调用）。

    Returns:
        包含会话ID、assistant 消息ID 和会话句柄ID 的字典
    """
    session = get_default_controller().send_message(text)
    return {
        "conversation_id": session.conversation_id,
        "message_id": session.message_id,
        "session_id": session.session_id,
    }


def stop_generation() -> bool:
    return get_default_controller().stop_generation()


def list_conversations() -> List[Dict[str, Any]]:
    """列出所有会话（最近创建的在前）。

    Returns:
        会话列表，每项包含 id, title, server_id, created_at, message_count, active
    """
    controller = get_default_controller()
    active = controller.active_conversation_id
    return [
        {
            "id": c.id,
            "title": c.title,
            "server_id": c.server_id,
            "created_at": c.created_at.isoformat(),
            "message_count": len(c.messages),
            "active": c.id == active,
        }
        for c in controller.store.list_conversations()
    ]


def get_conversation_messages(conversation_id: str) -> List[Dict[str, Any]]:
    """获取会话的所有消息。

    Args:
        conversation_id: 本地会话ID

    Returns:
        按时间顺序排列的消息列表
    """
    msgs = get_default_controller().store.list_messages(conversation_id)
    return [_message_to_dict(m) for m in msgs]


def get_thought_steps(conversation_id: str) -> List[Dict[str, str]]:
    steps = get_default_controller().store.thought_steps(conversation_id)
    return [{"stepType": s.step_type.value, "content": s.content} for s in steps]


def _message_to_dict(m: Message) -> Dict[str, Any]:
    return {
        "id": m.id,
        "role": m.role,
        "content": m.content,
        "created_at": m.created_at.isoformat(),
        "streaming": m.streaming,
        "outcome": m.outcome.value if m.outcome else None,
        "thought_steps": [{"stepType": s.step_type.value, "content": s.content} for s in m.thought_steps],
        "tool_log": list(m.tool_log),
        "token_stats": (
            {
                "totalTokens": m.token_stats.total_tokens,
                "inputTokens": m.token_stats.input_tokens,
                "outputTokens": m.token_stats.output_tokens,
            }
            if m.token_stats
            else None
        ),
    }
