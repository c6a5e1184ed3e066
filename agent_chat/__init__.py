"""Agent Chat 顶层包。

该包是远程 ReAct Agent 的客户端会话管理核心：
每轮对话打开一个可取消的流式请求，把 content / tool_call / tool_result /
error 事件折叠进进程内的会话模型，并负责会话 id 的对齐与消息的最终状态。
"""

from agent_chat.infrastructure.storage.memory_store import InMemoryConversationStore
from agent_chat.session.controller import SessionController

__all__ = ["InMemoryConversationStore", "SessionController"]
