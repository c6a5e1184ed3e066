"""Agent 服务传输层。

该包下的模块负责：
- 定义传输抽象与句柄 (base)。
- 维护端点与请求构造 (registry)。
- 解析 SSE 帧 (sse_parser)。
- 提供流式与非流式的具体实现 (stream_client、execute_client)。
"""

from typing import Optional

from agent_chat.config.settings import settings
from agent_chat.transport.base import AgentTransport, StreamHandle, StreamListener
from agent_chat.transport.execute_client import AgentExecuteTransport
from agent_chat.transport.stream_client import AgentStreamTransport


def create_transport(config=None) -> AgentTransport:
    """根据配置创建传输实例，默认使用流式接口。"""

    cfg = config or settings
    if getattr(cfg, "streaming_enabled", True):
        return AgentStreamTransport(cfg)
    return AgentExecuteTransport(cfg)


__all__ = [
    "AgentTransport",
    "StreamHandle",
    "StreamListener",
    "AgentStreamTransport",
    "AgentExecuteTransport",
    "create_transport",
]
