"""Agent 服务端点配置。

同一能力有两个端点：流式的 /stream（SSE）与旧版非流式的 /execute（JSON）。
两者请求体一致，集中在这里构造，传输实现只关心如何读取响应。"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class EndpointConfig:
    """单个端点的配置。"""

    path: str
    accept: str


STREAM_ENDPOINT = EndpointConfig(
    path="/api/agent/stream",
    accept="text/event-stream",
)

EXECUTE_ENDPOINT = EndpointConfig(
    path="/api/agent/execute",
    accept="application/json",
)


def build_url(settings, endpoint: EndpointConfig) -> str:
    base = getattr(settings, "agent_base_url", None) or "http://localhost:8080"
    return f"{base.rstrip('/')}{endpoint.path}"


def build_headers(settings, endpoint: EndpointConfig) -> Dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "Accept": endpoint.accept,
    }
    api_key = getattr(settings, "agent_api_key", None)
    if api_key:
        headers["X-API-Key"] = api_key
    return headers


def build_payload(task: str, conversation_id: Optional[str]) -> Dict[str, Any]:
    """首轮对话不携带 conversationId，由服务端新建会话。"""

    payload: Dict[str, Any] = {"task": task}
    if conversation_id:
        payload["conversationId"] = conversation_id
    return payload
