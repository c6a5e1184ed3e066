"""流式传输实现。

本模块负责：

1. 把一轮对话的 task / conversationId 转成 /api/agent/stream 的 POST 请求。
2. 用 aiter_lines 逐行读取 SSE 响应，交给 SseFrameParser 解析为 StreamFrame。
3. 通过 StreamHandle 把帧按顺序送给监听者，并在流结束时送出唯一的终止事件。
4. 把网络错误、限流与服务端错误统一包装为 domain.exceptions 中的业务异常。
"""

import asyncio
import logging
from typing import Optional

import httpx

from agent_chat.domain.exceptions import ApiError, BusinessError, NetworkError, RateLimitError
from agent_chat.domain.frames import FrameType
from agent_chat.infrastructure.logging.logger import log_event
from agent_chat.transport.base import StreamHandle, StreamListener
from agent_chat.transport.registry import STREAM_ENDPOINT, build_headers, build_payload, build_url
from agent_chat.transport.sse_parser import SseFrameParser


class AgentStreamTransport:
    """流式 Agent 传输。

    - name: 传输名称（供日志/调试使用）。
    - open: 对外统一调用入口，返回 StreamHandle。
    """

    name = "stream"

    def __init__(self, settings, http_transport: Optional[httpx.AsyncBaseTransport] = None):
        # Settings 里包含 agent_base_url、api_key、超时等配置
        self._settings = settings
        # 测试时注入 httpx.MockTransport
        self._http_transport = http_transport

    def open(
        self,
        task: str,
        conversation_id: Optional[str],
        listener: StreamListener,
    ) -> StreamHandle:
        handle = StreamHandle(listener)
        loop = asyncio.get_running_loop()
        handle.attach(loop.create_task(self._run(handle, task, conversation_id)))
        return handle

    def _client(self) -> httpx.AsyncClient:
        # 流式读取不设读超时，会话一直持续到完成、出错或被中止
        timeout = httpx.Timeout(None, connect=getattr(self._settings, "connect_timeout", 10.0))
        return httpx.AsyncClient(timeout=timeout, trust_env=False, transport=self._http_transport)

    async def _run(self, handle: StreamHandle, task: str, conversation_id: Optional[str]) -> None:
        log_ctx = {"session_id": handle.id, "server_conversation_id": conversation_id}
        url = build_url(self._settings, STREAM_ENDPOINT)
        parser = SseFrameParser()
        server_id: Optional[str] = None
        log_event(logging.INFO, "Opening agent stream", log_ctx, url=url)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    url,
                    json=build_payload(task, conversation_id),
                    headers=build_headers(self._settings, STREAM_ENDPOINT),
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="Agent rate limit", http_status=429)
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        raise ApiError(code="API_ERROR", message=body or resp.reason_phrase, http_status=resp.status_code)
                    ended = False
                    async for line in resp.aiter_lines():
                        frame = parser.feed_line(line)
                        if frame is None:
                            continue
                        if frame.type == FrameType.END:
                            server_id = frame.data or None
                            ended = True
                            break
                        handle.deliver(frame)
                    if not ended:
                        for frame in parser.flush():
                            if frame.type == FrameType.END:
                                server_id = frame.data or None
                            else:
                                handle.deliver(frame)
            handle.complete(server_id)
        except httpx.HTTPError as e:
            # 网络错误：DNS 失败、连接超时、读取中断等
            log_event(logging.WARNING, "Agent stream network error", log_ctx, error=str(e))
            handle.fail(NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__))
        except BusinessError as e:
            log_event(logging.WARNING, "Agent stream rejected", log_ctx, code=e.code, http_status=e.http_status)
            handle.fail(e)
        except Exception as e:
            # 监听者回调或 URL 构造等处的意外错误，同样要以终止事件结束本轮
            log_event(logging.ERROR, "Agent stream crashed", log_ctx, error=repr(e))
            handle.fail(BusinessError(code="UNEXPECTED_ERROR", message=str(e) or type(e).__name__, http_status=500))
