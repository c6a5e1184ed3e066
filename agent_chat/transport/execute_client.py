"""非流式传输实现（旧版 /api/agent/execute 接口）。

一次请求直接返回完整 JSON：

    {finalAnswer|errorMessage, success, thoughtSteps, tokenStats, conversationId}

为了让会话控制器只维护一套状态机，这里沿用 StreamHandle 的回调契约：
先通过 on_response 送达完整结果，再以 conversationId 调用 on_complete。
"""

import asyncio
import logging
from typing import Optional

import httpx

from agent_chat.domain.exceptions import ApiError, BusinessError, NetworkError, RateLimitError, ValidationError
from agent_chat.domain.models import AgentResponse
from agent_chat.infrastructure.logging.logger import log_event
from agent_chat.transport.base import StreamHandle, StreamListener
from agent_chat.transport.registry import EXECUTE_ENDPOINT, build_headers, build_payload, build_url


class AgentExecuteTransport:
    name = "execute"

    def __init__(self, settings, http_transport: Optional[httpx.AsyncBaseTransport] = None):
        self._settings = settings
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

    async def _run(self, handle: StreamHandle, task: str, conversation_id: Optional[str]) -> None:
        log_ctx = {"session_id": handle.id, "server_conversation_id": conversation_id}
        url = build_url(self._settings, EXECUTE_ENDPOINT)
        timeout = httpx.Timeout(
            getattr(self._settings, "execute_timeout", 120.0),
            connect=getattr(self._settings, "connect_timeout", 10.0),
        )
        log_event(logging.INFO, "Calling agent execute", log_ctx, url=url)
        try:
            async with httpx.AsyncClient(timeout=timeout, trust_env=False, transport=self._http_transport) as client:
                resp = await client.post(
                    url,
                    json=build_payload(task, conversation_id),
                    headers=build_headers(self._settings, EXECUTE_ENDPOINT),
                )
            if resp.status_code == 429:
                raise RateLimitError(code="RATE_LIMIT", message="Agent rate limit", http_status=429)
            if resp.status_code >= 400:
                raise ApiError(code="API_ERROR", message=resp.text or resp.reason_phrase, http_status=resp.status_code)
            try:
                data = resp.json()
            except ValueError:
                data = None
            if not isinstance(data, dict):
                raise ValidationError(code="INVALID_RESPONSE", message="Agent returned a non-object body")
            response = AgentResponse.from_payload(data)
            handle.deliver_response(response)
            handle.complete(response.conversation_id)
        except httpx.HTTPError as e:
            log_event(logging.WARNING, "Agent execute network error", log_ctx, error=str(e))
            handle.fail(NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__))
        except BusinessError as e:
            log_event(logging.WARNING, "Agent execute rejected", log_ctx, code=e.code, http_status=e.http_status)
            handle.fail(e)
        except Exception as e:
            log_event(logging.ERROR, "Agent execute crashed", log_ctx, error=repr(e))
            handle.fail(BusinessError(code="UNEXPECTED_ERROR", message=str(e) or type(e).__name__, http_status=500))
