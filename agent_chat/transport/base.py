"""传输层抽象接口。

会话控制器不直接依赖 httpx，而是依赖此处的协议：

- AgentTransport.open() 为一轮对话发起一次请求，立即返回 StreamHandle，
  请求本身作为 asyncio 任务在当前事件循环上运行。
- StreamListener 接收回调：若干 on_message，之后恰好一次 on_complete 或 on_error。
- StreamHandle.abort() 之后不会再有任何回调。
"""

import asyncio
from typing import Optional, Protocol
from uuid import uuid4

from agent_chat.domain.exceptions import BusinessError
from agent_chat.domain.frames import StreamFrame
from agent_chat.domain.models import AgentResponse


class StreamListener(Protocol):
    def on_message(self, frame: StreamFrame) -> None:
        ...

    def on_response(self, response: AgentResponse) -> None:
        """仅非流式传输会调用，在 on_complete 之前送达完整响应。"""

        ...

    def on_complete(self, server_conversation_id: Optional[str]) -> None:
        ...

    def on_error(self, error: BusinessError) -> None:
        ...


class StreamHandle:
    """一次请求的句柄，负责保证回调的顺序与“恰好一次”的终止语义。"""

    def __init__(self, listener: StreamListener):
        self.id = f"s-{uuid4().hex}"
        self._listener = listener
        self._task: Optional[asyncio.Task] = None
        self._aborted = False
        self._finished = False

    @property
    def active(self) -> bool:
        return not (self._aborted or self._finished)

    @property
    def aborted(self) -> bool:
        return self._aborted

    def attach(self, task: asyncio.Task) -> None:
        self._task = task

    def abort(self) -> None:
        """幂等；终止事件之后调用为空操作。"""

        if not self.active:
            return
        self._aborted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        """等待底层任务结束（包括被取消），不抛出取消异常。"""

        if self._task is not None:
            await asyncio.wait({self._task})

    def deliver(self, frame: StreamFrame) -> None:
        if self.active:
            self._listener.on_message(frame)

    def deliver_response(self, response: AgentResponse) -> None:
        if self.active:
            self._listener.on_response(response)

    def complete(self, server_conversation_id: Optional[str]) -> None:
        if not self.active:
            return
        self._finished = True
        self._listener.on_complete(server_conversation_id)

    def fail(self, error: BusinessError) -> None:
        if not self.active:
            return
        self._finished = True
        self._listener.on_error(error)


class AgentTransport(Protocol):
    """Agent 服务传输协议。

    实现者需要提供：
    - name: 传输名称，用于日志。
    - open(task, conversation_id, listener): 发起一轮请求并返回句柄。
    """

    name: str

    def open(
        self,
        task: str,
        conversation_id: Optional[str],
        listener: StreamListener,
    ) -> StreamHandle:
        ...
