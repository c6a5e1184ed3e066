"""Server-Sent Events 帧解析器。

服务端以 SSE 格式推送事件：

    event: content
    data: 你好

    event: end
    data: <conversationId>

空行是帧边界。没有 event 字段的帧，其 data 按 JSON 对象
{"type": ..., "data": ...} 解析。缺少类型、JSON 损坏或类型未知的帧
会被静默丢弃。按行切分由 httpx 的 aiter_lines 完成，这里逐行累积字段，
直到收到完整的帧边界。
"""

import json
from typing import List, Optional

from agent_chat.domain.frames import FrameType, StreamFrame


class SseFrameParser:
    def __init__(self):
        self._event: Optional[str] = None
        self._data: List[str] = []

    def feed_line(self, line: str) -> Optional[StreamFrame]:
        """处理一行完整的输入（不含换行符），遇到帧边界时返回解析出的帧。"""

        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value.strip() or None
        elif field == "data":
            self._data.append(value)
        # id / retry 等字段对本客户端无意义
        return None

    def flush(self) -> List[StreamFrame]:
        """输入结束时调用，处理最后一个没有以空行结尾的帧。"""

        frame = self._dispatch()
        return [frame] if frame is not None else []

    def _dispatch(self) -> Optional[StreamFrame]:
        event, data = self._event, self._data
        self._event, self._data = None, []
        if event is None and not data:
            return None
        payload = "\n".join(data)
        if event is None:
            return self._decode_json_frame(payload)
        return self._build(event, payload)

    def _decode_json_frame(self, payload: str) -> Optional[StreamFrame]:
        try:
            obj = json.loads(payload)
        except json.JSONDecodeError:
            return None
        if not isinstance(obj, dict) or "type" not in obj:
            return None
        raw = obj.get("data")
        if raw is None:
            raw = ""
        elif not isinstance(raw, str):
            raw = json.dumps(raw, ensure_ascii=False)
        return self._build(str(obj["type"]), raw)

    @staticmethod
    def _build(event: str, data: str) -> Optional[StreamFrame]:
        try:
            frame_type = FrameType(event.lower())
        except ValueError:
            return None
        return StreamFrame(type=frame_type, data=data)
