"""流式协议的帧模型。"""

from dataclasses import dataclass
from enum import Enum


class FrameType(str, Enum):
    CONTENT = "content"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    ERROR = "error"
    # 流结束帧，data 为服务端会话 id
    END = "end"


@dataclass(frozen=True)
class StreamFrame:
    type: FrameType
    data: str = ""
