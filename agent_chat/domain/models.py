"""会话与消息的统一数据模型。

本模块定义了客户端内部共享的标准数据结构：

- Conversation: 一个会话，包含本地 id 与服务端 id 的对应关系。
- Message: 一条 user/assistant 消息，assistant 消息在流式期间可变。
- ThoughtStep: Agent 推理轨迹中的一步（THOUGHT/ACTION/OBSERVATION）。
- AgentResponse: 非流式 /execute 接口返回的完整结果。

这些对象只允许由 ConversationStore 修改，展示层拿到的是 snapshot 副本。
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional


# 消息角色只有两种，与 Agent 服务端的对话记录保持一致
Role = Literal["user", "assistant"]


class StepType(str, Enum):
    THOUGHT = "THOUGHT"
    ACTION = "ACTION"
    OBSERVATION = "OBSERVATION"
    GENERIC = "GENERIC"

    @classmethod
    def parse(cls, raw: Any) -> "StepType":
        """服务端未识别的类型统一落到 GENERIC。"""

        try:
            return cls(str(raw).upper())
        except ValueError:
            return cls.GENERIC


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class ThoughtStep:
    step_type: StepType
    content: str


@dataclass
class TokenStats:
    """非流式接口返回的 token 统计信息。"""

    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0


def _as_int(value: Any) -> int:
    # 统计字段只用于展示，非数字时记为 0
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class Message:
    """一条对话消息。

    - streaming: 流仍在进行时为 True，finalize / abort 后置为 False。
    - outcome: 流式期间为 None，结束后为 success/failure（用户停止时保持原值）。
    - tool_log: 工具调用的可读日志行，只追加。
    """

    id: str
    role: Role
    content: str
    created_at: datetime
    streaming: bool = False
    outcome: Optional[Outcome] = None
    thought_steps: List[ThoughtStep] = field(default_factory=list)
    tool_log: List[str] = field(default_factory=list)
    token_stats: Optional[TokenStats] = None


@dataclass
class Conversation:
    """一个会话。

    id 为客户端本地生成，生命周期内不变；server_id 为 Agent 服务端
    在首次成功响应中返回的会话 id，只绑定一次。
    """

    id: str
    title: str
    created_at: datetime
    server_id: Optional[str] = None
    messages: List[Message] = field(default_factory=list)


@dataclass
class AgentResponse:
    """/api/agent/execute 的完整响应（非流式旧接口）。"""

    success: bool
    final_answer: Optional[str] = None
    error_message: Optional[str] = None
    thought_steps: List[ThoughtStep] = field(default_factory=list)
    token_stats: Optional[TokenStats] = None
    conversation_id: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AgentResponse":
        """将服务端 camelCase JSON 解析为 AgentResponse。"""

        steps = []
        for raw in data.get("thoughtSteps") or []:
            if not isinstance(raw, dict):
                continue
            steps.append(
                ThoughtStep(
                    step_type=StepType.parse(raw.get("stepType")),
                    content=str(raw.get("content") or ""),
                )
            )
        stats_raw = data.get("tokenStats")
        stats = None
        if isinstance(stats_raw, dict):
            stats = TokenStats(
                total_tokens=_as_int(stats_raw.get("totalTokens")),
                input_tokens=_as_int(stats_raw.get("inputTokens")),
                output_tokens=_as_int(stats_raw.get("outputTokens")),
            )
        return cls(
            success=bool(data.get("success")),
            final_answer=data.get("finalAnswer"),
            error_message=data.get("errorMessage"),
            thought_steps=steps,
            token_stats=stats,
            conversation_id=data.get("conversationId"),
        )
