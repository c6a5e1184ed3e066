from datetime import datetime, timezone

from agent_chat.domain.models import AgentResponse, Conversation, Message, StepType


def test_models_exist():
    now = datetime.now(timezone.utc)
    conv = Conversation(id="c1", title="t", created_at=now)
    assert conv.server_id is None
    assert conv.messages == []
    msg = Message(id="m1", role="assistant", content="", created_at=now, streaming=True)
    assert msg.outcome is None
    assert msg.thought_steps == []


def test_step_type_parse():
    assert StepType.parse("observation") == StepType.OBSERVATION
    assert StepType.parse("PLAN") == StepType.GENERIC
    assert StepType.parse(None) == StepType.GENERIC


def test_agent_response_tolerates_missing_fields():
    res = AgentResponse.from_payload({"success": False, "errorMessage": "timeout", "thoughtSteps": None})
    assert res.success is False
    assert res.error_message == "timeout"
    assert res.thought_steps == []
    assert res.token_stats is None
    assert res.conversation_id is None


def test_agent_response_non_numeric_token_stats_count_as_zero():
    res = AgentResponse.from_payload({"success": True, "tokenStats": {"totalTokens": "n/a", "inputTokens": "12"}})
    assert res.token_stats.total_tokens == 0
    assert res.token_stats.input_tokens == 12
    assert res.token_stats.output_tokens == 0
