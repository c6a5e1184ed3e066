import pytest

from agent_chat.domain.exceptions import BusinessError
from agent_chat.domain.frames import FrameType, StreamFrame
from agent_chat.domain.models import AgentResponse, Outcome, StepType, ThoughtStep, TokenStats
from agent_chat.infrastructure.storage.memory_store import (
    NO_RESPONSE_TEXT,
    STOPPED_ANNOTATION,
    InMemoryConversationStore,
)


def _frame(kind: FrameType, data: str) -> StreamFrame:
    return StreamFrame(type=kind, data=data)


def _turn(store, text="hello"):
    cid = store.create_conversation(text)
    store.append_user_message(cid, text)
    mid = store.begin_assistant_message(cid)
    return cid, mid


def test_title_is_truncated_to_thirty_chars():
    store = InMemoryConversationStore(title_max_chars=30)
    text = "hello world this is a very long first message exceeding thirty chars"
    cid = store.create_conversation(text)
    title = store.get_conversation(cid).title
    assert title == text[:30] + "..."
    assert len(title) == 33


def test_short_title_is_kept():
    store = InMemoryConversationStore(title_max_chars=30)
    cid = store.create_conversation("现在几点了？")
    assert store.get_conversation(cid).title == "现在几点了？"


def test_conversations_are_most_recent_first():
    store = InMemoryConversationStore()
    first = store.create_conversation("first")
    second = store.create_conversation("second")
    assert [c.id for c in store.list_conversations()] == [second, first]


def test_begin_assistant_message_starts_streaming():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    msgs = store.list_messages(cid)
    assert [m.role for m in msgs] == ["user", "assistant"]
    assert msgs[1].id == mid
    assert msgs[1].streaming is True
    assert msgs[1].outcome is None
    assert msgs[1].content == ""


def test_content_frames_concatenate_in_order():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    for part in ["25", " × 36", " = ", "900"]:
        assert store.apply_frame(cid, mid, _frame(FrameType.CONTENT, part))
    assert store.get_message(cid, mid).content == "25 × 36 = 900"


def test_tool_call_adds_log_line_and_action_step():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.apply_frame(cid, mid, _frame(FrameType.TOOL_CALL, "weather(city=北京)"))
    msg = store.get_message(cid, mid)
    assert msg.tool_log == ["Tool call: weather(city=北京)"]
    assert msg.thought_steps == [ThoughtStep(step_type=StepType.ACTION, content="weather(city=北京)")]


def test_tool_result_log_line_and_step_are_truncated():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    payload = "x" * 500
    store.apply_frame(cid, mid, _frame(FrameType.TOOL_RESULT, payload))
    msg = store.get_message(cid, mid)
    line = msg.tool_log[0]
    assert line == ("Tool result: " + payload)[:100] + "..."
    assert len(line) == 103
    step = msg.thought_steps[0]
    assert step.step_type == StepType.OBSERVATION
    assert step.content == "x" * 200 + "..."


def test_error_frame_marks_failure():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.apply_frame(cid, mid, _frame(FrameType.CONTENT, "partial"))
    store.apply_frame(cid, mid, _frame(FrameType.ERROR, "tool crashed"))
    msg = store.get_message(cid, mid)
    assert msg.content.startswith("partial")
    assert "tool crashed" in msg.content
    assert msg.outcome == Outcome.FAILURE
    # 成功完成也不能覆盖已失败的结果
    store.finalize_assistant_message(cid, mid, "srv-1", ok=True)
    assert store.get_message(cid, mid).outcome == Outcome.FAILURE


def test_finalize_is_idempotent():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.apply_frame(cid, mid, _frame(FrameType.CONTENT, "answer"))
    assert store.finalize_assistant_message(cid, mid, None, ok=True)
    msg = store.get_message(cid, mid)
    assert msg.outcome == Outcome.SUCCESS
    assert msg.streaming is False

    assert not store.finalize_assistant_message(cid, mid, None, ok=False)
    again = store.get_message(cid, mid)
    assert again.content == "answer"
    assert again.outcome == Outcome.SUCCESS


def test_empty_completion_is_soft_failure():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.finalize_assistant_message(cid, mid, "srv-1", ok=True)
    msg = store.get_message(cid, mid)
    assert msg.outcome == Outcome.FAILURE
    assert msg.content == NO_RESPONSE_TEXT
    store.finalize_assistant_message(cid, mid, "srv-1", ok=True)
    assert store.get_message(cid, mid).content == NO_RESPONSE_TEXT


def test_server_id_is_bound_only_once():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.apply_frame(cid, mid, _frame(FrameType.CONTENT, "a"))
    store.finalize_assistant_message(cid, mid, "srv-1", ok=True)
    store.append_user_message(cid, "again")
    mid2 = store.begin_assistant_message(cid)
    store.apply_frame(cid, mid2, _frame(FrameType.CONTENT, "b"))
    store.finalize_assistant_message(cid, mid2, "srv-2", ok=True)
    assert store.get_conversation(cid).server_id == "srv-1"


def test_mark_aborted_freezes_content():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.apply_frame(cid, mid, _frame(FrameType.CONTENT, "one "))
    store.apply_frame(cid, mid, _frame(FrameType.CONTENT, "two"))
    assert store.mark_aborted(cid, mid)

    assert not store.apply_frame(cid, mid, _frame(FrameType.CONTENT, " three"))
    assert not store.finalize_assistant_message(cid, mid, "srv-1", ok=True)
    assert not store.mark_aborted(cid, mid)

    msg = store.get_message(cid, mid)
    assert msg.content == "one two" + STOPPED_ANNOTATION
    assert msg.streaming is False
    assert msg.outcome is None
    assert store.get_conversation(cid).server_id is None


def test_frames_for_superseded_message_are_dropped():
    store = InMemoryConversationStore()
    cid, old = _turn(store)
    store.mark_aborted(cid, old)
    store.append_user_message(cid, "next")
    new = store.begin_assistant_message(cid)
    assert not store.apply_frame(cid, old, _frame(FrameType.CONTENT, "late"))
    assert store.apply_frame(cid, new, _frame(FrameType.CONTENT, "fresh"))
    assert store.get_message(cid, new).content == "fresh"


def test_frames_for_deleted_conversation_are_dropped():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.delete_conversation(cid)
    assert not store.apply_frame(cid, mid, _frame(FrameType.CONTENT, "late"))


def test_apply_response_matches_streamed_result():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    response = AgentResponse(
        success=True,
        final_answer="900",
        thought_steps=[ThoughtStep(step_type=StepType.THOUGHT, content="multiply")],
        token_stats=TokenStats(total_tokens=30, input_tokens=20, output_tokens=10),
        conversation_id="srv-9",
    )
    assert store.apply_response(cid, mid, response)
    store.finalize_assistant_message(cid, mid, response.conversation_id, ok=response.success)
    msg = store.get_message(cid, mid)
    assert msg.content == "900"
    assert msg.outcome == Outcome.SUCCESS
    assert msg.streaming is False
    assert msg.token_stats.total_tokens == 30
    assert store.thought_steps(cid)[0].content == "multiply"
    assert store.get_conversation(cid).server_id == "srv-9"


def test_apply_response_failure_uses_error_message():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.apply_response(cid, mid, AgentResponse(success=False, error_message="LLM unavailable"))
    store.finalize_assistant_message(cid, mid, None, ok=True)
    msg = store.get_message(cid, mid)
    assert msg.content == "LLM unavailable"
    assert msg.outcome == Outcome.FAILURE


def test_failed_response_without_text_gets_fallback():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    store.apply_response(cid, mid, AgentResponse(success=False))
    assert store.finalize_assistant_message(cid, mid, None, ok=False)
    msg = store.get_message(cid, mid)
    assert msg.content == NO_RESPONSE_TEXT
    assert msg.outcome == Outcome.FAILURE
    assert msg.streaming is False


def test_delete_clears_active_selection():
    store = InMemoryConversationStore()
    cid = store.create_conversation("x")
    other = store.create_conversation("y")
    store.set_active(cid)
    store.delete_conversation(other)
    assert store.active_conversation_id == cid
    store.delete_conversation(cid)
    assert store.active_conversation_id is None
    assert store.list_conversations() == []


def test_unknown_conversation_raises():
    store = InMemoryConversationStore()
    with pytest.raises(BusinessError) as exc:
        store.append_user_message("c-missing", "hi")
    assert exc.value.code == "CONVERSATION_NOT_FOUND"
    with pytest.raises(BusinessError):
        store.delete_conversation("c-missing")


def test_snapshots_are_read_only_copies():
    store = InMemoryConversationStore()
    cid, mid = _turn(store)
    snapshot = store.list_messages(cid)
    snapshot[1].content = "tampered"
    assert store.get_message(cid, mid).content == ""


def test_subscribers_are_notified_until_unsubscribed():
    store = InMemoryConversationStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)
    cid = store.create_conversation("x")
    store.append_user_message(cid, "x")
    unsubscribe()
    store.begin_assistant_message(cid)
    assert seen == [cid, cid]
