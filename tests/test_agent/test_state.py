import pytest

from coworkbot.content import Message, Stage, TextBlock, ToolResultBlock, ToolUseBlock
from coworkbot.events import EventDispatcher, EventType
from coworkbot.state import ConversationState


class Recorder:
    def __init__(self):
        self.events = []

    def on_event(self, event):
        self.events.append(event)

    def of(self, event_type):
        return [event.payload for event in self.events if event.type == event_type]


def make_state(max_history=200):
    recorder = Recorder()
    return ConversationState(EventDispatcher([recorder]), max_history=max_history), recorder


def test_append_assigns_ids_and_publishes_history():
    state, recorder = make_state()

    message = state.append(Message(role="user", content="hello"))

    assert message.id
    published = recorder.of(EventType.HISTORY_CHANGED)
    assert published[-1]["messages"] == [{"id": message.id, "role": "user", "content": "hello"}]


def test_history_never_exceeds_cap():
    state, _ = make_state(max_history=5)

    for i in range(20):
        state.append(Message(role="user" if i % 2 == 0 else "assistant", content=str(i)))
        assert len(state) <= 5


def test_trim_keeps_newest_and_starts_with_user_turn():
    state, _ = make_state(max_history=3)
    for role, text in [("user", "u1"), ("assistant", "a1"), ("user", "u2"), ("assistant", "a2")]:
        state.append(Message(role=role, content=text))

    assert [m.text() for m in state.messages] == ["u2", "a2"]


def test_trim_never_leaves_a_dangling_tool_result():
    state, _ = make_state(max_history=4)
    state.append(Message(role="user", content="start"))
    state.append(Message(role="assistant", content=[ToolUseBlock(id="t1", name="read_file", input={})]))
    state.append(Message(role="user", content=[ToolResultBlock(tool_use_id="t1", content="ok")]))
    state.append(Message(role="assistant", content=[TextBlock("done")]))
    state.append(Message(role="user", content="next"))

    messages = state.messages
    assert messages[0].role == "user"
    assert not messages[0].is_tool_result_turn()
    assert [m.text() for m in messages] == ["next"]


def test_tool_loop_longer_than_cap_keeps_its_request():
    state, _ = make_state(max_history=3)
    state.append(Message(role="user", content="fix the build"))
    for i in range(2):
        state.append(Message(role="assistant", content=[ToolUseBlock(id=f"c{i}", name="run_command", input={})]))
        state.append(Message(role="user", content=[ToolResultBlock(tool_use_id=f"c{i}", content="ok")]))

    messages = state.messages
    assert messages[0].text() == "fix the build"
    assert len(messages) == 5
    for previous, message in zip(messages, messages[1:]):
        if message.is_tool_result_turn():
            calls = {block.id for block in previous.content if isinstance(block, ToolUseBlock)}
            assert previous.role == "assistant"
            assert {block.tool_use_id for block in message.content} <= calls

    state.append(Message(role="assistant", content="fixed"))
    state.append(Message(role="user", content="thanks"))

    assert [m.text() for m in state.messages] == ["thanks"]


def test_set_stage_is_silent_when_unchanged_without_detail():
    state, recorder = make_state()

    state.set_stage(Stage.THINKING)
    state.set_stage(Stage.THINKING)
    state.set_stage(Stage.THINKING, {"iteration": 2})

    assert recorder.of(EventType.STAGE_CHANGED) == [
        {"stage": "THINKING"},
        {"stage": "THINKING", "detail": {"iteration": 2}},
    ]


def test_truncate_from_removes_message_and_everything_after():
    state, _ = make_state()
    ids = [state.append(Message(role="user", content=str(i))).id for i in range(4)]

    removed = state.truncate_from(ids[1])

    assert [m.text() for m in removed] == ["1", "2", "3"]
    assert [m.text() for m in state.messages] == ["0"]
    assert state.truncate_from("unknown") == []


def test_load_replaces_history_and_clears_artifacts():
    state, _ = make_state(max_history=2)
    state.add_artifact("/tmp/a.txt", "a.txt", "txt")

    state.load(
        [
            Message(role="user", content="old"),
            Message(role="assistant", content="reply"),
            Message(role="user", content="new"),
        ]
    )

    assert [m.text() for m in state.messages] == ["new"]
    assert all(m.id for m in state.messages)
    assert state.artifacts == []


def test_add_artifact_notifies_observers():
    state, recorder = make_state()

    artifact = state.add_artifact("/work/report.md", "report.md", "md")

    payload = recorder.of(EventType.ARTIFACT_CREATED)[0]
    assert payload["path"] == "/work/report.md"
    assert payload["createdAt"] == artifact.created_at
    assert state.stats()["artifact_count"] == 1


def test_messages_snapshot_is_a_copy():
    state, _ = make_state()
    state.append(Message(role="user", content="hello"))

    snapshot = state.messages
    snapshot.clear()

    assert len(state) == 1


def test_max_history_must_be_positive():
    with pytest.raises(ValueError):
        ConversationState(max_history=0)


def test_message_round_trips_through_dict():
    message = Message(
        role="assistant",
        content=[TextBlock("hi"), ToolUseBlock(id="t1", name="echo", input={"text": "x"})],
        id="m1",
    )

    assert Message.from_dict(message.to_dict()) == message
