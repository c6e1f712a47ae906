"""Contract tests for turn/segment grouping."""

from forkpoint.transcripts.activity import activity_for_records
from forkpoint.transcripts.grouping import group_by_turn, is_turn_complete
from tests.fixtures import (
    make_assistant_record,
    make_init_record,
    make_tool_result_record,
    make_user_record,
    scenario_b_records,
    text_block,
    thinking_block,
    to_records,
    tool_result_block,
    tool_use_block,
)


class TestExampleScenarios:
    def test_scenario_a_single_text_reply(self):
        """[init, user "hi", assistant(text "hello")]: one turn, one segment, no activity."""
        turns = group_by_turn(to_records([
            make_init_record(),
            make_user_record("hi", seconds=1),
            make_assistant_record("hello", seconds=2),
        ]))

        assert len(turns) == 1
        assert len(turns[0].segments) == 1
        segment = turns[0].segments[0]
        assert segment.text_output.text == "hello"
        assert segment.activity_messages == []
        assert activity_for_records(segment.activity_messages) == []

    def test_scenario_b_tool_then_text(self):
        """[init, user, assistant(tool_use Read), user(tool_result), assistant(text "done")]."""
        turns = group_by_turn(to_records(scenario_b_records()))

        assert len(turns) == 1
        assert len(turns[0].segments) == 1
        segment = turns[0].segments[0]
        assert segment.text_output.text == "done"
        assert len(segment.activity_messages) == 2

        activity = activity_for_records(segment.activity_messages)
        assert [e.type for e in activity] == ["tool_start", "tool_complete"]
        assert activity[0].tool == activity[1].tool == "Read"
        assert activity[1].duration_ms == 1500


class TestSegments:
    def test_activity_between_texts_splits_segments(self):
        turns = group_by_turn(to_records([
            make_user_record("fix it", seconds=0),
            make_assistant_record("Looking.", seconds=1),
            make_assistant_record([tool_use_block("Edit")], seconds=2),
            make_tool_result_record(tool_result_block(), seconds=3),
            make_assistant_record("Fixed.", seconds=4),
        ]))
        segments = turns[0].segments
        assert [s.text_output.text for s in segments] == ["Looking.", "Fixed."]
        assert segments[0].activity_messages == []
        assert len(segments[1].activity_messages) == 2

    def test_thinking_in_same_record_as_text_stays_with_text(self):
        turns = group_by_turn(to_records([
            make_user_record("q", seconds=0),
            make_assistant_record([thinking_block("hmm"), text_block("answer")], seconds=1),
        ]))
        segments = turns[0].segments
        assert len(segments) == 1
        assert segments[0].text_output.text == "answer"

    def test_continuation_records_merge_into_one_segment(self):
        """Three records of one logical reply group into exactly one segment."""
        turns = group_by_turn(to_records([
            make_user_record("explain", seconds=0),
            make_assistant_record("Part one.", seconds=1),
            make_assistant_record("Part two.", seconds=2, isContinuation=True),
            make_assistant_record("Part three.", seconds=3, isContinuation=True),
        ]))
        segments = turns[0].segments
        assert len(segments) == 1
        assert len(segments[0].continuations) == 2
        assert segments[0].text == "Part one.\nPart two.\nPart three."

    def test_shared_message_id_merges(self):
        turns = group_by_turn(to_records([
            make_user_record("q", seconds=0),
            make_assistant_record("A", seconds=1, message_id="msg_1"),
            make_assistant_record("B", seconds=1, message_id="msg_1"),
        ]))
        assert len(turns[0].segments) == 1

    def test_continuation_after_activity_starts_new_segment(self):
        turns = group_by_turn(to_records([
            make_user_record("q", seconds=0),
            make_assistant_record("A", seconds=1, message_id="msg_1"),
            make_assistant_record([tool_use_block()], seconds=2, message_id="msg_1"),
            make_tool_result_record(tool_result_block(), seconds=3),
            make_assistant_record("B", seconds=4, isContinuation=True),
        ]))
        assert len(turns[0].segments) == 2

    def test_text_output_uuids_are_distinct(self):
        repeated = make_assistant_record("again", seconds=2, uuid="a-dup")
        turns = group_by_turn(to_records([
            make_user_record("q", seconds=0),
            make_assistant_record("one", seconds=1, uuid="a-1"),
            make_assistant_record([tool_use_block()], seconds=2),
            make_tool_result_record(tool_result_block(), seconds=3),
            repeated,
            make_assistant_record([tool_use_block()], seconds=4),
            make_tool_result_record(tool_result_block(), seconds=5),
            repeated,
        ]))
        uuids = [s.text_output.uuid for s in turns[0].segments]
        assert uuids == ["a-1", "a-dup"]
        assert len(set(uuids)) == len(uuids)


class TestTurns:
    def test_new_turn_at_each_user_input(self):
        turns = group_by_turn(to_records([
            make_init_record(),
            make_user_record("one", seconds=1, uuid="u-1"),
            make_assistant_record("r1", seconds=2),
            make_user_record("two", seconds=3, uuid="u-2"),
            make_assistant_record("r2", seconds=4),
        ]))
        assert [t.user_input.uuid for t in turns] == ["u-1", "u-2"]
        assert [t.segments[0].text_output.text for t in turns] == ["r1", "r2"]

    def test_tool_results_and_meta_do_not_start_turns(self):
        turns = group_by_turn(to_records([
            make_user_record("go", seconds=0),
            make_user_record("<system-reminder>", seconds=0.5, isMeta=True),
            make_assistant_record([tool_use_block()], seconds=1),
            make_tool_result_record(tool_result_block(), seconds=2),
            make_assistant_record("ok", seconds=3),
        ]))
        assert len(turns) == 1

    def test_records_before_first_user_input_are_ignored(self):
        turns = group_by_turn(to_records([
            make_assistant_record("stray", seconds=0),
            make_user_record("hi", seconds=1),
            make_assistant_record("hello", seconds=2),
        ]))
        assert len(turns) == 1
        assert turns[0].segments[0].text_output.text == "hello"

    def test_in_flight_reply_is_not_a_segment(self):
        turns = group_by_turn(to_records([
            make_user_record("build", seconds=0),
            make_assistant_record([tool_use_block("Bash")], seconds=1),
        ]))
        turn = turns[0]
        assert turn.segments == []
        assert len(turn.trailing_activity) == 1
        assert not is_turn_complete(turn)

    def test_turn_complete_once_text_closes_activity(self):
        turns = group_by_turn(to_records(scenario_b_records()))
        assert is_turn_complete(turns[0])

    def test_activity_after_last_text_is_trailing(self):
        turns = group_by_turn(to_records([
            make_user_record("q", seconds=0),
            make_assistant_record("thinking about it", seconds=1),
            make_assistant_record([tool_use_block()], seconds=2),
        ]))
        turn = turns[0]
        assert len(turn.segments) == 1
        assert len(turn.trailing_activity) == 1
        assert not turn.is_complete

    def test_all_message_uuids_in_order(self):
        turns = group_by_turn(to_records([
            make_user_record("q", seconds=0, uuid="u"),
            make_assistant_record([tool_use_block()], seconds=1, uuid="a-tool"),
            make_tool_result_record(tool_result_block(), seconds=2, uuid="r"),
            make_assistant_record("one", seconds=3, uuid="a-text"),
            make_assistant_record("two", seconds=4, uuid="a-cont", isContinuation=True),
        ]))
        assert turns[0].all_message_uuids == ["u", "a-tool", "r", "a-text", "a-cont"]

    def test_empty_input(self):
        assert group_by_turn([]) == []


def without_uuid(record: dict) -> dict:
    return {k: v for k, v in record.items() if k != "uuid"}


class TestRecordIdentity:
    def test_records_without_uuid_or_offset_are_all_kept(self):
        turns = group_by_turn(to_records([
            without_uuid(make_user_record("hi", seconds=0)),
            make_assistant_record([tool_use_block()], seconds=1, uuid="a1"),
            without_uuid(make_tool_result_record(tool_result_block(), seconds=2)),
            without_uuid(make_assistant_record("first", seconds=3)),
            without_uuid(make_assistant_record([tool_use_block("Bash")], seconds=4)),
            without_uuid(make_assistant_record("second", seconds=5)),
        ]))

        assert len(turns) == 1
        segments = turns[0].segments
        assert [s.text_output.text for s in segments] == ["first", "second"]
        assert [len(s.activity_messages) for s in segments] == [2, 1]
        assert turns[0].all_message_uuids == ["a1"]

    def test_repeated_uuid_is_skipped(self):
        reply = make_assistant_record("hello", seconds=2, uuid="a-1")
        turns = group_by_turn(to_records([
            make_user_record("hi", seconds=1), reply, reply,
        ]))
        assert len(turns[0].segments) == 1
