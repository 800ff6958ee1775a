from replay_use.recording.config import CaptureTimings
from replay_use.recording.input_commit import (
    BLUR,
    KEYBOARD,
    POLLING,
    FieldSnapshot,
    InputCommitResolver,
)


def snap(value, selector="#user", focused=False, field_type="text"):
    return FieldSnapshot(selector=selector, value=value, field_type=field_type, tag_name="INPUT", is_focused=focused)


def test_first_sighting_is_a_baseline_for_polling():
    resolver = InputCommitResolver()
    state = resolver.observe(snap("prefilled"), now=0)
    assert not state.pending
    assert resolver.on_poll([snap("prefilled")], now=10_000) == []


def test_blur_commits_a_field_first_seen_at_blur():
    resolver = InputCommitResolver()
    decision = resolver.on_blur(snap("alice"), now=0)
    assert decision.reason == BLUR
    assert decision.value == "alice"
    assert resolver.on_blur(snap("alice"), now=100) is None


def test_blur_commits_a_value_a_poll_already_saw_while_focused():
    resolver = InputCommitResolver()
    resolver.on_poll([snap("alice", focused=True)], now=0)
    assert resolver.on_blur(snap("alice"), now=500).value == "alice"
    # Already committed, so polling stays quiet
    assert resolver.on_poll([snap("alice")], now=10_000) == []


def test_keyboard_commit_is_immediate_even_for_short_values():
    resolver = InputCommitResolver()
    decision = resolver.on_keyboard_commit(snap("a", focused=True), now=0)
    assert decision is not None
    assert decision.value == "a"
    assert decision.reason == KEYBOARD


def test_keyboard_commit_ignores_empty_fields():
    resolver = InputCommitResolver()
    assert resolver.on_keyboard_commit(snap("", focused=True), now=0) is None


def test_keyboard_commit_silences_blur_and_polling_during_cooldown():
    resolver = InputCommitResolver()
    resolver.observe(snap(""), now=0)
    assert resolver.on_keyboard_commit(snap("alice", focused=True), now=100).reason == KEYBOARD

    assert resolver.on_blur(snap("alice"), now=200) is None
    assert resolver.on_poll([snap("alice")], now=3000) == []


def test_repeated_enter_on_same_value_commits_once():
    resolver = InputCommitResolver()
    assert resolver.on_keyboard_commit(snap("alice", focused=True), now=0) is not None
    assert resolver.on_keyboard_commit(snap("alice", focused=True), now=500) is None
    # A different value is a new commit even inside the cooldown
    assert resolver.on_keyboard_commit(snap("alicia", focused=True), now=900).value == "alicia"


def test_polling_resumes_after_keyboard_cooldown_expires():
    resolver = InputCommitResolver()
    resolver.on_keyboard_commit(snap("alice", focused=True), now=0)
    resolver.on_poll([snap("alice2")], now=1000)
    # Changed at 1000, cooldown until 3000, change quiet until 3500, capture quiet until 3500
    assert resolver.on_poll([snap("alice2")], now=3400) == []
    decisions = resolver.on_poll([snap("alice2")], now=3600)
    assert [d.reason for d in decisions] == [POLLING]
    assert decisions[0].value == "alice2"


def test_blur_commits_pending_value_with_minimum_length():
    resolver = InputCommitResolver()
    resolver.observe(snap(""), now=0)
    assert resolver.on_blur(snap("x"), now=100) is None

    decision = resolver.on_blur(snap("bob"), now=200)
    assert decision.reason == BLUR
    assert decision.value == "bob"
    # Nothing pending after the commit
    assert resolver.on_blur(snap("bob"), now=300) is None


def test_poll_skips_focused_fields():
    resolver = InputCommitResolver()
    resolver.observe(snap(""), now=0)
    resolver.on_poll([snap("typing", focused=True)], now=100)
    assert resolver.on_poll([snap("typing", focused=True)], now=10_000) == []
    assert [d.value for d in resolver.on_poll([snap("typing")], now=10_100)] == ["typing"]


def test_poll_waits_for_change_quiet_window():
    resolver = InputCommitResolver()
    resolver.observe(snap(""), now=0)
    resolver.on_poll([snap("hello")], now=1000)
    assert resolver.on_poll([snap("hello")], now=3500) == []
    assert len(resolver.on_poll([snap("hello")], now=3501)) == 1


def test_poll_waits_for_capture_quiet_window():
    resolver = InputCommitResolver()
    resolver.observe(snap(""), now=0)
    resolver.on_blur(snap("ab"), now=0)
    resolver.on_poll([snap("abc")], now=100)
    assert resolver.on_poll([snap("abc")], now=2700) == []
    assert [d.value for d in resolver.on_poll([snap("abc")], now=3600)] == ["abc"]


def test_poll_does_not_recommit_unchanged_value():
    resolver = InputCommitResolver()
    resolver.observe(snap(""), now=0)
    resolver.on_blur(snap("final"), now=0)
    assert resolver.on_poll([snap("final")], now=100_000) == []


def test_custom_timings_are_honoured():
    timings = CaptureTimings(poll_change_quiet_ms=10, poll_capture_quiet_ms=10, min_commit_value_length=1)
    resolver = InputCommitResolver(timings)
    resolver.observe(snap(""), now=0)
    resolver.on_poll([snap("z")], now=5)
    assert [d.value for d in resolver.on_poll([snap("z")], now=20)] == ["z"]


def test_fields_are_tracked_independently():
    resolver = InputCommitResolver()
    resolver.observe(snap("", selector="#a"), now=0)
    resolver.observe(snap("", selector="#b"), now=0)
    resolver.on_keyboard_commit(snap("one", selector="#a", focused=True), now=100)
    assert resolver.on_blur(snap("two", selector="#b"), now=200).selector == "#b"


def test_from_payload_reads_camel_case_fields():
    snapshot = FieldSnapshot.from_payload(
        {"selector": "#pw", "value": "x", "fieldType": "password", "tagName": "INPUT", "isFocused": True}
    )
    assert snapshot == FieldSnapshot("#pw", "x", "password", "INPUT", True)
