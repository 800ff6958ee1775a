import pytest

from conftest import FakePage
from replay_use.browser.views import Viewport
from replay_use.exceptions import InvalidSeekIndexError, PlaybackAlreadyActiveError
from replay_use.playback.service import PlaybackService, compute_inter_event_delay, map_key
from replay_use.playback.views import PlaybackConfig
from replay_use.recording.views import Recording, RecordingConfig, RecordingMetadata, build_event

START = 1_700_000_000_000


def make_recording(*specs, gap=10):
    """Build a stopped recording from (type, fields) pairs spaced `gap` ms apart."""
    recording = Recording.create("s1", RecordingConfig(), start_time=START)
    recording.metadata = RecordingMetadata(initial_url="https://x.test/", viewport=Viewport(width=800, height=600))
    for i, (event_type, fields) in enumerate(specs):
        recording.events.append(build_event(event_type, timestamp=START + (i + 1) * gap, **fields))
    recording.status = "stopped"
    recording.end_time = START + (len(specs) + 1) * gap
    recording.duration = recording.end_time - START
    return recording


def login_recording():
    return make_recording(
        ("page_load", {}),
        ("type", {"selector": "#user", "value": "alice"}),
        ("click", {"selector": "#submit"}),
    )


def driving_calls(page):
    return [c for c in page.calls if c[0] not in ("navigate", "set_viewport")]


def test_inter_event_delay_is_clamped():
    a = build_event("click", timestamp=0, selector="#a")
    assert compute_inter_event_delay(a, build_event("click", timestamp=20, selector="#b")) == 100
    assert compute_inter_event_delay(a, build_event("click", timestamp=60_000, selector="#b")) == 5000
    assert compute_inter_event_delay(a, build_event("click", timestamp=1000, selector="#b")) == 1000
    assert compute_inter_event_delay(a, build_event("click", timestamp=1000, selector="#b"), speed=2) == 500
    assert compute_inter_event_delay(a, build_event("click", timestamp=1000, selector="#b"), speed=100) == 100


def test_map_key():
    assert map_key("Esc") == "Escape"
    assert map_key("Enter") == "Enter"
    with pytest.raises(ValueError):
        map_key("")


async def test_playback_replays_events_in_order(page, broadcasts):
    player = PlaybackService(page, login_recording(), broadcast=broadcasts)
    await player.start_playback()
    await player.wait_until_done()

    assert page.calls[:2] == [("navigate", "https://x.test/"), ("set_viewport", 800, 600)]
    assert driving_calls(page) == [
        ("wait_for_selector", "body"),
        ("click", "#user"),
        ("select_all", "#user"),
        ("type", "#user", "alice"),
        ("click", "#submit"),
    ]
    state = player.get_status()
    assert state.status == "stopped"
    assert not state.is_playing
    assert broadcasts.types()[0] == "playback_status"
    assert broadcasts.types()[-1] == "playback_complete"


async def test_every_event_type_has_a_replay_action(page):
    recording = make_recording(
        ("click", {"coordinates": {"x": 1, "y": 2}}),
        ("navigation", {"url": "https://x.test/next"}),
        ("scroll", {"coordinates": {"x": 0, "y": 300}}),
        ("hover", {"selector": "#menu"}),
        ("wait", {"duration": 1}),
        ("key_press", {"value": "Esc"}),
        ("form_submit", {"selector": "#form"}),
        ("form_focus", {"selector": "#user"}),
        ("form_input_change", {"selector": "#agree", "value": "true"}),
        ("form_navigation", {"value": "Tab"}),
        ("screenshot", {}),
    )
    player = PlaybackService(page, recording, PlaybackConfig(speed=10))
    await player.start_playback()
    await player.wait_until_done()

    assert driving_calls(page) == [
        ("click_at", 1, 2),
        ("scroll_to", 0, 300),
        ("hover", "#menu"),
        ("press_key", "Escape"),
        ("submit_form", "#form"),
        ("focus", "#user"),
        ("set_field_value", "#agree", "true"),
        ("press_key", "Tab"),
        ("screenshot",),
    ]
    assert ("navigate", "https://x.test/next") in page.calls
    assert player.captured_screenshots == ["ZmFrZQ=="]
    assert player.get_status().last_error is None


async def test_screenshots_can_be_skipped(page):
    recording = make_recording(("screenshot", {}), ("click", {"selector": "#a"}))
    player = PlaybackService(page, recording, PlaybackConfig(skip_screenshots=True))
    await player.start_playback()
    await player.wait_until_done()
    assert driving_calls(page) == [("click", "#a")]


async def test_pause_on_error_stops_at_failing_event(page, broadcasts):
    page.failing_selectors.add("#user")
    player = PlaybackService(page, login_recording(), broadcast=broadcasts)
    await player.start_playback()
    await player.wait_until_done()

    state = player.get_status()
    assert state.status == "paused"
    assert state.current_event_index == 1
    assert state.last_error.event_index == 1
    assert state.last_error.event_type == "type"
    assert ("click", "#submit") not in page.calls
    assert "playback_error" in broadcasts.types()
    assert "playback_complete" not in broadcasts.types()

    # Fixing the page and resuming retries the failed event
    page.failing_selectors.clear()
    await player.resume_playback()
    await player.wait_until_done()
    assert player.get_status().status == "stopped"
    assert page.calls[-1] == ("click", "#submit")


async def test_continue_on_error_plays_remaining_events(page, broadcasts):
    page.failing_selectors.add("#user")
    player = PlaybackService(page, login_recording(), PlaybackConfig(pause_on_error=False), broadcast=broadcasts)
    await player.start_playback()
    await player.wait_until_done()

    assert player.get_status().status == "stopped"
    assert page.calls[-1] == ("click", "#submit")
    assert broadcasts.types().count("playback_error") == 1
    assert broadcasts.types()[-1] == "playback_complete"


async def test_events_missing_their_target_are_errors(page):
    recording = make_recording(("hover", {}), ("click", {"selector": "#a"}))
    player = PlaybackService(page, recording)
    await player.start_playback()
    await player.wait_until_done()

    assert player.get_status().last_error.message == "hover event has no selector"


async def test_start_while_active_is_rejected(page):
    player = PlaybackService(page, login_recording())
    await player.start_playback()
    with pytest.raises(PlaybackAlreadyActiveError):
        await player.start_playback()
    await player.stop_playback()


async def test_pause_before_first_event_then_resume(page):
    player = PlaybackService(page, login_recording())
    await player.start_playback()
    await player.pause_playback()

    assert player.get_status().status == "paused"
    assert driving_calls(page) == []

    await player.resume_playback()
    await player.wait_until_done()
    assert page.calls[-1] == ("click", "#submit")


async def test_stop_resets_position_and_is_idempotent(page, broadcasts):
    player = PlaybackService(page, login_recording(), broadcast=broadcasts)
    await player.start_playback()
    await player.stop_playback()
    await player.stop_playback()

    state = player.get_status()
    assert state.status == "stopped"
    assert state.current_event_index == 0
    assert broadcasts.types().count("playback_status") == 2


async def test_seek_validates_index(page):
    player = PlaybackService(page, login_recording())
    for index in (-1, 3, 100):
        with pytest.raises(InvalidSeekIndexError):
            await player.seek_to_event(index)


async def test_seek_then_start_plays_from_that_event(page):
    player = PlaybackService(page, login_recording())
    await player.seek_to_event(2)
    assert player.get_status().elapsed_time == 30
    assert player.get_status().remaining_time == 10

    await player.start_playback()
    await player.wait_until_done()
    assert driving_calls(page) == [("click", "#submit")]


async def test_seek_while_playing_keeps_playing(page):
    player = PlaybackService(page, login_recording())
    await player.start_playback()
    await player.seek_to_event(2)

    assert player.get_status().status == "playing"
    await player.wait_until_done()
    assert driving_calls(page) == [("click", "#submit")]


async def test_event_window_from_config(page):
    recording = make_recording(*[("click", {"selector": f"#b{i}"}) for i in range(5)])
    player = PlaybackService(page, recording, PlaybackConfig(start_from_event=1, end_at_event=3))
    await player.start_playback()
    await player.wait_until_done()
    assert driving_calls(page) == [("click", "#b1"), ("click", "#b2"), ("click", "#b3")]


async def test_progress_is_broadcast_every_five_events(broadcasts):
    page = FakePage()
    recording = make_recording(*[("click", {"selector": f"#b{i}"}) for i in range(10)])
    player = PlaybackService(page, recording, PlaybackConfig(speed=100), broadcast=broadcasts)
    await player.start_playback()
    await player.wait_until_done()

    progress = [m for m in broadcasts.messages if m.type == "playback_progress"]
    assert [m.data["eventIndex"] for m in progress] == [4, 9]


async def test_status_is_a_snapshot(page):
    player = PlaybackService(page, login_recording())
    state = player.get_status()
    state.current_event_index = 99
    assert player.get_status().current_event_index == 0
    assert player.get_status().total_events == 3
