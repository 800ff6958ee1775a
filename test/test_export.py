import json

import pytest

from conftest import FakePage
from replay_use.exceptions import ExportValidationError
from replay_use.export.service import (
    build_export_document,
    export_recording,
    generate_playwright_script,
    import_recording,
    load_export,
    write_export,
)
from replay_use.export.views import EXPORT_VERSION, ExportOptions
from replay_use.playback.service import PlaybackService
from replay_use.recording.service import RecordingService
from replay_use.recording.views import RecordingConfig


def field(selector, value, focused=True):
    return {"selector": selector, "value": value, "fieldType": "text", "tagName": "INPUT", "isFocused": focused}


async def record_login(clock, **config):
    """Record: type "alice" into #user, then click #submit, on https://x.test/."""
    page = FakePage("https://x.test/")
    recorder = RecordingService(page, RecordingConfig(**config), session_id="s1", clock=clock)
    await recorder.start_capture()
    clock.advance(40)
    await page.emit({"kind": "focus", "field": field("#user", "")})
    clock.advance(40)
    await page.emit({"kind": "keydown", "key": "Tab", "inField": True, "field": field("#user", "alice")})
    clock.advance(40)
    await page.emit({"kind": "click", "selector": "#submit", "x": 100, "y": 200})
    clock.advance(40)
    return await recorder.stop_capture()


async def test_json_export_document_shape(clock):
    recording = await record_login(clock)
    result = export_recording(recording)

    assert result.format == "json"
    assert result.filename == f"recording_{recording.id}.json"
    assert result.size == len(result.content.encode("utf-8"))
    assert result.metadata.event_count == 3

    document = json.loads(result.content)
    assert document["metadata"]["recordingId"] == recording.id
    assert document["metadata"]["sessionId"] == "s1"
    assert document["metadata"]["version"] == EXPORT_VERSION
    assert document["metadata"]["initialUrl"] == "https://x.test/"
    assert document["timeline"] == {
        "startTime": recording.start_time,
        "endTime": recording.end_time,
        "duration": 160,
        "totalEvents": 3,
    }
    assert [e["type"] for e in document["events"]] == ["page_load", "type", "click"]
    assert document["events"][1]["value"] == "alice"
    assert document["statistics"]["totalEvents"] == 3


async def test_json_round_trip_preserves_events(clock):
    recording = await record_login(clock)
    restored = import_recording(export_recording(recording).content)

    assert restored.id == recording.id
    assert restored.session_id == recording.session_id
    assert restored.status == "stopped"
    assert restored.start_time == recording.start_time
    assert restored.duration == recording.duration
    assert restored.config == recording.config
    assert restored.metadata.initial_url == recording.metadata.initial_url
    assert [e.model_dump() for e in restored.events] == [e.model_dump() for e in recording.events]


async def test_screenshots_are_stripped_unless_requested(clock):
    recording = await record_login(clock, capture_screenshots=True)

    stripped = build_export_document(recording)
    assert all("screenshot" not in e for e in stripped["events"])

    kept = build_export_document(recording, include_screenshots=True)
    assert kept["events"][0]["screenshot"].startswith("data:image/jpeg;base64,")
    assert kept["statistics"]["screenshotCount"] == 2

    restored = import_recording(export_recording(recording, ExportOptions(include_screenshots=True)).content)
    assert restored.events[0].screenshot == recording.events[0].screenshot


async def test_minified_export(clock):
    recording = await record_login(clock)
    content = export_recording(recording, ExportOptions(minify_output=True)).content
    assert "\n" not in content
    assert json.loads(content)["metadata"]["recordingId"] == recording.id


async def test_unsupported_format_is_rejected(clock):
    recording = await record_login(clock)
    with pytest.raises(ExportValidationError):
        export_recording(recording, ExportOptions(format="puppeteer"))


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        "[]",
        json.dumps({"metadata": {}, "timeline": {"startTime": 1, "totalEvents": 0}, "events": []}),
        json.dumps(
            {
                "metadata": {"recordingId": "r1"},
                "timeline": {"startTime": 1, "totalEvents": 1},
                "events": [{"type": "teleport", "timestamp": 1}],
            }
        ),
    ],
)
def test_import_rejects_invalid_documents(payload):
    with pytest.raises(ExportValidationError):
        import_recording(payload)


def test_import_accepts_a_parsed_dict():
    recording = import_recording(
        {
            "metadata": {"recordingId": "r1", "sessionId": "s9", "initialUrl": "https://x.test/", "source": "cli"},
            "timeline": {"startTime": 1000, "endTime": 1100, "duration": 100, "totalEvents": 1},
            "events": [{"type": "click", "timestamp": 1050, "selector": "#a"}],
        }
    )
    assert recording.id == "r1"
    assert recording.session_id == "s9"
    assert recording.events[0].selector == "#a"
    # Unknown metadata keys survive the import
    assert recording.metadata.model_extra == {"source": "cli"}


async def test_playwright_script_export(clock):
    recording = await record_login(clock)
    result = export_recording(recording, ExportOptions(format="playwright"))

    assert result.filename == f"recording_{recording.id}_playwright.py"
    script = result.content
    assert "await page.goto('https://x.test/')" in script
    assert "await page.locator('#user').press_sequentially('alice')" in script
    assert "await page.click('#submit')" in script
    assert f"# Recording {recording.id}" in script
    compile(script, result.filename, "exec")


async def test_playwright_script_without_comments(clock):
    recording = await record_login(clock)
    script = generate_playwright_script(recording, ExportOptions(format="playwright", add_comments=False))
    assert not any(line.strip().startswith("#") for line in script.splitlines())
    compile(script, "script.py", "exec")


async def test_write_and_load_export(clock, tmp_path):
    recording = await record_login(clock)
    result = export_recording(recording)

    path = write_export(result, tmp_path)
    assert path == tmp_path / result.filename

    restored = load_export(path)
    assert [e.model_dump() for e in restored.events] == [e.model_dump() for e in recording.events]


async def test_imported_recording_replays_like_the_original(clock):
    recording = await record_login(clock)
    restored = import_recording(export_recording(recording).content)

    original_page, restored_page = FakePage(), FakePage()
    for page, source in ((original_page, recording), (restored_page, restored)):
        player = PlaybackService(page, source)
        await player.start_playback()
        await player.wait_until_done()

    assert original_page.calls == restored_page.calls
    assert ("type", "#user", "alice") in restored_page.calls
    assert restored_page.calls[-1] == ("click", "#submit")
