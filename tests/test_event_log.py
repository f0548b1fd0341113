"""Tests for tracker event storage"""

from pathlib import Path

import pytest

from scorm_medic.services.event_log import EventLogStore, InvalidEvent


class TestEventLogStore:
    def test_append_and_read(self, temp_directory: Path):
        store = EventLogStore(temp_directory / "logs")

        store.append({"eventType": "page_load", "sessionId": "abc123"})
        store.append({"eventType": "api_call", "sessionId": "abc123", "detail": {"method": "LMSInitialize"}})

        events = store.read("abc123")
        assert [e["eventType"] for e in events] == ["page_load", "api_call"]
        assert all("serverTimestamp" in e for e in events)
        assert (temp_directory / "logs" / "abc123.ndjson").is_file()

    def test_missing_session_id_goes_to_unknown(self, temp_directory: Path):
        store = EventLogStore(temp_directory)
        path = store.append({"eventType": "page_load"})
        assert path.name == "unknown.ndjson"

    def test_session_id_sanitized(self, temp_directory: Path):
        store = EventLogStore(temp_directory)
        assert store.log_path("../../etc/passwd").parent == temp_directory
        assert store.log_name("../../etc/passwd") == "etcpasswd"

    @pytest.mark.parametrize("event", [
        {},
        {"eventType": ""},
        {"eventType": 42},
        {"eventType": "x", "detail": "not an object"},
    ])
    def test_invalid_event_rejected(self, temp_directory: Path, event):
        store = EventLogStore(temp_directory)
        with pytest.raises(InvalidEvent) as exc_info:
            store.append(event)
        assert exc_info.value.errors

    def test_read_absent_log(self, temp_directory: Path):
        assert EventLogStore(temp_directory).read("nothing") == []
