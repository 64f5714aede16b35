"""Unit tests for push payload decoding and parsing."""

import json

import pytest

from src.taskhook.webhook import PayloadError, PushEvent, WebhookHandler


def _push_payload(**overrides):
    payload = {
        "ref": "refs/heads/main",
        "repository": {"id": 123, "full_name": "acme/widgets"},
        "commits": [
            {"id": "a1", "message": "fix: TASK-07 done", "url": "https://example.test/a1"},
            {"id": "b2", "message": "chore: bump deps"},
        ],
        "installation": {"id": 42},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def handler() -> WebhookHandler:
    return WebhookHandler()


class TestDecodeBody:
    def test_decodes_json_object(self, handler):
        assert handler.decode_body(b'{"a": 1}') == {"a": 1}

    def test_empty_body_is_empty_object(self, handler):
        assert handler.decode_body(b"") == {}

    def test_invalid_json_raises(self, handler):
        with pytest.raises(PayloadError, match="not valid JSON"):
            handler.decode_body(b"{not json")

    def test_non_utf8_raises(self, handler):
        with pytest.raises(PayloadError):
            handler.decode_body(b"\xff\xfe\xfa")

    def test_json_array_raises(self, handler):
        with pytest.raises(PayloadError, match="Expected a JSON object"):
            handler.decode_body(b"[1, 2]")


class TestParsePushEvent:
    def test_parses_repository_and_commits_in_order(self, handler):
        event = handler.parse_push_event(_push_payload())

        assert isinstance(event, PushEvent)
        assert event.repository_id == "123"
        assert event.repository_name == "acme/widgets"
        assert [c.message for c in event.commits] == [
            "fix: TASK-07 done",
            "chore: bump deps",
        ]
        assert event.commits[0].sha == "a1"
        assert event.commits[0].url == "https://example.test/a1"
        assert event.commits[1].url is None
        assert event.installation_id == 42

    def test_string_repository_id_is_kept(self, handler):
        event = handler.parse_push_event(
            _push_payload(repository={"id": "R_kgDO", "full_name": "acme/widgets"})
        )
        assert event.repository_id == "R_kgDO"

    def test_missing_commits_is_empty(self, handler):
        payload = _push_payload()
        del payload["commits"]

        assert handler.parse_push_event(payload).commits == []

    def test_null_commits_is_empty(self, handler):
        assert handler.parse_push_event(_push_payload(commits=None)).commits == []

    def test_non_list_commits_raises(self, handler):
        with pytest.raises(PayloadError, match="commits"):
            handler.parse_push_event(_push_payload(commits={"id": "a1"}))

    def test_commits_without_message_are_skipped(self, handler):
        event = handler.parse_push_event(
            _push_payload(
                commits=[
                    {"id": "a1"},
                    "not-a-commit",
                    {"id": "b2", "message": None},
                    {"id": "c3", "message": "TASK-1 fixed"},
                ]
            )
        )
        assert [c.sha for c in event.commits] == ["c3"]

    def test_empty_message_is_kept(self, handler):
        event = handler.parse_push_event(_push_payload(commits=[{"message": ""}]))
        assert [c.message for c in event.commits] == [""]

    @pytest.mark.parametrize(
        "repository",
        [
            None,
            "acme/widgets",
            {"full_name": "acme/widgets"},
            {"id": None, "full_name": "acme/widgets"},
            {"id": True, "full_name": "acme/widgets"},
            {"id": "  ", "full_name": "acme/widgets"},
            {"id": 1.5, "full_name": "acme/widgets"},
            {"id": 123},
            {"id": 123, "full_name": ""},
        ],
    )
    def test_invalid_repository_raises(self, handler, repository):
        with pytest.raises(PayloadError):
            handler.parse_push_event(_push_payload(repository=repository))

    def test_installation_is_optional(self, handler):
        payload = _push_payload()
        del payload["installation"]

        assert handler.parse_push_event(payload).installation_id is None

    def test_roundtrip_from_raw_body(self, handler):
        raw = json.dumps(_push_payload()).encode()

        event = handler.parse_push_event(handler.decode_body(raw))

        assert len(event.commits) == 2
