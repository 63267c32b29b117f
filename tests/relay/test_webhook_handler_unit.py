"""Unit tests for pull_request webhook payload parsing."""

from typing import Any, Dict

from src.relay.webhook import PullRequestAction, WebhookHandler


def _make_payload(
    action: str = "opened",
    number: int = 42,
    owner: str = "octo",
    repo: str = "widgets",
    title: str = "Fix null check",
) -> Dict[str, Any]:
    return {
        "action": action,
        "number": number,
        "pull_request": {
            "number": number,
            "title": title,
            "diff_url": f"https://github.com/{owner}/{repo}/pull/{number}.diff",
        },
        "repository": {
            "name": repo,
            "full_name": f"{owner}/{repo}",
            "owner": {"login": owner},
        },
    }


class TestParseRepository:
    def test_extracts_owner_and_name(self):
        assert WebhookHandler().parse_repository(_make_payload()) == ("octo", "widgets")

    def test_missing_repository_returns_none(self):
        payload = _make_payload()
        del payload["repository"]

        assert WebhookHandler().parse_repository(payload) is None

    def test_missing_owner_login_returns_none(self):
        payload = _make_payload()
        payload["repository"]["owner"] = {}

        assert WebhookHandler().parse_repository(payload) is None

    def test_non_dict_payload_returns_none(self):
        assert WebhookHandler().parse_repository(["not", "a", "dict"]) is None

    def test_ping_payload_has_repository(self):
        payload = {
            "zen": "Keep it logically awesome.",
            "hook_id": 1001,
            "repository": {"name": "widgets", "owner": {"login": "octo"}},
        }

        assert WebhookHandler().parse_repository(payload) == ("octo", "widgets")


class TestParsePullRequestEvent:
    def test_opened_event(self):
        event = WebhookHandler().parse_pull_request_event(_make_payload())

        assert event is not None
        assert event.action == PullRequestAction.OPENED.value
        assert event.pr_number == 42
        assert event.pr_id == "octo/widgets#42"
        assert event.full_repository == "octo/widgets"
        assert event.title == "Fix null check"
        assert event.is_reviewable

    def test_synchronize_is_reviewable(self):
        event = WebhookHandler().parse_pull_request_event(_make_payload(action="synchronize"))

        assert event is not None
        assert event.is_reviewable

    def test_closed_is_parsed_but_not_reviewable(self):
        event = WebhookHandler().parse_pull_request_event(_make_payload(action="closed"))

        assert event is not None
        assert not event.is_reviewable

    def test_number_falls_back_to_top_level(self):
        payload = _make_payload()
        del payload["pull_request"]["number"]

        event = WebhookHandler().parse_pull_request_event(payload)

        assert event is not None
        assert event.pr_number == 42

    def test_missing_pull_request_returns_none(self):
        payload = _make_payload()
        del payload["pull_request"]

        assert WebhookHandler().parse_pull_request_event(payload) is None

    def test_missing_action_returns_none(self):
        payload = _make_payload()
        del payload["action"]

        assert WebhookHandler().parse_pull_request_event(payload) is None

    def test_boolean_number_is_rejected(self):
        payload = _make_payload()
        payload["pull_request"]["number"] = True
        payload["number"] = True

        assert WebhookHandler().parse_pull_request_event(payload) is None

    def test_non_positive_number_is_rejected(self):
        assert WebhookHandler().parse_pull_request_event(_make_payload(number=0)) is None

    def test_null_title_becomes_empty(self):
        payload = _make_payload()
        payload["pull_request"]["title"] = None

        event = WebhookHandler().parse_pull_request_event(payload)

        assert event is not None
        assert event.title == ""
