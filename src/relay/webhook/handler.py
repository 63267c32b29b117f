"""GitHub webhook payload parsing.

This module turns a raw pull_request webhook payload into a PullRequestEvent.
Parsing happens before signature verification only to find out which
repository (and therefore which secret) the delivery claims to come from;
nothing parsed here is acted on until the signature checks out.

GitHub Webhook Payload Structure (pull_request event):
{
  "action": "opened",
  "number": 42,
  "pull_request": {
    "number": 42,
    "title": "Fix null check",
    "diff_url": "https://github.com/octo/widgets/pull/42.diff"
  },
  "repository": {
    "name": "widgets",
    "owner": {"login": "octo"}
  }
}
"""

import logging
from typing import Any, Dict, Optional, Tuple

from src.relay.webhook.models import PullRequestEvent

logger = logging.getLogger(__name__)


class WebhookHandler:
    """Parser for GitHub pull_request webhook payloads."""

    def parse_repository(self, payload: Any) -> Optional[Tuple[str, str]]:
        """Extract (owner, name) of the repository a delivery refers to.

        Returns:
            The owner and repository name, or None if the payload has no
            usable repository block.
        """
        if not isinstance(payload, dict):
            return None

        repo_data = payload.get("repository")
        if not isinstance(repo_data, dict):
            logger.warning("Missing or invalid 'repository' field in payload")
            return None

        name = repo_data.get("name")
        owner = self._extract_login(repo_data.get("owner"))
        if not isinstance(name, str) or not name.strip() or owner is None:
            logger.warning("Payload repository has no owner login or name")
            return None

        return owner, name.strip()

    def parse_pull_request_event(
        self, payload: Dict[str, Any]
    ) -> Optional[PullRequestEvent]:
        """Parse a pull_request event from a webhook payload.

        Any action is accepted here; filtering on the action is the
        orchestrator's job so that ignored events are still acknowledged.

        Args:
            payload: The decoded webhook payload.

        Returns:
            PullRequestEvent if parsing succeeds, None for malformed payloads.
        """
        repository = self.parse_repository(payload)
        if repository is None:
            return None
        owner, name = repository

        action = payload.get("action")
        if not isinstance(action, str) or not action:
            logger.warning("Missing 'action' field in payload")
            return None

        pr_data = payload.get("pull_request")
        if not isinstance(pr_data, dict):
            logger.warning("Missing or invalid 'pull_request' field in payload")
            return None

        pr_number = pr_data.get("number", payload.get("number"))
        if not isinstance(pr_number, int) or isinstance(pr_number, bool) or pr_number <= 0:
            logger.warning("Invalid pull request number: %s", pr_number)
            return None

        title = pr_data.get("title")
        diff_url = pr_data.get("diff_url")

        event = PullRequestEvent(
            action=action,
            pr_number=pr_number,
            owner=owner,
            repository=name,
            title=title if isinstance(title, str) else "",
            diff_url=diff_url if isinstance(diff_url, str) else "",
        )

        logger.info(
            "Parsed pull request event: action=%s, pr=%s",
            action,
            event.pr_id,
        )
        return event

    def _extract_login(self, user_data: Any) -> Optional[str]:
        if not isinstance(user_data, dict):
            return None
        login = user_data.get("login")
        if not isinstance(login, str) or not login.strip():
            return None
        return login.strip()
