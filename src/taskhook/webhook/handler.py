"""Push payload parsing.

This module provides the WebhookHandler class that turns a decoded push
payload into a structured PushEvent. Signature verification happens
before parsing (see signature.py); parsing never sees unverified bodies.

A payload the pipeline cannot work with (no repository identity, or a
``commits`` field that is not a list) raises PayloadError. Individual
commits without a usable message are skipped with a warning.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .models import CommitInfo, PushEvent

logger = logging.getLogger(__name__)


class PayloadError(Exception):
    """Raised when a webhook body cannot be parsed into an event.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class WebhookHandler:
    """Parser for push webhook payloads."""

    def decode_body(self, raw_body: bytes) -> Dict[str, Any]:
        """Decode a raw request body into a JSON object.

        Raises:
            PayloadError: If the body is not a JSON object.
        """
        try:
            payload = json.loads(raw_body or b"{}")
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PayloadError(f"Request body is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise PayloadError(
                f"Expected a JSON object, got {type(payload).__name__}"
            )
        return payload

    def parse_push_event(self, payload: Dict[str, Any]) -> PushEvent:
        """Parse a push event from a webhook payload.

        Args:
            payload: The decoded webhook payload.

        Returns:
            PushEvent with commits in delivery order.

        Raises:
            PayloadError: If the repository identity is missing or invalid,
                or ``commits`` is not a list.
        """
        repo_data = payload.get("repository")
        if not isinstance(repo_data, dict):
            raise PayloadError("Missing or invalid 'repository' field in payload")

        repository_id = self._extract_repository_id(repo_data.get("id"))

        full_name = repo_data.get("full_name")
        if not isinstance(full_name, str) or not full_name.strip():
            raise PayloadError(f"Invalid or empty repository full_name: {full_name!r}")

        commits_data = payload.get("commits")
        if commits_data is None:
            commits_data = []
        if not isinstance(commits_data, list):
            raise PayloadError(
                f"Expected 'commits' to be a list, got {type(commits_data).__name__}"
            )

        event = PushEvent(
            repository_id=repository_id,
            repository_name=full_name.strip(),
            commits=self._extract_commits(commits_data),
            installation_id=self._extract_installation_id(payload.get("installation")),
        )

        logger.info(
            "Parsed push event",
            extra={
                "repository_id": event.repository_id,
                "repository_name": event.repository_name,
                "commit_count": len(event.commits),
            },
        )
        return event

    def _extract_repository_id(self, value: Any) -> str:
        # bool is an int subclass; a boolean id is never valid
        if isinstance(value, bool):
            raise PayloadError(f"Invalid repository id: {value!r}")
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
        raise PayloadError(f"Invalid repository id: {value!r}")

    def _extract_commits(self, commits_data: List[Any]) -> List[CommitInfo]:
        """Extract commits, keeping delivery order and skipping unusable entries."""
        commits = []
        for index, commit in enumerate(commits_data):
            if not isinstance(commit, dict):
                logger.warning("Skipping commit %d: not an object", index)
                continue

            message = commit.get("message")
            if not isinstance(message, str):
                logger.warning("Skipping commit %d: missing message", index)
                continue

            sha = commit.get("id")
            url = commit.get("url")
            commits.append(
                CommitInfo(
                    message=message,
                    sha=sha if isinstance(sha, str) else None,
                    url=url if isinstance(url, str) else None,
                )
            )
        return commits

    def _extract_installation_id(self, installation: Any) -> Optional[int]:
        if not isinstance(installation, dict):
            return None
        installation_id = installation.get("id")
        if isinstance(installation_id, int) and not isinstance(installation_id, bool):
            return installation_id
        return None
