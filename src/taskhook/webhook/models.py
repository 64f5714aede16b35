"""Webhook event models.

This module defines the data models for inbound source-control webhooks:
the event types the receiver dispatches on and the parsed push event.

Push payload structure (fields the pipeline reads):
{
  "repository": {"id": 123, "full_name": "acme/widgets"},
  "commits": [{"id": "abc123", "message": "fix: resolve TASK-07"}],
  "installation": {"id": 42}
}
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class WebhookEventType(str, Enum):
    """Event types the receiver dispatches on.

    Any other value of the event header is acknowledged and ignored.

    Attributes:
        PING: Sent by the host when a webhook is configured.
        PUSH: One or more commits were pushed to a repository.
    """

    PING = "ping"
    PUSH = "push"


class CommitInfo(BaseModel):
    """A single commit from a push event.

    Attributes:
        message: The full commit message.
        sha: The commit identifier, if provided.
        url: Link to the commit on the host, if provided.
    """

    message: str = Field(
        ...,
        description="The full commit message",
    )

    sha: Optional[str] = Field(
        default=None,
        description="The commit identifier",
    )

    url: Optional[str] = Field(
        default=None,
        description="Link to the commit on the host",
    )


class PushEvent(BaseModel):
    """Parsed push event.

    Attributes:
        repository_id: External repository identifier, as a string.
        repository_name: Full repository name, e.g. "acme/widgets".
        commits: Commits in delivery order.
        installation_id: App installation identifier, if present.
    """

    repository_id: str = Field(
        ...,
        min_length=1,
        description="External repository identifier assigned by the host",
    )

    repository_name: str = Field(
        ...,
        min_length=1,
        description="Full repository name",
    )

    commits: List[CommitInfo] = Field(
        default_factory=list,
        description="Commits in delivery order",
    )

    installation_id: Optional[int] = Field(
        default=None,
        description="App installation identifier",
    )
