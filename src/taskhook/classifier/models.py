"""Commit classification models.

A CommitClassification is produced for a single commit message, consumed
immediately by the pipeline and discarded. It is never persisted.

The wire contract with the classification capability is strict JSON:

    {"taskId": "TASK-07" | null, "completed": true | false}

or a JSON ``null`` document meaning "no task referenced". Any other
shape is a classification failure.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class CommitClassification(BaseModel):
    """Result of classifying one commit message.

    Attributes:
        task_display_id: Display ID of the task the commit refers to, if any.
        indicates_completion: Whether the commit says the task is finished.
    """

    task_display_id: Optional[str] = Field(
        default=None,
        description="Display ID of the referenced task, or None",
    )

    indicates_completion: bool = Field(
        default=False,
        description="Whether the commit indicates the task is completed",
    )

    @property
    def is_actionable(self) -> bool:
        """True when the commit names a task and says it is finished."""
        return bool(self.task_display_id) and self.indicates_completion

    def to_contract(self) -> dict:
        """Serialize to the classifier wire contract."""
        return {
            "taskId": self.task_display_id,
            "completed": self.indicates_completion,
        }

    @classmethod
    def no_op(cls) -> "CommitClassification":
        """The "nothing to do" classification used for misses and failures."""
        return cls(task_display_id=None, indicates_completion=False)

    @classmethod
    def from_contract(cls, data: Any) -> "CommitClassification":
        """Build a classification from a parsed classifier response.

        Args:
            data: The decoded JSON document returned by the classifier.

        Returns:
            CommitClassification. A JSON null document yields no_op().

        Raises:
            ValueError: If the document does not match the contract.
        """
        if data is None:
            return cls.no_op()

        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

        if "taskId" not in data or "completed" not in data:
            raise ValueError(
                f"Missing contract fields, got keys: {sorted(data.keys())}"
            )

        task_id = data["taskId"]
        completed = data["completed"]

        if task_id is not None and not isinstance(task_id, str):
            raise ValueError(f"taskId must be a string or null, got {type(task_id).__name__}")
        if not isinstance(completed, bool):
            raise ValueError(f"completed must be a boolean, got {type(completed).__name__}")

        task_id = task_id.strip() if task_id else None

        return cls(task_display_id=task_id or None, indicates_completion=completed)
