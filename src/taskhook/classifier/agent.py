"""LLM-based commit classifier.

This module implements the CommitClassifier that asks an LLM whether a
commit message finishes a task, and if so which one. The classifier
talks to any OpenAI-compatible endpoint through LangChain's ChatOpenAI
client.

Each commit message is classified on its own; calls are never batched
across commits. Failures surface as ClassificationError so the caller
can apply its fail-open policy (see src/taskhook/receiver.py).

Source:
- src/taskhook/classifier/models.py (CommitClassification)
- src/taskhook/config.py (llm_url, llm_model, classifier_timeout_seconds)
"""

import json
import logging
from typing import Any, Optional, Protocol, runtime_checkable

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.taskhook.classifier.models import CommitClassification


logger = logging.getLogger(__name__)


CLASSIFICATION_SYSTEM_PROMPT = """You are a task analyzer for a software team. You read a single git commit message and decide whether it finishes a task.

Task IDs look like PROJECT-NN, for example GLOBAL-01 or TASK-07. A commit finishes a task when it references the task ID and uses wording such as fix, fixes, closes, complete, done or resolved. Work-in-progress commits (wip, working on, partial, refactor) do not finish a task.

You MUST respond with strict JSON only, with no text before or after it:
{"taskId": "TASK-07", "completed": true}

Use "taskId": null when the message references no task ID. Use "completed": false when the task is referenced but not finished."""


class ClassificationError(Exception):
    """Raised when commit classification fails.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the failure.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


@runtime_checkable
class Classifier(Protocol):
    """The narrow interface the pipeline needs from a classification provider.

    ``task_title`` and ``task_description`` are optional context for
    callers that already know the candidate task. The webhook pipeline
    classifies before any task is resolved, so it passes the message only.
    """

    async def classify(
        self,
        message: str,
        task_title: Optional[str] = None,
        task_description: Optional[str] = None,
    ) -> CommitClassification:
        ...

    async def health_check(self) -> bool:
        ...


def _build_classification_prompt(
    message: str,
    task_title: Optional[str] = None,
    task_description: Optional[str] = None,
) -> str:
    """Build the user prompt for commit classification.

    Task title and description are included only when supplied.

    Args:
        message: The commit message.
        task_title: Optional title of a candidate task.
        task_description: Optional description of a candidate task.

    Returns:
        Formatted prompt string for the LLM.
    """
    parts = []
    if task_title:
        parts.append(f"**Task:** {task_title}")
    if task_description:
        parts.append(f"**Task Description:** {task_description}")
    parts.append(f"**Commit Message:**\n{message}")
    parts.append("Respond with the JSON object only.")
    return "\n\n".join(parts)


def _parse_llm_response(response_text: str) -> Any:
    """Parse the LLM response text into a JSON document.

    Handles common LLM response quirks: markdown code fences and prose
    around the JSON object.

    Args:
        response_text: Raw text response from the LLM.

    Returns:
        The decoded JSON document (a dict, or None for a bare ``null``).

    Raises:
        json.JSONDecodeError: If no JSON document can be recovered.
    """
    text = response_text.strip()

    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(text[start : end + 1])


class CommitClassifier:
    """LLM-backed classifier for commit messages.

    Attributes:
        llm_url: URL of the OpenAI-compatible endpoint.
        model_name: Name of the model to use for inference.
        api_key: API key sent to the endpoint.
        timeout: Client-side request timeout in seconds.
        temperature: Sampling temperature for the LLM.

    Example:
        >>> classifier = CommitClassifier(
        ...     llm_url="https://api.groq.com/openai/v1",
        ...     model_name="llama3-8b-8192",
        ...     api_key="gsk_...",
        ... )
        >>> result = await classifier.classify("fix: resolve TASK-07, closes it")
        >>> result.task_display_id, result.indicates_completion
        ('TASK-07', True)
    """

    def __init__(
        self,
        llm_url: str,
        model_name: str,
        api_key: str = "not-needed",
        timeout: float = 10.0,
        temperature: float = 0.0,
    ):
        self.llm_url = llm_url
        self.model_name = model_name
        self.api_key = api_key
        self.timeout = timeout
        self.temperature = temperature
        self._llm: Optional[ChatOpenAI] = None

    @property
    def llm(self) -> ChatOpenAI:
        """Get the LLM client, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                base_url=self.llm_url,
                model=self.model_name,
                temperature=self.temperature,
                timeout=self.timeout,
                max_retries=0,
                api_key=self.api_key,
            )
        return self._llm

    async def classify(
        self,
        message: str,
        task_title: Optional[str] = None,
        task_description: Optional[str] = None,
    ) -> CommitClassification:
        """Classify a commit message.

        Args:
            message: The commit message.
            task_title: Optional title of a candidate task for extra context.
            task_description: Optional description of a candidate task.

        Returns:
            CommitClassification with the analysis results.

        Raises:
            ClassificationError: If the LLM call fails or its response does
                not match the classification contract.
        """
        user_prompt = _build_classification_prompt(
            message, task_title, task_description
        )

        messages = [
            SystemMessage(content=CLASSIFICATION_SYSTEM_PROMPT),
            HumanMessage(content=user_prompt),
        ]

        try:
            response = await self.llm.ainvoke(messages)
            response_text = response.content
        except Exception as e:
            raise ClassificationError(f"LLM invocation failed: {e}", cause=e)

        if not isinstance(response_text, str):
            raise ClassificationError(
                f"Unexpected response type: {type(response_text)}"
            )

        try:
            parsed = _parse_llm_response(response_text)
        except json.JSONDecodeError as e:
            logger.warning(
                "Failed to parse LLM response as JSON",
                extra={
                    "response_preview": response_text[:200],
                    "error": str(e),
                },
            )
            raise ClassificationError(f"Invalid JSON response: {e}", cause=e)

        try:
            classification = CommitClassification.from_contract(parsed)
        except ValueError as e:
            raise ClassificationError(f"Response validation failed: {e}", cause=e)

        logger.debug(
            "Commit classified",
            extra={
                "task_display_id": classification.task_display_id,
                "completed": classification.indicates_completion,
            },
        )
        return classification

    async def health_check(self) -> bool:
        """Check if the LLM endpoint is accessible."""
        try:
            await self.llm.ainvoke([HumanMessage(content="Hello")])
            return True
        except Exception as e:
            logger.warning(
                "LLM health check failed",
                extra={"error": str(e)},
            )
            return False
