"""Deterministic keyword classifier.

Used when no LLM endpoint is configured. It finds the task display ID in
the message and looks for completion wording, with
work-in-progress markers taking precedence.
"""

import re
from typing import Optional

from src.taskhook.classifier.models import CommitClassification


DISPLAY_ID_PATTERN = re.compile(r"(\[)?\b([A-Z][A-Z0-9]*-\d+)\b(\])?")

# Prefixes of encodings, digests and standards that look like display IDs
NON_TASK_PREFIXES = frozenset(
    {
        "AES", "CP", "CVE", "ECMA", "ES", "HTTP", "IEC", "IPV", "ISO", "LATIN",
        "MD", "PEP", "RFC", "SHA", "SSL", "TLS", "UCS", "UTF", "WIN", "X",
    }
)

COMPLETION_PATTERN = re.compile(
    r"\b(fix|fixed|fixes|close|closes|closed|complete|completed|done|"
    r"resolve|resolves|resolved|finish|finished)\b"
)

WORK_IN_PROGRESS_PATTERN = re.compile(r"\b(wip|working on|partial|partially)\b")


def extract_display_id(message: str) -> Optional[str]:
    """Return the display ID a commit message refers to, e.g. "TASK-07".

    A bracketed ID such as "[TASK-07]" wins. Otherwise the first ID whose
    prefix is not a known encoding or standard ("UTF-8", "SHA-256",
    "ISO-8601") is returned.
    """
    first = None
    for match in DISPLAY_ID_PATTERN.finditer(message):
        display_id = match.group(2)
        if match.group(1) and match.group(3):
            return display_id
        prefix = display_id.split("-", 1)[0]
        if first is None and prefix not in NON_TASK_PREFIXES:
            first = display_id
    return first



def indicates_completion(message: str) -> bool:
    """Whether the message uses completion wording and is not marked WIP."""
    lowered = message.lower()
    if WORK_IN_PROGRESS_PATTERN.search(lowered):
        return False
    return COMPLETION_PATTERN.search(lowered) is not None


class KeywordCommitClassifier:
    """Classifier that relies on regular expressions instead of an LLM."""

    async def classify(
        self,
        message: str,
        task_title: Optional[str] = None,
        task_description: Optional[str] = None,
    ) -> CommitClassification:
        display_id = extract_display_id(message)
        if display_id is None:
            return CommitClassification.no_op()

        return CommitClassification(
            task_display_id=display_id,
            indicates_completion=indicates_completion(message),
        )

    async def health_check(self) -> bool:
        return True
