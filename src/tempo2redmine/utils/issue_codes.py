"""Issue code helpers."""

import re
from typing import Optional

ISSUE_CODE_PATTERN = re.compile(r"\b([A-Z][A-Z0-9]*-\d+)\b")


def extract_issue_code(*texts: Optional[str]) -> Optional[str]:
    """Return the first issue code (e.g. ``AB-9``) found in the given texts, in order."""
    for text in texts:
        if not text:
            continue
        match = ISSUE_CODE_PATTERN.search(text)
        if match:
            return match.group(1)
    return None


def is_issue_code(value: Optional[str]) -> bool:
    return bool(value) and ISSUE_CODE_PATTERN.fullmatch(value) is not None
