"""
Marker extraction from agent output.

Agents signal control flow by embedding HTML comments in their free-form
output, for example::

    <!-- STAGE_TRANSITION: audit -->
    <!-- AUDIT_RATING: 9 -->
    <!-- AUDIT_VERDICT: ACCEPTED -->
    <!-- FILES_CHANGED: src/app.py, tests/test_app.py -->

Every parser here is pure and total: malformed or missing markers yield
None, never an exception. Parsers are independent, so several markers can
coexist in one output blob.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from taskrunner.constants import STAGES

VERDICT_ACCEPTED = "ACCEPTED"
VERDICT_NEEDS_WORK = "NEEDS_WORK"
VERDICTS = (VERDICT_ACCEPTED, VERDICT_NEEDS_WORK)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

# Prose fallbacks, most specific first
_RATING_PROSE_PATTERNS = (
    re.compile(r"\b(?:audit\s*)?rating\b\s*[:=-]?\s*\**\s*(\d{1,2})\s*/\s*10\b", re.I),
    re.compile(r"\b(?:audit\s*)?rating\b\s*[:=-]?\s*\**\s*(\d{1,2})\b", re.I),
)
_ACCEPTED_RE = re.compile(r"\bACCEPTED\b", re.I)
_NEEDS_WORK_RE = re.compile(r"\bNEEDS_WORK\b", re.I)

_LIST_SPLIT_RE = re.compile(r"[\n,]+")
_BULLET_RE = re.compile(r"^[-*]\s*")


@dataclass
class StageMarkers:
    """All markers extracted from one stage output."""

    stage_transition: Optional[str] = None
    files_changed: Optional[List[str]] = None
    audit_rating: Optional[int] = None
    audit_verdict: Optional[str] = None


def parse_comment_marker(output: Optional[str], marker: str) -> Optional[str]:
    """Return the trimmed body of ``<!-- MARKER: body -->`` or None."""
    if not output:
        return None
    pattern = re.compile(r"<!--\s*" + re.escape(marker) + r"\s*:\s*(.*?)\s*-->", re.I | re.S)
    match = pattern.search(output)
    if not match:
        return None
    return match.group(1).strip()


def _parse_leading_int(value: str) -> Optional[int]:
    match = _LEADING_INT_RE.match(value)
    if not match:
        return None
    return int(match.group(1))


def parse_stage_transition(output: Optional[str]) -> Optional[str]:
    """Extract the STAGE_TRANSITION marker as a known stage name."""
    value = parse_comment_marker(output, "STAGE_TRANSITION")
    if not value:
        return None
    normalized = value.lower()
    return normalized if normalized in STAGES else None


def parse_audit_rating(output: Optional[str]) -> Optional[int]:
    """
    Extract the audit rating.

    The explicit AUDIT_RATING marker wins over prose such as
    ``Rating: 7/10`` or ``rating = 7``.
    """
    if not output:
        return None

    value = parse_comment_marker(output, "AUDIT_RATING")
    if value:
        rating = _parse_leading_int(value)
        if rating is not None:
            return rating

    for pattern in _RATING_PROSE_PATTERNS:
        match = pattern.search(output)
        if match:
            return int(match.group(1))

    return None


def parse_audit_verdict(output: Optional[str]) -> Optional[str]:
    """Extract ACCEPTED / NEEDS_WORK from the marker, else from bare keywords."""
    if not output:
        return None

    value = parse_comment_marker(output, "AUDIT_VERDICT")
    if value and value.upper() in VERDICTS:
        return value.upper()

    if _ACCEPTED_RE.search(output):
        return VERDICT_ACCEPTED
    if _NEEDS_WORK_RE.search(output):
        return VERDICT_NEEDS_WORK
    return None


def parse_files_changed(output: Optional[str]) -> Optional[List[str]]:
    """Extract the FILES_CHANGED marker as an ordered, de-duplicated path list."""
    value = parse_comment_marker(output, "FILES_CHANGED")
    if not value:
        return None

    paths: List[str] = []
    for part in _LIST_SPLIT_RE.split(value):
        item = _BULLET_RE.sub("", part.strip())
        if item.startswith("`"):
            item = item[1:]
        if item.endswith("`"):
            item = item[:-1]
        item = item.strip()
        if item and item not in paths:
            paths.append(item)

    return paths or None


def parse_markers(output: Optional[str], include_audit: bool = False) -> StageMarkers:
    """Run every parser over one output; audit fields only when requested."""
    markers = StageMarkers(
        stage_transition=parse_stage_transition(output),
        files_changed=parse_files_changed(output),
    )
    if include_audit:
        markers.audit_rating = parse_audit_rating(output)
        markers.audit_verdict = parse_audit_verdict(output)
    return markers
