"""
Review depth enum for questionnaire passes.

Invariants:
- A pass runs at exactly one depth: foundation or detailed
- Questions are tagged foundation, detailed or both
- Foundation passes skip detailed-only questions; detailed passes show all

Older configuration and stored sessions use 'pulse-check' / 'deep-dive';
these are accepted as aliases and never written back out.
"""

from enum import Enum


class ReviewDepth(str, Enum):
    """
    Review depth of a question or of a questionnaire pass.

    FOUNDATION:
        Reduced question set for a quick pass.

    DETAILED:
        Full question set.

    BOTH:
        Question tag only - shown at either depth. Not a valid pass depth.
    """
    FOUNDATION = "foundation"
    DETAILED = "detailed"
    BOTH = "both"


# Depths a pass can be run at
PASS_DEPTHS = {ReviewDepth.FOUNDATION, ReviewDepth.DETAILED}

REVIEW_DEPTH_ALIASES = {
    "pulse-check": ReviewDepth.FOUNDATION,
    "deep-dive": ReviewDepth.DETAILED,
}


def parse_review_depth(value) -> ReviewDepth:
    """
    Convert a raw string (or ReviewDepth) to ReviewDepth.

    Args:
        value: 'foundation', 'detailed', 'both' or a legacy alias

    Returns:
        ReviewDepth

    Raises:
        ValueError: If value is not a known depth
    """
    if isinstance(value, ReviewDepth):
        return value
    if value in REVIEW_DEPTH_ALIASES:
        return REVIEW_DEPTH_ALIASES[value]
    return ReviewDepth(value)


def parse_pass_depth(value) -> ReviewDepth:
    """
    Convert a raw string to a depth a pass can run at.

    Raises:
        ValueError: If value is unknown or 'both'
    """
    depth = parse_review_depth(value)
    if depth not in PASS_DEPTHS:
        raise ValueError(f"Review depth for a pass must be foundation or detailed, got '{value}'")
    return depth
