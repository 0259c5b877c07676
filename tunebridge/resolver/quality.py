"""
Quality selection among candidate stream URLs
"""

from typing import Iterable, Optional

from ..catalog.models import CandidateUrl
from ..utils.helpers import parse_bitrate


DEFAULT_QUALITY = "320kbps"


def pick_best_url(candidates: Iterable[CandidateUrl], preferred: str = DEFAULT_QUALITY) -> Optional[str]:
    """
    Pick the stream URL to play

    The candidate whose label equals preferred wins. Otherwise the candidate
    with the highest bitrate embedded in its label is chosen; labels without
    a leading integer count as 0. Ties keep catalog order.

    Args:
        candidates: Candidate URLs of one track
        preferred: Preferred quality label, e.g. "320kbps"

    Returns:
        Chosen URL, or None for no candidates
    """
    candidates = list(candidates)
    if not candidates:
        return None

    for candidate in candidates:
        if candidate.quality == preferred:
            return candidate.url

    best = sorted(candidates, key=lambda c: parse_bitrate(c.quality), reverse=True)[0]
    return best.url
