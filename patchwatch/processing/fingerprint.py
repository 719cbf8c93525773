"""
Content fingerprints used as the per-source deduplication key.
"""

import hashlib
from typing import Optional

from ..database.models import CandidateItem

SEPARATOR = "|"


def fingerprint(title: str, link: str, published_at: Optional[str] = None) -> str:
    """SHA-1 hex digest of ``title|link|published``.

    Fields are the decoded values the parsers produce (entities resolved,
    CDATA removed). A missing published timestamp contributes an empty
    string.
    """
    payload = SEPARATOR.join((title, link, published_at or ""))
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


def fingerprint_item(item: CandidateItem) -> str:
    return fingerprint(item.title, item.link, item.published_at)
