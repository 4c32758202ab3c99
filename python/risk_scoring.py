"""
Blacklist Risk Scoring

Derives the 0-100 risk score of a blacklist entry from its free-text reason
and from how much evidence is attached to it.

Scoring:
    base 50
    + first matching keyword rule (high risk +30, else medium risk +15)
    + 10 when identity documents are attached
    + 10 when a face image is attached
    capped at 100

The rules are evaluated in order and only the first match counts, so a reason
mentioning both "fraud" and "dispute" scores +30, never +45. Scores already
stored in the database depend on this staying bit-for-bit stable.
"""

from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence, Tuple

BASE_SCORE = 50
DOCUMENTS_BONUS = 10
FACE_IMAGE_BONUS = 10
MIN_SCORE = 0
MAX_SCORE = 100


@dataclass(frozen=True)
class RiskRule:
    """Keyword rule: any keyword found in the reason adds ``delta``"""
    name: str
    keywords: FrozenSet[str]
    delta: int

    def matches(self, reason_lower: str) -> bool:
        return any(keyword in reason_lower for keyword in self.keywords)


HIGH_RISK = RiskRule(
    name="high",
    keywords=frozenset({"fraud", "theft", "violence", "criminal", "scam"}),
    delta=30,
)
MEDIUM_RISK = RiskRule(
    name="medium",
    keywords=frozenset({"dispute", "complaint", "unpaid", "breach"}),
    delta=15,
)

# Order matters: first match wins
RISK_RULES: Tuple[RiskRule, ...] = (HIGH_RISK, MEDIUM_RISK)

# Dashboard distribution buckets (inclusive bounds)
SCORE_BUCKETS: Tuple[Tuple[int, int], ...] = (
    (0, 20),
    (21, 40),
    (41, 60),
    (61, 80),
    (81, 100),
)


def match_rule(reason: str, rules: Sequence[RiskRule] = RISK_RULES) -> Optional[RiskRule]:
    """Return the first rule whose keywords appear in ``reason`` (case-insensitive)."""
    reason_lower = (reason or "").lower()
    for rule in rules:
        if rule.matches(reason_lower):
            return rule
    return None


def compute_score(reason: str, has_documents: bool, has_face_image: bool) -> int:
    """
    Compute the risk score of a blacklist entry.

    Args:
        reason: Free-text reason the entry was filed
        has_documents: True when at least one identity document URL is attached
        has_face_image: True when a face image URL is attached

    Returns:
        Integer score in [0, 100]
    """
    score = BASE_SCORE

    rule = match_rule(reason)
    if rule is not None:
        score += rule.delta

    if has_documents:
        score += DOCUMENTS_BONUS
    if has_face_image:
        score += FACE_IMAGE_BONUS

    return max(MIN_SCORE, min(score, MAX_SCORE))


def compute_entry_score(
    reason: str,
    id_document_urls: Optional[Sequence[str]],
    face_image_url: Optional[str]
) -> int:
    """Score an entry from its stored field values."""
    return compute_score(
        reason,
        has_documents=bool(id_document_urls),
        has_face_image=bool(face_image_url),
    )


def bucket_label(low: int, high: int) -> str:
    return f"{low}-{high}"


def score_bucket(score: int) -> str:
    """Label of the distribution bucket ``score`` falls into."""
    for low, high in SCORE_BUCKETS:
        if low <= score <= high:
            return bucket_label(low, high)
    raise ValueError(f"Score out of range: {score}")


def empty_distribution() -> List[dict]:
    return [{"range": bucket_label(low, high), "count": 0} for low, high in SCORE_BUCKETS]
