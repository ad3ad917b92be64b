"""
Reviewer reputation.

[REP] score = sum(10 * upvotes) + 50 * verified - 20 * flags, summed over
every live review by the reviewer and clamped at 0 afterwards.
Recomputed from ledger state on every call; nothing is cached.
"""

import logging
from typing import Iterable, Union

from .datum import ReviewDatum
from .errors import ProviderUnavailable
from .indexer import ReviewIndexer

logger = logging.getLogger(__name__)

UPVOTE_POINTS = 10
VERIFIED_POINTS = 50
FLAG_PENALTY = 20


def score_reviews(datums: Iterable[ReviewDatum]) -> int:
    total = 0
    for datum in datums:
        total += UPVOTE_POINTS * datum.upvotes
        total += VERIFIED_POINTS if datum.verified else 0
        total -= FLAG_PENALTY * datum.flags
    return max(total, 0)


class ReputationAggregator:
    """Reputation score per reviewer key hash."""

    def __init__(self, indexer: ReviewIndexer):
        self.indexer = indexer

    async def score(self, reviewer: Union[bytes, str]) -> int:
        """Score for reviewer; 0 when nothing matches or the ledger is unreachable."""
        try:
            reviews = await self.indexer.reviews_by_reviewer(reviewer)
        except ProviderUnavailable as e:
            logger.warning(f"[REP] Ledger unreachable, reporting 0: {e}")
            return 0
        score = score_reviews(r.datum for r in reviews)
        logger.debug(f"[REP] {len(reviews)} review(s), score {score}")
        return score
