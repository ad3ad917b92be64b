"""
Review Indexer
==============

[INDEX] Read side of the review ledger: every UTxO locked at the script
address, decoded through the datum codec.

[TOLERANCE] Anyone can send outputs to the script address. Entries
without an inline datum, or with a datum that is not a review, are
skipped (debug log) rather than failing the whole query. Provider
failures propagate.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .datum import ReviewDatum, decode_datum
from .errors import InvalidDatum
from .provider import LedgerProvider
from .transaction import OutputRef, UTxO

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewUTXO:
    """A live review record: the decoded datum plus the output holding it."""

    tx_hash: str
    output_index: int
    lovelace: int
    datum: ReviewDatum
    utxo: UTxO

    @property
    def ref(self) -> OutputRef:
        return self.utxo.ref

    def to_dict(self) -> Dict[str, Any]:
        data = self.datum.to_dict()
        data.update({
            "tx_hash": self.tx_hash,
            "output_index": self.output_index,
            "lovelace": self.lovelace,
        })
        return data


def _hex(value: Union[bytes, str]) -> str:
    return value.hex() if isinstance(value, (bytes, bytearray)) else value.lower()


class ReviewIndexer:
    """
    Query reviews locked at the script address.

    [USAGE]
        indexer = ReviewIndexer(provider, script.address)
        reviews = await indexer.reviews_for_product(product_id)
    """

    def __init__(self, provider: LedgerProvider, script_address: str):
        self.provider = provider
        self.script_address = script_address

    @staticmethod
    def decode_utxo(utxo: UTxO) -> Optional[ReviewUTXO]:
        """ReviewUTXO for utxo, or None if it carries no review datum."""
        if utxo.inline_datum is None:
            logger.debug(f"[INDEX] Skipping {utxo.ref}: no inline datum")
            return None
        try:
            datum = decode_datum(utxo.inline_datum)
        except InvalidDatum as e:
            logger.debug(f"[INDEX] Skipping {utxo.ref}: {e}")
            return None
        return ReviewUTXO(
            tx_hash=utxo.tx_hash,
            output_index=utxo.output_index,
            lovelace=utxo.value.coin,
            datum=datum,
            utxo=utxo,
        )

    async def fetch_reviews(self) -> List[ReviewUTXO]:
        """
        All decodable reviews currently at the script address.

        Raises:
            ProviderUnavailable: Ledger-data provider unreachable
        """
        utxos = await self.provider.fetch_utxos(self.script_address)
        reviews = []
        for utxo in utxos:
            review = self.decode_utxo(utxo)
            if review is not None:
                reviews.append(review)
        logger.debug(f"[INDEX] {len(reviews)}/{len(utxos)} script UTxOs decoded as reviews")
        return reviews

    async def reviews_for_product(self, product_id: Union[bytes, str]) -> List[ReviewUTXO]:
        wanted = _hex(product_id)
        return [r for r in await self.fetch_reviews() if r.datum.product_id.hex() == wanted]

    async def reviews_by_reviewer(self, reviewer: Union[bytes, str]) -> List[ReviewUTXO]:
        wanted = _hex(reviewer)
        return [r for r in await self.fetch_reviews() if r.datum.reviewer.hex() == wanted]

    async def get_review(self, tx_hash: str, output_index: int) -> Optional[ReviewUTXO]:
        """Review at (tx_hash, output_index), or None if spent or absent."""
        ref = OutputRef(tx_hash=tx_hash.lower(), index=int(output_index))
        for review in await self.fetch_reviews():
            if review.ref == ref:
                return review
        return None
