"""
Review Datum Codec
==================

[PLUTUS] Bit-exact mapping between ReviewDatum and the constructor-indexed
Plutus data the review validator expects:

    Constr 0 [ product_id, rating, review_hash, reviewer,
               timestamp, upvotes, flags, verified ]

| # | Field       | Plutus type | Constraint          |
|---|-------------|-------------|---------------------|
| 0 | product_id  | bytes       | 32 bytes            |
| 1 | rating      | int         | 1..5                |
| 2 | review_hash | bytes       | 32 bytes            |
| 3 | reviewer    | bytes       | non-empty key hash  |
| 4 | timestamp   | int         | >= 0 (unix seconds) |
| 5 | upvotes     | int         | >= 0                |
| 6 | flags       | int         | >= 0                |
| 7 | verified    | int         | 0 or 1              |

CBOR form: tag 121 (alternative 0) wrapping an indefinite-length array.

[CRITICAL] Any drift here desynchronizes the whole ledger: the validator
rejects spends of outputs whose datum it cannot parse.
"""

import dataclasses
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Tuple, Union

from core.cbor import CBORError, IndefiniteList, Tag, dumps, loads

from .errors import InvalidDatum, ValidationError
from .hashing import DIGEST_SIZE

REVIEW_CONSTRUCTOR = 0
REVIEW_FIELD_COUNT = 8

MIN_RATING = 1
MAX_RATING = 5

# Compact constructor tags: 121..127 -> 0..6, 1280..1400 -> 7..127
_COMPACT_BASE = 121
_EXTENDED_BASE = 1280
_GENERAL_TAG = 102


class ReviewAction(IntEnum):
    """Redeemer alternatives understood by the review validator."""

    UPVOTE = 0


# ============================================================================
# Plutus Constructor Helpers
# ============================================================================

def constr_tag(index: int) -> int:
    if 0 <= index <= 6:
        return _COMPACT_BASE + index
    if 7 <= index <= 127:
        return _EXTENDED_BASE + index - 7
    return _GENERAL_TAG


def constr(index: int, fields: List[Any]) -> Tag:
    """Build Plutus constructor data."""
    items = IndefiniteList(fields) if fields else []
    tag = constr_tag(index)
    if tag == _GENERAL_TAG:
        return Tag(tag, [index, items])
    return Tag(tag, items)


def unpack_constr(value: Any) -> Tuple[int, List[Any]]:
    """
    Split Plutus constructor data into (alternative, fields).

    Raises:
        InvalidDatum: Value is not constructor data
    """
    if not isinstance(value, Tag):
        raise InvalidDatum(f"Expected constructor data, got {type(value).__name__}")

    if _COMPACT_BASE <= value.tag <= _COMPACT_BASE + 6:
        index, fields = value.tag - _COMPACT_BASE, value.value
    elif _EXTENDED_BASE <= value.tag <= _EXTENDED_BASE + 120:
        index, fields = value.tag - _EXTENDED_BASE + 7, value.value
    elif value.tag == _GENERAL_TAG:
        if not isinstance(value.value, list) or len(value.value) != 2:
            raise InvalidDatum("Malformed general constructor")
        index, fields = value.value
    else:
        raise InvalidDatum(f"Unknown constructor tag {value.tag}")

    if not isinstance(fields, list):
        raise InvalidDatum("Constructor fields must be a list")
    return index, list(fields)


# ============================================================================
# Review Datum
# ============================================================================

@dataclass(frozen=True)
class ReviewDatum:
    """
    Review record stored inline at the script address.

    [UTXO] Immutable: a new generation is produced by upvoted(), the
    ledger retires the old output when the replacement is spent into place.
    """

    product_id: bytes
    rating: int
    review_hash: bytes
    reviewer: bytes
    timestamp: int
    upvotes: int = 0
    flags: int = 0
    verified: bool = False

    def __post_init__(self):
        problem = _check_fields(self)
        if problem:
            raise ValidationError(problem)

    def upvoted(self) -> "ReviewDatum":
        """Next generation with one more upvote."""
        return dataclasses.replace(self, upvotes=self.upvotes + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id.hex(),
            "rating": self.rating,
            "review_hash": self.review_hash.hex(),
            "reviewer": self.reviewer.hex(),
            "timestamp": self.timestamp,
            "upvotes": self.upvotes,
            "flags": self.flags,
            "verified": self.verified,
        }


def _check_fields(datum: ReviewDatum) -> str:
    """Return a description of the first violated invariant, or ''."""
    for name in ("product_id", "review_hash"):
        value = getattr(datum, name)
        if not isinstance(value, bytes) or len(value) != DIGEST_SIZE:
            return f"{name} must be {DIGEST_SIZE} bytes"
    if not isinstance(datum.reviewer, bytes) or not datum.reviewer:
        return "reviewer must be non-empty bytes"
    if isinstance(datum.rating, bool) or not isinstance(datum.rating, int):
        return "rating must be an integer"
    if not MIN_RATING <= datum.rating <= MAX_RATING:
        return f"rating must be in [{MIN_RATING}, {MAX_RATING}], got {datum.rating}"
    for name in ("timestamp", "upvotes", "flags"):
        value = getattr(datum, name)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return f"{name} must be a non-negative integer"
    if not isinstance(datum.verified, bool):
        return "verified must be a boolean"
    return ""


# ============================================================================
# Encode / Decode
# ============================================================================

def datum_to_plutus(datum: ReviewDatum) -> Tag:
    return constr(REVIEW_CONSTRUCTOR, [
        datum.product_id,
        datum.rating,
        datum.review_hash,
        datum.reviewer,
        datum.timestamp,
        datum.upvotes,
        datum.flags,
        int(datum.verified),
    ])


def encode_datum(datum: ReviewDatum) -> bytes:
    """Serialize a review datum to its on-chain CBOR bytes."""
    return dumps(datum_to_plutus(datum))


def _as_bytes(data: Union[bytes, str]) -> bytes:
    if isinstance(data, str):
        try:
            return bytes.fromhex(data)
        except ValueError as e:
            raise InvalidDatum(f"Datum is not valid hex: {e}") from e
    return bytes(data)


def decode_datum(data: Union[bytes, str]) -> ReviewDatum:
    """
    Parse on-chain datum bytes (or hex) into a ReviewDatum.

    Raises:
        InvalidDatum: Wrong alternative, field count, types or ranges
    """
    try:
        value = loads(_as_bytes(data))
    except CBORError as e:
        raise InvalidDatum(f"Datum is not valid CBOR: {e}") from e

    index, fields = unpack_constr(value)
    if index != REVIEW_CONSTRUCTOR:
        raise InvalidDatum(f"Unexpected constructor alternative {index}")
    if len(fields) != REVIEW_FIELD_COUNT:
        raise InvalidDatum(f"Expected {REVIEW_FIELD_COUNT} fields, got {len(fields)}")

    product_id, rating, review_hash, reviewer, timestamp, upvotes, flags, verified = fields

    for name, value in (("product_id", product_id), ("review_hash", review_hash), ("reviewer", reviewer)):
        if not isinstance(value, bytes):
            raise InvalidDatum(f"{name} must be a byte string")
    for name, value in (
        ("rating", rating), ("timestamp", timestamp), ("upvotes", upvotes),
        ("flags", flags), ("verified", verified),
    ):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidDatum(f"{name} must be an integer")
    if verified not in (0, 1):
        raise InvalidDatum(f"verified must be 0 or 1, got {verified}")

    try:
        return ReviewDatum(
            product_id=product_id,
            rating=rating,
            review_hash=review_hash,
            reviewer=reviewer,
            timestamp=timestamp,
            upvotes=upvotes,
            flags=flags,
            verified=bool(verified),
        )
    except ValidationError as e:
        raise InvalidDatum(str(e)) from e


def encode_upvote_redeemer(voter_key_hash: bytes) -> bytes:
    """Redeemer for an upvote spend: Constr 0 [voter]."""
    return dumps(constr(ReviewAction.UPVOTE, [voter_key_hash]))
