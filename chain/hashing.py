"""
Hash helpers for review content and ledger objects.

- SHA-256: review content hash, product id
- BLAKE2b-224: key hashes, script hashes
- BLAKE2b-256: transaction ids, script data hash
"""

import hashlib
import re

DIGEST_SIZE = 32
KEY_HASH_SIZE = 28

_HEX64 = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)


def blake2b_224(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=28).digest()


def blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def hash_review_content(review_text: str, rating: int, product_id: str) -> str:
    """SHA-256 of "{product_id}:{rating}:{review_text}" as hex."""
    content = f"{product_id}:{rating}:{review_text}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def generate_product_id(product_sku: str) -> str:
    """Product id is the SHA-256 of the SKU, hex encoded."""
    return hashlib.sha256(product_sku.encode("utf-8")).hexdigest()


def is_valid_hash(value: str) -> bool:
    """True for a 64-character hex digest."""
    return bool(_HEX64.match(value or ""))


def key_hash(verification_key: bytes) -> bytes:
    """Hash of an Ed25519 verification key (required-signer form)."""
    return blake2b_224(verification_key)
