"""
Core Module
===========
Shared low-level building blocks:
- cbor: binary codec for ledger structures
- logger: tag-aware log formatting
"""

from .cbor import (
    CBORError,
    CBORDecodeError,
    CBOREncodeError,
    Decoder,
    IndefiniteList,
    RawCBOR,
    Tag,
    dumps,
    loads,
    split_array,
    split_map,
)

__all__ = [
    "CBORError",
    "CBORDecodeError",
    "CBOREncodeError",
    "Decoder",
    "IndefiniteList",
    "RawCBOR",
    "Tag",
    "dumps",
    "loads",
    "split_array",
    "split_map",
]
