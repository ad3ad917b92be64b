"""
Wallet balance decoder.

[WALLET] CIP-30 getBalance() returns a CBOR Value:
- 0x82 <coin> <multiasset map>   (wallet holds native assets)
- <coin>                         (ADA only)

Only the coin is decoded. This is a best-effort display helper, not a
general CBOR parser: anything unexpected yields 0.
"""

import logging
import struct
from decimal import Decimal
from typing import Union

logger = logging.getLogger(__name__)

LOVELACE_PER_ADA = Decimal(1_000_000)

ARRAY_OF_TWO = 0x82

# Additional-info byte -> (struct format, width)
_UINT_FORMS = {
    0x18: ('>B', 1),
    0x19: ('>H', 2),
    0x1A: ('>I', 4),
    0x1B: ('>Q', 8),
}


def _read_uint(data: bytes, pos: int) -> int:
    lead = data[pos]
    if lead <= 0x17:
        return lead
    if lead in _UINT_FORMS:
        fmt, width = _UINT_FORMS[lead]
        chunk = data[pos + 1:pos + 1 + width]
        if len(chunk) != width:
            raise ValueError(f"Truncated {width}-byte integer")
        return struct.unpack(fmt, chunk)[0]
    raise ValueError(f"Unrecognized leading byte 0x{lead:02x}")


def decode_lovelace(balance: Union[str, bytes]) -> int:
    """Decode the coin amount in lovelace; 0 on anything unrecognized."""
    try:
        data = bytes.fromhex(balance) if isinstance(balance, str) else bytes(balance)
        if not data:
            return 0
        pos = 1 if data[0] == ARRAY_OF_TWO else 0
        return _read_uint(data, pos)
    except (ValueError, IndexError) as e:
        logger.debug(f"[WALLET] Unparseable balance {balance!r}: {e}")
        return 0


def parse_cbor_balance(balance: Union[str, bytes]) -> Decimal:
    """Wallet balance in ADA."""
    return Decimal(decode_lovelace(balance)) / LOVELACE_PER_ADA
