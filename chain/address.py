"""
Cardano address helpers.

[ADDRESS] Shelley address = header byte + payload.
- header high nibble: address type (0 base key, 1 base script, 6 enterprise
  key, 7 enterprise script, ...)
- header low nibble: network id (0 test networks, 1 mainnet)

Base addresses are 57 bytes, which encodes to more than 90 bech32
characters; the BIP-173 length limit does not apply here, so encode and
decode are built on the bech32 checksum primitives directly.
"""

from typing import Optional, Tuple

from bech32 import CHARSET, bech32_hrp_expand, bech32_polymod, convertbits

from .errors import ValidationError

BECH32_CONST = 1

MAINNET_PREFIX = "addr"
TESTNET_PREFIX = "addr_test"

ENTERPRISE_KEY = 0x6
ENTERPRISE_SCRIPT = 0x7
_KEY_PAYMENT_TYPES = (0x0, 0x2, 0x4, 0x6)


def bech32_encode(hrp: str, data: bytes) -> str:
    words = convertbits(list(data), 8, 5, True)
    polymod = bech32_polymod(bech32_hrp_expand(hrp) + words + [0] * 6) ^ BECH32_CONST
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(CHARSET[d] for d in words + checksum)


def bech32_decode(address: str) -> Tuple[str, bytes]:
    """
    Decode a bech32 string of any length.

    Raises:
        ValidationError: Mixed case, bad characters or checksum
    """
    if address.lower() != address and address.upper() != address:
        raise ValidationError(f"Mixed-case bech32 string: {address}")
    address = address.lower()

    pos = address.rfind("1")
    if pos < 1 or pos + 7 > len(address):
        raise ValidationError(f"Invalid bech32 separator position: {address}")

    hrp = address[:pos]
    try:
        data = [CHARSET.index(c) for c in address[pos + 1:]]
    except ValueError as e:
        raise ValidationError(f"Invalid bech32 character in {address}") from e

    if bech32_polymod(bech32_hrp_expand(hrp) + data) != BECH32_CONST:
        raise ValidationError(f"Invalid bech32 checksum: {address}")

    decoded = convertbits(data[:-6], 5, 8, False)
    if decoded is None:
        raise ValidationError(f"Invalid bech32 padding: {address}")
    return hrp, bytes(decoded)


def prefix_for(network_id: int) -> str:
    return MAINNET_PREFIX if network_id == 1 else TESTNET_PREFIX


def encode_address(raw: bytes) -> str:
    """Encode raw address bytes with the prefix implied by the header."""
    if not raw:
        raise ValidationError("Empty address")
    return bech32_encode(prefix_for(raw[0] & 0x0F), raw)


def to_address_bytes(address: str) -> bytes:
    """Accept bech32 or hex and return raw address bytes."""
    if not address:
        raise ValidationError("Empty address")
    if address.startswith(MAINNET_PREFIX):
        return bech32_decode(address)[1]
    try:
        return bytes.fromhex(address)
    except ValueError as e:
        raise ValidationError(f"Address is neither bech32 nor hex: {address}") from e


def ensure_bech32(address: str) -> str:
    """Wallet APIs return hex addresses; normalize to bech32."""
    if address.startswith(MAINNET_PREFIX):
        return address
    return encode_address(to_address_bytes(address))


def enterprise_address(credential_hash: bytes, network_id: int, script: bool = False) -> str:
    """Enterprise (no stake part) address for a key or script hash."""
    if len(credential_hash) != 28:
        raise ValidationError(f"Credential hash must be 28 bytes, got {len(credential_hash)}")
    addr_type = ENTERPRISE_SCRIPT if script else ENTERPRISE_KEY
    header = (addr_type << 4) | (network_id & 0x0F)
    return encode_address(bytes([header]) + credential_hash)


def payment_key_hash(address: str) -> Optional[bytes]:
    """Payment key hash of a key-locked address, None for script addresses."""
    raw = to_address_bytes(address)
    if len(raw) < 29 or (raw[0] >> 4) not in _KEY_PAYMENT_TYPES:
        return None
    return raw[1:29]
