"""
CBOR Wire Codec
===============

[WIRE] Minimal RFC 8949 codec for ledger structures (transactions,
witness sets, Plutus data). Built on struct, like the rest of the
binary layer.

Initial byte layout:
====================

| Bits | Meaning                                            |
|------|----------------------------------------------------|
| 7..5 | Major type (0..7)                                  |
| 4..0 | Additional info: 0-23 inline, 24/25/26/27 = 1/2/4/8 |
|      | byte argument, 31 = indefinite length / break      |

| Major | Type            | Python value                      |
|-------|-----------------|-----------------------------------|
| 0     | unsigned int    | int                               |
| 1     | negative int    | int                               |
| 2     | byte string     | bytes                             |
| 3     | text string     | str                               |
| 4     | array           | list / IndefiniteList             |
| 5     | map             | dict                              |
| 6     | tag             | Tag (2/3 -> big int)              |
| 7     | simple / float  | bool / None / float               |

[SPLICE] Decoder.read_raw() returns the exact bytes of the next item.
split_array / split_map use it so callers can rebuild a container
without re-encoding the items they do not touch.
"""

import struct
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


# ============================================================================
# Constants
# ============================================================================

MAJOR_UINT = 0
MAJOR_NEGINT = 1
MAJOR_BYTES = 2
MAJOR_TEXT = 3
MAJOR_ARRAY = 4
MAJOR_MAP = 5
MAJOR_TAG = 6
MAJOR_SIMPLE = 7

INFO_INDEFINITE = 31
BREAK = 0xFF

TAG_POS_BIGNUM = 2
TAG_NEG_BIGNUM = 3

UINT64_MAX = 0xFFFFFFFFFFFFFFFF

# Nested arrays, maps and tags deeper than this are rejected
MAX_NESTING_DEPTH = 256

_ARG_FORMATS = {
    24: ('>B', 1),
    25: ('>H', 2),
    26: ('>I', 4),
    27: ('>Q', 8),
}


class CBORError(Exception):
    """CBOR codec errors."""
    pass


class CBORDecodeError(CBORError):
    """Malformed or truncated input."""
    pass


class CBOREncodeError(CBORError):
    """Value cannot be represented."""
    pass


# ============================================================================
# Value Wrappers
# ============================================================================

@dataclass(frozen=True)
class Tag:
    """Semantic tag (major type 6)."""

    tag: int
    value: Any


@dataclass(frozen=True)
class RawCBOR:
    """Pre-encoded item, written to the output verbatim."""

    data: bytes


class IndefiniteList(list):
    """
    List encoded as an indefinite-length array (0x9f ... 0xff).

    [PLUTUS] Plutus constructor fields are serialized this way by the
    reference serializers; the decoder returns this type so the form
    survives a round trip.
    """
    pass


# ============================================================================
# Encoder
# ============================================================================

def encode_head(major: int, value: int) -> bytes:
    """Encode initial byte plus argument using the shortest form."""
    if value < 0:
        raise CBOREncodeError(f"Negative argument: {value}")

    initial = major << 5
    if value <= 23:
        return struct.pack('>B', initial | value)
    if value <= 0xFF:
        return struct.pack('>BB', initial | 24, value)
    if value <= 0xFFFF:
        return struct.pack('>BH', initial | 25, value)
    if value <= 0xFFFFFFFF:
        return struct.pack('>BI', initial | 26, value)
    if value <= UINT64_MAX:
        return struct.pack('>BQ', initial | 27, value)
    raise CBOREncodeError(f"Argument too large: {value}")


def _encode_int(value: int, out: bytearray) -> None:
    if value >= 0:
        if value <= UINT64_MAX:
            out += encode_head(MAJOR_UINT, value)
        else:
            size = (value.bit_length() + 7) // 8
            out += encode_head(MAJOR_TAG, TAG_POS_BIGNUM)
            _encode(value.to_bytes(size, 'big'), out)
        return

    magnitude = -1 - value
    if magnitude <= UINT64_MAX:
        out += encode_head(MAJOR_NEGINT, magnitude)
    else:
        size = (magnitude.bit_length() + 7) // 8
        out += encode_head(MAJOR_TAG, TAG_NEG_BIGNUM)
        _encode(magnitude.to_bytes(size, 'big'), out)


def _encode(obj: Any, out: bytearray) -> None:
    if isinstance(obj, RawCBOR):
        out += obj.data
    elif obj is False:
        out.append(0xF4)
    elif obj is True:
        out.append(0xF5)
    elif obj is None:
        out.append(0xF6)
    elif isinstance(obj, int):
        _encode_int(obj, out)
    elif isinstance(obj, (bytes, bytearray)):
        out += encode_head(MAJOR_BYTES, len(obj))
        out += obj
    elif isinstance(obj, str):
        raw = obj.encode('utf-8')
        out += encode_head(MAJOR_TEXT, len(raw))
        out += raw
    elif isinstance(obj, IndefiniteList):
        out.append((MAJOR_ARRAY << 5) | INFO_INDEFINITE)
        for item in obj:
            _encode(item, out)
        out.append(BREAK)
    elif isinstance(obj, (list, tuple)):
        out += encode_head(MAJOR_ARRAY, len(obj))
        for item in obj:
            _encode(item, out)
    elif isinstance(obj, dict):
        # Insertion order is kept: callers pass keys in canonical order
        out += encode_head(MAJOR_MAP, len(obj))
        for key, value in obj.items():
            _encode(key, out)
            _encode(value, out)
    elif isinstance(obj, Tag):
        out += encode_head(MAJOR_TAG, obj.tag)
        _encode(obj.value, out)
    else:
        raise CBOREncodeError(f"Cannot encode {type(obj).__name__}")


def dumps(obj: Any) -> bytes:
    """Serialize a Python value to CBOR bytes."""
    out = bytearray()
    _encode(obj, out)
    return bytes(out)


# ============================================================================
# Decoder
# ============================================================================

class Decoder:
    """
    Streaming CBOR decoder over a byte buffer.

    [USAGE]
        decoder = Decoder(data)
        value = decoder.decode()
        raw = decoder.read_raw()   # exact bytes of the next item
    """

    def __init__(self, data: bytes, pos: int = 0, max_depth: int = MAX_NESTING_DEPTH):
        self.data = bytes(data)
        self.pos = pos
        self.max_depth = max_depth
        self.depth = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def _read(self, size: int) -> bytes:
        if size > self.remaining:
            raise CBORDecodeError(
                f"Truncated input: need {size} bytes at {self.pos}, have {self.remaining}"
            )
        chunk = self.data[self.pos:self.pos + size]
        self.pos += size
        return chunk

    def at_break(self) -> bool:
        """True when the next byte is the indefinite-length terminator."""
        if self.remaining < 1:
            raise CBORDecodeError("Missing break marker")
        return self.data[self.pos] == BREAK

    def _consume_break(self) -> None:
        self._read(1)

    def read_head(self) -> Tuple[int, int, Optional[int]]:
        """
        Read the initial byte and its argument.

        Returns:
            (major, info, argument); argument is None for indefinite length
        """
        initial = self._read(1)[0]
        major = initial >> 5
        info = initial & 0x1F

        if info < 24:
            return major, info, info
        if info in _ARG_FORMATS:
            fmt, size = _ARG_FORMATS[info]
            (value,) = struct.unpack(fmt, self._read(size))
            return major, info, value
        if info == INFO_INDEFINITE:
            if major in (MAJOR_UINT, MAJOR_NEGINT, MAJOR_TAG):
                raise CBORDecodeError(f"Indefinite length not allowed for major type {major}")
            if major == MAJOR_SIMPLE:
                raise CBORDecodeError(f"Unexpected break at {self.pos - 1}")
            return major, info, None
        raise CBORDecodeError(f"Reserved additional info {info} at {self.pos - 1}")

    def read_array_header(self) -> Optional[int]:
        """Read an array header; returns length or None for indefinite."""
        major, _, length = self.read_head()
        if major != MAJOR_ARRAY:
            raise CBORDecodeError(f"Expected array, got major type {major}")
        return length

    def read_map_header(self) -> Optional[int]:
        """Read a map header; returns entry count or None for indefinite."""
        major, _, length = self.read_head()
        if major != MAJOR_MAP:
            raise CBORDecodeError(f"Expected map, got major type {major}")
        return length

    def read_raw(self) -> bytes:
        """Skip the next item and return its exact encoding."""
        start = self.pos
        self.decode()
        return self.data[start:self.pos]

    def _read_string(self, major: int, length: Optional[int]) -> bytes:
        if length is not None:
            return self._read(length)

        # Chunked string: sequence of definite strings of the same major type
        chunks = []
        while not self.at_break():
            chunk_major, _, chunk_len = self.read_head()
            if chunk_major != major or chunk_len is None:
                raise CBORDecodeError("Invalid chunk in indefinite string")
            chunks.append(self._read(chunk_len))
        self._consume_break()
        return b''.join(chunks)

    def decode(self) -> Any:
        """
        Decode the next item.

        Raises:
            CBORDecodeError: Malformed input or nesting beyond max_depth
        """
        if self.depth >= self.max_depth:
            raise CBORDecodeError(f"Nesting deeper than {self.max_depth} levels at {self.pos}")
        self.depth += 1
        try:
            return self._decode_item()
        finally:
            self.depth -= 1

    def _decode_item(self) -> Any:
        major, info, value = self.read_head()

        if major == MAJOR_UINT:
            return value

        if major == MAJOR_NEGINT:
            return -1 - value

        if major == MAJOR_BYTES:
            return self._read_string(major, value)

        if major == MAJOR_TEXT:
            raw = self._read_string(major, value)
            try:
                return raw.decode('utf-8')
            except UnicodeDecodeError as e:
                raise CBORDecodeError(f"Invalid UTF-8 text: {e}") from e

        if major == MAJOR_ARRAY:
            if value is None:
                items = IndefiniteList()
                while not self.at_break():
                    items.append(self.decode())
                self._consume_break()
                return items
            return [self.decode() for _ in range(value)]

        if major == MAJOR_MAP:
            result: Dict[Any, Any] = {}
            count = 0
            while True:
                if value is None:
                    if self.at_break():
                        self._consume_break()
                        break
                elif count >= value:
                    break
                key = self.decode()
                try:
                    result[key] = self.decode()
                except TypeError as e:
                    raise CBORDecodeError(f"Unhashable map key: {key!r}") from e
                count += 1
            return result

        if major == MAJOR_TAG:
            inner = self.decode()
            if value in (TAG_POS_BIGNUM, TAG_NEG_BIGNUM):
                if not isinstance(inner, bytes):
                    raise CBORDecodeError("Bignum tag must wrap a byte string")
                magnitude = int.from_bytes(inner, 'big')
                return magnitude if value == TAG_POS_BIGNUM else -1 - magnitude
            return Tag(value, inner)

        # MAJOR_SIMPLE
        if info == 20:
            return False
        if info == 21:
            return True
        if info in (22, 23):
            return None
        if info == 25:
            return struct.unpack('>e', struct.pack('>H', value))[0]
        if info == 26:
            return struct.unpack('>f', struct.pack('>I', value))[0]
        if info == 27:
            return struct.unpack('>d', struct.pack('>Q', value))[0]
        raise CBORDecodeError(f"Unsupported simple value {value}")


def loads(data: bytes) -> Any:
    """
    Decode exactly one CBOR item.

    Raises:
        CBORDecodeError: Malformed input or trailing bytes
    """
    decoder = Decoder(data)
    value = decoder.decode()
    if decoder.remaining:
        raise CBORDecodeError(f"Trailing data: {decoder.remaining} bytes")
    return value


def split_array(data: bytes) -> List[bytes]:
    """Return the raw encoding of each item of a top-level array."""
    decoder = Decoder(data)
    length = decoder.read_array_header()
    items = []
    if length is None:
        while not decoder.at_break():
            items.append(decoder.read_raw())
        decoder._consume_break()
    else:
        for _ in range(length):
            items.append(decoder.read_raw())
    if decoder.remaining:
        raise CBORDecodeError(f"Trailing data: {decoder.remaining} bytes")
    return items


def split_map(data: bytes) -> List[Tuple[Any, bytes]]:
    """Return (decoded key, raw value) pairs of a top-level map."""
    decoder = Decoder(data)
    length = decoder.read_map_header()
    entries = []
    while True:
        if length is None:
            if decoder.at_break():
                decoder._consume_break()
                break
        elif len(entries) >= length:
            break
        key = decoder.decode()
        entries.append((key, decoder.read_raw()))
    if decoder.remaining:
        raise CBORDecodeError(f"Trailing data: {decoder.remaining} bytes")
    return entries
