"""
Ledger Transaction Primitives
=============================

[LEDGER] Cardano-shaped transaction structures and their CBOR layout.

Transaction (4-element array):
    [ body, witness_set, is_valid, auxiliary_data ]

Body map:
| Key | Field              |
|-----|--------------------|
| 0   | inputs             |
| 1   | outputs            |
| 2   | fee                |
| 11  | script data hash   |
| 13  | collateral inputs  |
| 14  | required signers   |

Witness set map:
| Key | Field              |
|-----|--------------------|
| 0   | vkey witnesses     |
| 3/6/7 | Plutus V1/V2/V3 scripts |
| 5   | redeemers          |

[SECURITY] Transaction id = BLAKE2b-256(body bytes). Witnesses sign the id,
so the body is never re-encoded once built.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from core.cbor import CBORError, RawCBOR, Tag, dumps, loads, split_array, split_map

from .errors import AssemblyError
from .hashing import blake2b_256, key_hash

TX_BODY_INPUTS = 0
TX_BODY_OUTPUTS = 1
TX_BODY_FEE = 2
TX_BODY_SCRIPT_DATA_HASH = 11
TX_BODY_COLLATERAL = 13
TX_BODY_REQUIRED_SIGNERS = 14

WITNESS_VKEYS = 0
WITNESS_REDEEMERS = 5

REDEEMER_SPEND = 0

TAG_SET = 258
TAG_EMBEDDED_CBOR = 24

OUTPUT_DATUM_HASH = 0
OUTPUT_DATUM_INLINE = 1

POLICY_ID_HEX_LEN = 56


def _set_items(value: Any) -> List[Any]:
    """Sets may arrive tagged (258) or as plain arrays."""
    if isinstance(value, Tag) and value.tag == TAG_SET:
        value = value.value
    if not isinstance(value, list):
        raise ValueError(f"Expected array, got {type(value).__name__}")
    return list(value)


# ============================================================================
# Outputs and Values
# ============================================================================

@dataclass(frozen=True, order=True)
class OutputRef:
    """Reference to a transaction output: (tx_hash, index)."""

    tx_hash: str
    index: int

    def to_cbor(self) -> List[Any]:
        return [bytes.fromhex(self.tx_hash), self.index]

    @classmethod
    def from_cbor(cls, value: Any) -> "OutputRef":
        tx_hash, index = value
        return cls(tx_hash=bytes(tx_hash).hex(), index=int(index))

    def __str__(self) -> str:
        return f"{self.tx_hash}#{self.index}"


@dataclass(frozen=True)
class Value:
    """
    Lovelace plus an optional multi-asset bundle.

    Assets are kept as sorted (unit, quantity) pairs where unit is
    policy id hex (56 chars) followed by asset name hex.
    """

    coin: int
    assets: Tuple[Tuple[str, int], ...] = ()

    @classmethod
    def from_amounts(cls, amounts: List[Dict[str, Any]]) -> "Value":
        """Build from provider amount lists: [{"unit", "quantity"}, ...]."""
        coin = 0
        assets: Dict[str, int] = {}
        for entry in amounts:
            quantity = int(entry["quantity"])
            if entry["unit"] == "lovelace":
                coin += quantity
            else:
                assets[entry["unit"]] = assets.get(entry["unit"], 0) + quantity
        return cls(coin=coin, assets=tuple(sorted(assets.items())))

    def to_cbor(self) -> Any:
        if not self.assets:
            return self.coin
        multi: Dict[bytes, Dict[bytes, int]] = {}
        for unit, quantity in self.assets:
            policy = bytes.fromhex(unit[:POLICY_ID_HEX_LEN])
            name = bytes.fromhex(unit[POLICY_ID_HEX_LEN:])
            multi.setdefault(policy, {})[name] = quantity
        return [self.coin, multi]

    @classmethod
    def from_cbor(cls, value: Any) -> "Value":
        if isinstance(value, int):
            return cls(coin=value)
        coin, multi = value
        assets = []
        for policy, names in multi.items():
            for name, quantity in names.items():
                assets.append((policy.hex() + name.hex(), quantity))
        return cls(coin=coin, assets=tuple(sorted(assets)))

    def __add__(self, other: "Value") -> "Value":
        merged = dict(self.assets)
        for unit, quantity in other.assets:
            merged[unit] = merged.get(unit, 0) + quantity
        return Value(coin=self.coin + other.coin, assets=tuple(sorted(merged.items())))


@dataclass(frozen=True)
class UTxO:
    """Unspent output as seen by a ledger-data provider."""

    ref: OutputRef
    address: str
    value: Value
    inline_datum: Optional[bytes] = None

    @property
    def tx_hash(self) -> str:
        return self.ref.tx_hash

    @property
    def output_index(self) -> int:
        return self.ref.index

    @property
    def is_pure_ada(self) -> bool:
        return not self.value.assets and self.inline_datum is None


@dataclass(frozen=True)
class TxOutput:
    """Transaction output (post-Alonzo map form)."""

    address: bytes
    value: Value
    inline_datum: Optional[bytes] = None

    def to_cbor(self) -> Dict[int, Any]:
        out: Dict[int, Any] = {0: self.address, 1: self.value.to_cbor()}
        if self.inline_datum is not None:
            out[2] = [OUTPUT_DATUM_INLINE, Tag(TAG_EMBEDDED_CBOR, self.inline_datum)]
        return out

    @classmethod
    def from_cbor(cls, value: Any) -> "TxOutput":
        if isinstance(value, list):
            # Legacy array form: [address, value, ?datum_hash]
            return cls(address=value[0], value=Value.from_cbor(value[1]))

        inline = None
        datum_option = value.get(2)
        if datum_option is not None and datum_option[0] == OUTPUT_DATUM_INLINE:
            embedded = datum_option[1]
            inline = embedded.value if isinstance(embedded, Tag) else embedded
        return cls(address=value[0], value=Value.from_cbor(value[1]), inline_datum=inline)


# ============================================================================
# Witnesses
# ============================================================================

@dataclass(frozen=True)
class Redeemer:
    """Script spend argument: [tag, index, data, [mem, steps]]."""

    index: int
    data: bytes
    mem: int
    steps: int
    tag: int = REDEEMER_SPEND

    def to_cbor(self) -> List[Any]:
        return [self.tag, self.index, RawCBOR(self.data), [self.mem, self.steps]]


@dataclass(frozen=True)
class VKeyWitness:
    """Ed25519 verification key and its signature over the tx id."""

    vkey: bytes
    signature: bytes

    @property
    def key_hash(self) -> bytes:
        return key_hash(self.vkey)

    def to_cbor(self) -> List[bytes]:
        return [self.vkey, self.signature]


@dataclass(frozen=True)
class WitnessSet:
    """
    Signatures produced by an external signer (wallet).

    [WALLET] CIP-30 signTx(tx, partial=true) returns exactly this map,
    hex encoded: {0: [[vkey, signature], ...]}.
    """

    vkey_witnesses: Tuple[VKeyWitness, ...] = ()

    @property
    def key_hashes(self) -> frozenset:
        return frozenset(w.key_hash for w in self.vkey_witnesses)

    def to_cbor(self) -> bytes:
        if not self.vkey_witnesses:
            return dumps({})
        return dumps({WITNESS_VKEYS: [w.to_cbor() for w in self.vkey_witnesses]})

    @property
    def hex(self) -> str:
        return self.to_cbor().hex()

    @classmethod
    def from_cbor(cls, data: Union[bytes, str]) -> "WitnessSet":
        """
        Raises:
            AssemblyError: Not a witness set map
        """
        try:
            raw = bytes.fromhex(data) if isinstance(data, str) else bytes(data)
            value = loads(raw)
            if not isinstance(value, dict):
                raise AssemblyError("Witness set must be a map")
            witnesses = []
            for item in _set_items(value.get(WITNESS_VKEYS, [])):
                vkey, signature = item
                if not isinstance(vkey, bytes) or not isinstance(signature, bytes):
                    raise AssemblyError("Malformed vkey witness")
                witnesses.append(VKeyWitness(vkey=vkey, signature=signature))
        except (CBORError, ValueError, TypeError) as e:
            raise AssemblyError(f"Malformed witness set: {e}") from e
        return cls(vkey_witnesses=tuple(witnesses))


# ============================================================================
# Transaction Body
# ============================================================================

@dataclass
class TransactionBody:
    """Transaction body; inputs, collateral and signers are encoded sorted."""

    inputs: List[OutputRef]
    outputs: List[TxOutput]
    fee: int
    collateral: List[OutputRef] = field(default_factory=list)
    required_signers: List[bytes] = field(default_factory=list)
    script_data_hash: Optional[bytes] = None

    def to_cbor(self) -> bytes:
        body: Dict[int, Any] = {
            TX_BODY_INPUTS: [ref.to_cbor() for ref in sorted(set(self.inputs))],
            TX_BODY_OUTPUTS: [out.to_cbor() for out in self.outputs],
            TX_BODY_FEE: self.fee,
        }
        if self.script_data_hash is not None:
            body[TX_BODY_SCRIPT_DATA_HASH] = self.script_data_hash
        if self.collateral:
            body[TX_BODY_COLLATERAL] = [ref.to_cbor() for ref in sorted(set(self.collateral))]
        if self.required_signers:
            body[TX_BODY_REQUIRED_SIGNERS] = sorted(set(self.required_signers))
        return dumps(body)


def build_transaction(body_cbor: bytes, witness_set: Dict[int, Any]) -> bytes:
    """Wrap an encoded body and witness map into a full transaction."""
    return dumps([RawCBOR(body_cbor), witness_set, True, None])


# ============================================================================
# Unsigned Transaction
# ============================================================================

@dataclass(frozen=True)
class UnsignedTransaction:
    """
    Built transaction awaiting signatures.

    [TWO-PHASE] Opaque bytes handed to an external signer; the body is
    never re-encoded afterwards so the signed id stays valid.
    """

    cbor: bytes

    @classmethod
    def from_hex(cls, tx_hex: str) -> "UnsignedTransaction":
        try:
            return cls(cbor=bytes.fromhex(tx_hex))
        except ValueError as e:
            raise AssemblyError(f"Transaction is not valid hex: {e}") from e

    @property
    def hex(self) -> str:
        return self.cbor.hex()

    def parts(self) -> List[bytes]:
        """
        Raw encodings of [body, witness_set, is_valid, auxiliary_data].

        Raises:
            AssemblyError: Not a 4-element transaction array
        """
        try:
            parts = split_array(self.cbor)
        except CBORError as e:
            raise AssemblyError(f"Malformed transaction: {e}") from e
        if len(parts) != 4:
            raise AssemblyError(f"Transaction must have 4 parts, got {len(parts)}")
        return parts

    @property
    def body_cbor(self) -> bytes:
        return self.parts()[0]

    @property
    def tx_id(self) -> str:
        return blake2b_256(self.body_cbor).hex()

    @property
    def body(self) -> Dict[int, Any]:
        try:
            body = loads(self.body_cbor)
        except CBORError as e:
            raise AssemblyError(f"Malformed transaction body: {e}") from e
        if not isinstance(body, dict):
            raise AssemblyError("Transaction body must be a map")
        return body

    @property
    def inputs(self) -> List[OutputRef]:
        return [OutputRef.from_cbor(v) for v in _set_items(self.body.get(TX_BODY_INPUTS, []))]

    @property
    def outputs(self) -> List[TxOutput]:
        return [TxOutput.from_cbor(v) for v in self.body.get(TX_BODY_OUTPUTS, [])]

    @property
    def fee(self) -> int:
        return self.body.get(TX_BODY_FEE, 0)

    @property
    def collateral(self) -> List[OutputRef]:
        return [OutputRef.from_cbor(v) for v in _set_items(self.body.get(TX_BODY_COLLATERAL, []))]

    @property
    def required_signers(self) -> Tuple[bytes, ...]:
        try:
            signers = _set_items(self.body.get(TX_BODY_REQUIRED_SIGNERS, []))
        except ValueError as e:
            raise AssemblyError(f"Malformed required signers: {e}") from e
        return tuple(signers)

    def witness_entries(self) -> List[Tuple[Any, bytes]]:
        """(key, raw value) pairs of the embedded witness set."""
        try:
            return split_map(self.parts()[1])
        except CBORError as e:
            raise AssemblyError(f"Malformed witness set: {e}") from e

    @property
    def redeemers(self) -> List[Any]:
        for key, raw in self.witness_entries():
            if key == WITNESS_REDEEMERS:
                return loads(raw)
        return []
