"""
Transaction Assembler
=====================

[TWO-PHASE] Second half of the signing protocol: merge the witness set
returned by an external signer into the unsigned transaction.

The merge is a structural splice:
- body bytes, is_valid and auxiliary data are copied verbatim
- redeemers and scripts already in the witness set are copied verbatim
- vkey witnesses are inserted under key 0, deduplicated, sorted by vkey

[SECURITY] The set of signing key hashes, counting witnesses already
embedded in the transaction, must equal the declared required signers
exactly, and every signature must verify against the transaction id.
Anything else is refused before it reaches the ledger.
"""

import logging
from typing import Dict, List, Optional, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from core.cbor import CBORError, RawCBOR, dumps, loads

from .errors import AssemblyError
from .transaction import TX_BODY_INPUTS, WITNESS_VKEYS, UnsignedTransaction, VKeyWitness, WitnessSet, _set_items

logger = logging.getLogger(__name__)

TxLike = Union[UnsignedTransaction, bytes, str]
WitnessLike = Union[WitnessSet, bytes, str]


def _as_tx(tx: TxLike) -> UnsignedTransaction:
    if isinstance(tx, UnsignedTransaction):
        return tx
    if isinstance(tx, str):
        return UnsignedTransaction.from_hex(tx)
    return UnsignedTransaction(cbor=bytes(tx))


def _as_witness_set(witness_set: WitnessLike) -> WitnessSet:
    if isinstance(witness_set, WitnessSet):
        return witness_set
    return WitnessSet.from_cbor(witness_set)


class TransactionAssembler:
    """
    Merge signatures into built transactions.

    [USAGE]
        assembler = TransactionAssembler()
        signed = assembler.assemble(unsigned_tx=tx, witness_set=wallet_witnesses)
        await provider.submit_transaction(signed)
    """

    def __init__(self, verify_signatures: bool = True):
        self.verify_signatures = verify_signatures

    def assemble(
        self,
        signed_tx: Optional[TxLike] = None,
        unsigned_tx: Optional[TxLike] = None,
        witness_set: Optional[WitnessLike] = None,
    ) -> bytes:
        """
        Produce a finalized transaction.

        Either signed_tx (validated and passed through) or the pair
        unsigned_tx + witness_set (merged).

        Raises:
            AssemblyError: Missing inputs, malformed CBOR, signer mismatch
                or a signature that does not verify
        """
        if signed_tx is not None:
            tx = _as_tx(signed_tx)
            self.validate(tx)
            logger.debug(f"[TX] Passing through signed transaction {tx.tx_id[:16]}")
            return tx.cbor

        if unsigned_tx is None or witness_set is None:
            raise AssemblyError("Either signed_tx or unsigned_tx with witness_set is required")

        return self.merge(_as_tx(unsigned_tx), _as_witness_set(witness_set))

    def validate(self, tx: UnsignedTransaction) -> None:
        """Structural check of a finalized transaction."""
        parts = tx.parts()
        if TX_BODY_INPUTS not in tx.body:
            raise AssemblyError("Transaction body has no inputs")
        try:
            witness = loads(parts[1])
        except CBORError as e:
            raise AssemblyError(f"Malformed witness set: {e}") from e
        if not isinstance(witness, dict):
            raise AssemblyError("Witness set must be a map")

    def merge(self, tx: UnsignedTransaction, witness_set: WitnessSet) -> bytes:
        """Splice vkey witnesses into tx; deterministic for identical inputs."""
        parts = tx.parts()
        tx_id = tx.tx_id
        required = frozenset(tx.required_signers)

        merged: Dict[bytes, VKeyWitness] = {}
        others: List[tuple] = []
        for key, raw in tx.witness_entries():
            if key == WITNESS_VKEYS:
                try:
                    for vkey, signature in _set_items(loads(raw)):
                        merged[vkey] = VKeyWitness(vkey=vkey, signature=signature)
                except (CBORError, ValueError, TypeError) as e:
                    raise AssemblyError(f"Malformed existing vkey witnesses: {e}") from e
            else:
                others.append((key, RawCBOR(raw)))
        for witness in witness_set.vkey_witnesses:
            merged[witness.vkey] = witness

        provided = WitnessSet(vkey_witnesses=tuple(merged.values())).key_hashes
        missing = required - provided
        if missing:
            raise AssemblyError(
                f"Missing signatures for required signers: {sorted(h.hex() for h in missing)}"
            )
        unexpected = provided - required
        if unexpected:
            raise AssemblyError(
                f"Witness keys not declared as required signers: {sorted(h.hex() for h in unexpected)}"
            )

        if self.verify_signatures:
            message = bytes.fromhex(tx_id)
            for witness in merged.values():
                self._verify(witness, message)

        witness_map: Dict[int, object] = {}
        if merged:
            witness_map[WITNESS_VKEYS] = [merged[vkey].to_cbor() for vkey in sorted(merged)]
        for key, raw in others:
            witness_map[key] = raw
        witness_map = dict(sorted(witness_map.items()))

        signed = dumps([RawCBOR(parts[0]), witness_map, RawCBOR(parts[2]), RawCBOR(parts[3])])
        logger.info(f"[TX] Assembled {tx_id[:16]} with {len(merged)} signature(s)")
        return signed

    @staticmethod
    def _verify(witness: VKeyWitness, message: bytes) -> None:
        try:
            VerifyKey(witness.vkey).verify(message, witness.signature)
        except (BadSignatureError, ValueError, TypeError) as e:
            raise AssemblyError(
                f"Signature by {witness.key_hash.hex()} does not verify against the transaction id"
            ) from e


def assemble(
    signed_tx: Optional[TxLike] = None,
    unsigned_tx: Optional[TxLike] = None,
    witness_set: Optional[WitnessLike] = None,
) -> bytes:
    """Module-level shortcut using a verifying assembler."""
    return TransactionAssembler().assemble(signed_tx, unsigned_tx, witness_set)
