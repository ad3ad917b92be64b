"""
Two-Phase Signing Pipeline
==========================

[TWO-PHASE] Explicit state machine around an external signer:

    BUILT --sign/attach_witness--> SIGNED --assemble--> ASSEMBLED --submit--> SUBMITTED

Each step checks the current state. A rejected submission leaves the
pipeline in ASSEMBLED; there is no automatic retry because a rejection
usually means the spent review output changed and the transaction has to
be rebuilt from fresh ledger state.

[RESUME] to_dict()/from_dict() carry the hex state across a dropped
signing step (e.g. the wallet popup was closed and reopened later).
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional, Union

from .assembler import TransactionAssembler
from .errors import AssemblyError, PipelineError
from .provider import LedgerProvider
from .signer import Signer
from .transaction import UnsignedTransaction, WitnessSet

logger = logging.getLogger(__name__)


class TxState(Enum):
    BUILT = "built"
    SIGNED = "signed"
    ASSEMBLED = "assembled"
    SUBMITTED = "submitted"


class TxPipeline:
    """
    Carries one transaction from build to submission.

    [USAGE]
        pipeline = TxPipeline(await builder.build_submission(...))
        await pipeline.sign(wallet_signer)
        pipeline.assemble()
        tx_hash = await pipeline.submit(provider)
    """

    def __init__(
        self,
        unsigned: UnsignedTransaction,
        assembler: Optional[TransactionAssembler] = None,
    ):
        self.unsigned = unsigned
        self.assembler = assembler or TransactionAssembler()
        self.state = TxState.BUILT
        self.witness_set: Optional[WitnessSet] = None
        self.signed: Optional[bytes] = None
        self.tx_hash: Optional[str] = None

    @property
    def tx_id(self) -> str:
        return self.unsigned.tx_id

    def _require(self, *states: TxState) -> None:
        if self.state not in states:
            expected = "/".join(s.name for s in states)
            raise PipelineError(
                f"Transaction {self.tx_id[:16]} is {self.state.name}, expected {expected}"
            )

    # ========================================================================
    # Transitions
    # ========================================================================

    async def sign(self, signer: Signer) -> WitnessSet:
        """Request a witness set from signer."""
        self._require(TxState.BUILT)
        witness_set = await signer.sign(self.unsigned)
        return self.attach_witness(witness_set)

    def attach_witness(self, witness_set: Union[WitnessSet, bytes, str]) -> WitnessSet:
        """Record a witness set obtained out of band (wallet hex)."""
        self._require(TxState.BUILT)
        if not isinstance(witness_set, WitnessSet):
            witness_set = WitnessSet.from_cbor(witness_set)
        self.witness_set = witness_set
        self.state = TxState.SIGNED
        logger.debug(f"[WALLET] {len(witness_set.vkey_witnesses)} witness(es) for {self.tx_id[:16]}")
        return witness_set

    def assemble(self) -> bytes:
        self._require(TxState.SIGNED)
        self.signed = self.assembler.assemble(
            unsigned_tx=self.unsigned, witness_set=self.witness_set
        )
        self.state = TxState.ASSEMBLED
        return self.signed

    async def submit(self, provider: LedgerProvider) -> str:
        """
        Single submission attempt.

        Raises:
            SubmissionRejected: Ledger refused; state stays ASSEMBLED
            ProviderUnavailable: Backend unreachable; state stays ASSEMBLED
        """
        self._require(TxState.ASSEMBLED)
        self.tx_hash = await provider.submit_transaction(self.signed)
        self.state = TxState.SUBMITTED
        return self.tx_hash

    # ========================================================================
    # Persistence
    # ========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "unsigned": self.unsigned.hex,
            "witness_set": self.witness_set.hex if self.witness_set else None,
            "signed": self.signed.hex() if self.signed else None,
            "tx_hash": self.tx_hash,
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        assembler: Optional[TransactionAssembler] = None,
    ) -> "TxPipeline":
        """
        Restore an exported pipeline.

        Raises:
            PipelineError: Unknown state or state without its artifacts
        """
        try:
            state = TxState(data.get("state", TxState.BUILT.value))
            pipeline = cls(UnsignedTransaction.from_hex(data["unsigned"]), assembler)
        except (AssemblyError, KeyError, ValueError, TypeError) as e:
            raise PipelineError(f"Invalid pipeline state: {e!r}") from e

        if data.get("witness_set"):
            pipeline.witness_set = WitnessSet.from_cbor(data["witness_set"])
        if data.get("signed"):
            pipeline.signed = bytes.fromhex(data["signed"])
        pipeline.tx_hash = data.get("tx_hash")

        if state is not TxState.BUILT and pipeline.witness_set is None:
            raise PipelineError(f"State {state.name} requires a witness set")
        if state in (TxState.ASSEMBLED, TxState.SUBMITTED) and pipeline.signed is None:
            raise PipelineError(f"State {state.name} requires the signed transaction")

        pipeline.state = state
        return pipeline
