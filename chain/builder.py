"""
Review Transaction Builder
==========================

[TX] Builds unsigned transactions for the two review actions:

1. Submission: lock a fresh ReviewDatum at the script address
   - wallet inputs -> [script output (2 ADA + inline datum), change]
   - reviewer key hash declared as required signer

2. Upvote: replace-via-spend of a live review output
   - script input (redeemer: Upvote{voter}) + wallet inputs for fees
   - -> [script output (same value, upvotes+1), change]
   - collateral, script witness, script data hash, voter as required signer

[UTXO] A review output is never mutated. The upvote transaction consumes
the current output and produces its replacement; only one transaction
spending a given reference can ever land, so racing upvoters lose at
submission time and must rebuild from fresh state.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Union

from config import TxConfig, config
from core.cbor import dumps

from .address import to_address_bytes
from .datum import ReviewDatum, decode_datum, encode_datum, encode_upvote_redeemer, MIN_RATING, MAX_RATING
from .errors import BuilderError, InsufficientFunds, ProviderUnavailable, ScriptUnavailable, UTXOError, ValidationError
from .hashing import DIGEST_SIZE, KEY_HASH_SIZE, blake2b_256
from .indexer import ReviewUTXO
from .provider import LedgerProvider
from .script import ValidatorScript
from .selection import estimate_fee, select_collateral, select_utxos
from .transaction import (
    WITNESS_REDEEMERS,
    Redeemer,
    TransactionBody,
    TxOutput,
    UnsignedTransaction,
    UTxO,
    Value,
    build_transaction,
)

logger = logging.getLogger(__name__)

BytesLike = Union[bytes, str]


def _to_bytes(value: BytesLike, name: str) -> bytes:
    if isinstance(value, str):
        try:
            return bytes.fromhex(value)
        except ValueError as e:
            raise ValidationError(f"{name} is not valid hex") from e
    return bytes(value)


def _digest(value: BytesLike, name: str) -> bytes:
    raw = _to_bytes(value, name)
    if len(raw) != DIGEST_SIZE:
        raise ValidationError(f"{name} must be {DIGEST_SIZE} bytes, got {len(raw)}")
    return raw


def _key_hash(value: BytesLike, name: str) -> bytes:
    raw = _to_bytes(value, name)
    if len(raw) != KEY_HASH_SIZE:
        raise ValidationError(f"{name} must be a {KEY_HASH_SIZE}-byte key hash, got {len(raw)}")
    return raw


def _sum_assets(utxos: Sequence[UTxO]) -> Value:
    total = Value(coin=0)
    for utxo in utxos:
        total = total + Value(coin=0, assets=utxo.value.assets)
    return total


class ReviewTxBuilder:
    """
    Builder for review submission and upvote transactions.

    [USAGE]
        builder = ReviewTxBuilder(provider, script=validator)
        tx = await builder.build_submission(wallet, reviewer_kh, product_id, 5, review_hash)
        tx.hex  # -> hand to the wallet for signing
    """

    MAX_BALANCE_ROUNDS = 8

    def __init__(
        self,
        provider: Optional[LedgerProvider],
        script: Optional[ValidatorScript] = None,
        script_address: Optional[str] = None,
        params: Optional[TxConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            provider: Source of wallet UTxOs
            script: Compiled validator (required for upvotes only)
            script_address: Review address (default: script.address)
            params: Fee and value parameters (default: config.tx)
            clock: Unix time source for datum timestamps
        """
        self.provider = provider
        self.script = script
        self.script_address = script_address or (script.address if script else None)
        self.params = params or config.tx
        self.clock = clock

    # ========================================================================
    # Public API
    # ========================================================================

    async def build_submission(
        self,
        wallet_address: str,
        reviewer_key_hash: BytesLike,
        product_id: BytesLike,
        rating: int,
        review_hash: BytesLike,
    ) -> UnsignedTransaction:
        """
        Build a transaction locking a new review at the script address.

        Raises:
            ValidationError: Rating outside [1, 5] or malformed digests
            InsufficientFunds: Wallet cannot cover value plus fee
            BuilderError: No reachable UTxO source or no script address
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {rating!r}")

        reviewer = _key_hash(reviewer_key_hash, "reviewer_key_hash")
        datum = ReviewDatum(
            product_id=_digest(product_id, "product_id"),
            rating=rating,
            review_hash=_digest(review_hash, "review_hash"),
            reviewer=reviewer,
            timestamp=int(self.clock()),
        )

        if not self.script_address:
            raise BuilderError("Script address not configured")

        wallet_utxos = await self._wallet_utxos(wallet_address)
        review_output = TxOutput(
            address=to_address_bytes(self.script_address),
            value=Value(coin=self.params.script_lovelace),
            inline_datum=encode_datum(datum),
        )

        tx = self._balance(
            wallet_utxos,
            change_address=wallet_address,
            outputs=[review_output],
            required_signers=[reviewer],
        )
        logger.info(
            f"[TX] Built review submission {tx.tx_id[:16]} "
            f"(product {datum.product_id.hex()[:12]}, rating {rating}, fee {tx.fee})"
        )
        return tx

    async def build_upvote(
        self,
        wallet_address: str,
        review_utxo: Union[UTxO, ReviewUTXO],
        voter_key_hash: BytesLike,
    ) -> UnsignedTransaction:
        """
        Build a replace-via-spend transaction adding one upvote.

        Raises:
            UTXOError: review_utxo carries no inline datum
            ScriptUnavailable: Validator program not loaded
            InvalidDatum: Existing datum is not a review
            InsufficientFunds: No collateral or fee inputs
            BuilderError: No reachable UTxO source
        """
        if isinstance(review_utxo, ReviewUTXO):
            review_utxo = review_utxo.utxo

        if review_utxo.inline_datum is None:
            raise UTXOError(f"Review UTxO {review_utxo.ref} has no inline datum")
        if self.script is None:
            raise ScriptUnavailable("Validator script not loaded; upvotes are unavailable")

        voter = _key_hash(voter_key_hash, "voter_key_hash")
        current = decode_datum(review_utxo.inline_datum)
        replacement = current.upvoted()

        wallet_utxos = await self._wallet_utxos(wallet_address)
        collateral = select_collateral(wallet_utxos, self.params.collateral_lovelace)
        if collateral is None:
            raise InsufficientFunds(
                required=self.params.collateral_lovelace,
                available=max((u.value.coin for u in wallet_utxos if u.is_pure_ada), default=0),
                message="No ADA-only wallet UTxO large enough for collateral",
            )

        review_output = TxOutput(
            address=to_address_bytes(self.script.address),
            value=review_utxo.value,
            inline_datum=encode_datum(replacement),
        )

        tx = self._balance(
            wallet_utxos,
            change_address=wallet_address,
            outputs=[review_output],
            required_signers=[voter],
            script_input=review_utxo,
            redeemer_data=encode_upvote_redeemer(voter),
            collateral=collateral,
        )
        logger.info(
            f"[TX] Built upvote {tx.tx_id[:16]} spending {review_utxo.ref} "
            f"(upvotes {current.upvotes} -> {replacement.upvotes}, fee {tx.fee})"
        )
        return tx

    # ========================================================================
    # Internals
    # ========================================================================

    async def _wallet_utxos(self, wallet_address: str) -> List[UTxO]:
        if self.provider is None:
            raise BuilderError("No UTxO source configured")
        try:
            return await self.provider.fetch_utxos(wallet_address)
        except ProviderUnavailable as e:
            raise BuilderError(f"UTxO source unreachable: {e}") from e

    def _script_data_hash(self, redeemers: List[object]) -> bytes:
        """BLAKE2b-256(redeemers || language views)."""
        language_views = {self.script.language_id: list(self.params.cost_model_v3)}
        return blake2b_256(dumps(redeemers) + dumps(language_views))

    def _balance(
        self,
        wallet_utxos: List[UTxO],
        change_address: str,
        outputs: List[TxOutput],
        required_signers: List[bytes],
        script_input: Optional[UTxO] = None,
        redeemer_data: Optional[bytes] = None,
        collateral: Optional[UTxO] = None,
    ) -> UnsignedTransaction:
        """
        Select inputs, add change and iterate the fee until it is stable.

        [ALGORITHM]
        1. required = outputs + fee - script input value
        2. select wallet UTxOs for required + min change (or just required)
        3. change below the minimum is folded into the fee
        4. encode, re-estimate fee from size; repeat until estimate <= fee
        """
        params = self.params
        change_bytes = to_address_bytes(change_address)
        scripted = script_input is not None
        fixed_in = script_input.value.coin if scripted else 0
        out_total = sum(o.value.coin for o in outputs)
        exclude = [script_input.ref] if scripted else []
        signer_count = len(set(required_signers))

        fee = estimate_fee(0, signer_count, params, scripted)
        for _ in range(self.MAX_BALANCE_ROUNDS):
            required = out_total + fee - fixed_in
            try:
                selected, total = select_utxos(
                    wallet_utxos, required + params.min_change_lovelace, exclude
                )
            except InsufficientFunds:
                selected, total = select_utxos(wallet_utxos, required, exclude)

            change_coin = total - required
            change_assets = _sum_assets(selected)
            tx_outputs = list(outputs)
            effective_fee = fee
            if change_coin >= params.min_change_lovelace:
                tx_outputs.append(TxOutput(
                    address=change_bytes,
                    value=Value(coin=change_coin) + change_assets,
                ))
            elif change_assets.assets:
                raise InsufficientFunds(
                    required=required + params.min_change_lovelace,
                    available=total,
                    message="Change carrying native assets needs more lovelace",
                )
            else:
                effective_fee = fee + change_coin

            inputs = [u.ref for u in selected]
            witness: Dict[int, object] = {}
            script_data_hash = None
            if scripted:
                inputs.append(script_input.ref)
                redeemer = Redeemer(
                    index=sorted(set(inputs)).index(script_input.ref),
                    data=redeemer_data,
                    mem=params.ex_units_mem,
                    steps=params.ex_units_steps,
                )
                redeemers = [redeemer.to_cbor()]
                witness = dict(sorted({
                    WITNESS_REDEEMERS: redeemers,
                    self.script.witness_key: [self.script.compiled_code],
                }.items()))
                script_data_hash = self._script_data_hash(redeemers)

            body = TransactionBody(
                inputs=inputs,
                outputs=tx_outputs,
                fee=effective_fee,
                collateral=[collateral.ref] if collateral else [],
                required_signers=list(required_signers),
                script_data_hash=script_data_hash,
            )
            tx_cbor = build_transaction(body.to_cbor(), witness)

            needed = estimate_fee(len(tx_cbor), signer_count, params, scripted)
            if needed <= fee:
                return UnsignedTransaction(cbor=tx_cbor)
            fee = needed

        raise BuilderError("Fee estimation did not converge")
