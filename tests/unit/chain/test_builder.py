"""
Review Transaction Builder Tests
================================

[TX] Submission and upvote construction against the in-memory ledger.
"""

import pytest

FIXED_TIME = 1_700_000_000


def input_total(ledger_utxos, refs):
    by_ref = {u.ref: u for u in ledger_utxos}
    return sum(by_ref[ref].value.coin for ref in refs)


# ============================================================================
# Submission
# ============================================================================

class TestBuildSubmission:
    """Test ReviewTxBuilder.build_submission()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [1, 2, 3, 4, 5])
    async def test_valid_ratings(self, builder, reviewer, wallet_address, product_id, review_hash, rating):
        from chain.datum import decode_datum

        tx = await builder.build_submission(
            wallet_address, reviewer.key_hash, product_id, rating, review_hash
        )
        datum = decode_datum(tx.outputs[0].inline_datum)

        assert datum.rating == rating
        assert datum.upvotes == 0
        assert datum.verified is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6, -3, True, 4.5])
    async def test_invalid_ratings(self, builder, reviewer, wallet_address, product_id, review_hash, rating):
        from chain.errors import ValidationError

        with pytest.raises(ValidationError):
            await builder.build_submission(
                wallet_address, reviewer.key_hash, product_id, rating, review_hash
            )

    @pytest.mark.asyncio
    async def test_script_output(self, builder, script, reviewer, wallet_address, product_id, review_hash):
        """First output locks 2 ADA and the inline datum at the script address."""
        from chain.address import to_address_bytes
        from chain.datum import ReviewDatum, decode_datum

        tx = await builder.build_submission(
            wallet_address, reviewer.key_hash, product_id.hex(), 4, review_hash.hex()
        )
        output = tx.outputs[0]

        assert output.address == to_address_bytes(script.address)
        assert output.value.coin == 2_000_000
        assert decode_datum(output.inline_datum) == ReviewDatum(
            product_id=product_id,
            rating=4,
            review_hash=review_hash,
            reviewer=reviewer.key_hash,
            timestamp=FIXED_TIME,
        )

    @pytest.mark.asyncio
    async def test_balanced_with_change(self, builder, funded_ledger, reviewer, wallet_address, product_id, review_hash):
        """inputs == outputs + fee; change returns to the wallet."""
        from chain.address import to_address_bytes

        tx = await builder.build_submission(
            wallet_address, reviewer.key_hash, product_id, 5, review_hash
        )
        wallet_utxos = await funded_ledger.fetch_utxos(wallet_address)

        assert input_total(wallet_utxos, tx.inputs) == sum(o.value.coin for o in tx.outputs) + tx.fee
        assert len(tx.outputs) == 2
        assert tx.outputs[1].address == to_address_bytes(wallet_address)

    @pytest.mark.asyncio
    async def test_fee_covers_signed_size(self, builder, tx_params, reviewer, wallet_address, product_id, review_hash):
        """Fee covers the transaction once one vkey witness is attached."""
        from chain.assembler import TransactionAssembler
        from chain.selection import linear_fee

        tx = await builder.build_submission(
            wallet_address, reviewer.key_hash, product_id, 5, review_hash
        )
        signed = TransactionAssembler().assemble(unsigned_tx=tx, witness_set=await reviewer.sign(tx))

        assert tx.fee >= linear_fee(len(signed), tx_params)
        assert tx.fee < linear_fee(len(signed), tx_params) + 5_000

    @pytest.mark.asyncio
    async def test_reviewer_is_required_signer(self, builder, reviewer, wallet_address, product_id, review_hash):
        tx = await builder.build_submission(
            wallet_address, reviewer.key_hash, product_id, 5, review_hash
        )
        assert tx.required_signers == (reviewer.key_hash,)
        assert tx.collateral == []

    @pytest.mark.asyncio
    async def test_small_change_folded_into_fee(self, fund_wallet, funded_ledger, script, tx_params, reviewer, product_id, review_hash):
        """Leftover below the minimum change goes to the fee; no change output."""
        from chain.address import enterprise_address
        from chain.builder import ReviewTxBuilder
        from chain.provider import MemoryLedgerProvider

        ledger = MemoryLedgerProvider()
        address = enterprise_address(reviewer.key_hash, 0)
        fund_wallet(ledger, address, amounts=(2_500_000,))
        builder = ReviewTxBuilder(ledger, script=script, params=tx_params)

        tx = await builder.build_submission(address, reviewer.key_hash, product_id, 5, review_hash)

        assert len(tx.outputs) == 1
        assert tx.fee == 500_000

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, fund_wallet, script, tx_params, reviewer, product_id, review_hash):
        from chain.address import enterprise_address
        from chain.builder import ReviewTxBuilder
        from chain.errors import InsufficientFunds
        from chain.provider import MemoryLedgerProvider

        ledger = MemoryLedgerProvider()
        address = enterprise_address(reviewer.key_hash, 0)
        fund_wallet(ledger, address, amounts=(1_000_000, 500_000))
        builder = ReviewTxBuilder(ledger, script=script, params=tx_params)

        with pytest.raises(InsufficientFunds) as exc:
            await builder.build_submission(address, reviewer.key_hash, product_id, 5, review_hash)

        assert exc.value.available == 1_500_000
        assert exc.value.required > 2_000_000

    @pytest.mark.asyncio
    async def test_provider_offline(self, builder, funded_ledger, reviewer, wallet_address, product_id, review_hash):
        """Unreachable UTxO source surfaces as BuilderError."""
        from chain.errors import BuilderError, InsufficientFunds, ProviderUnavailable

        funded_ledger.available = False
        with pytest.raises(BuilderError) as exc:
            await builder.build_submission(wallet_address, reviewer.key_hash, product_id, 5, review_hash)

        assert not isinstance(exc.value, InsufficientFunds)
        assert isinstance(exc.value.__cause__, ProviderUnavailable)

    @pytest.mark.asyncio
    async def test_no_provider(self, script, reviewer, wallet_address, product_id, review_hash):
        from chain.builder import ReviewTxBuilder
        from chain.errors import BuilderError

        builder = ReviewTxBuilder(None, script=script)
        with pytest.raises(BuilderError, match="UTxO source"):
            await builder.build_submission(wallet_address, reviewer.key_hash, product_id, 5, review_hash)

    @pytest.mark.asyncio
    async def test_no_script_address(self, funded_ledger, reviewer, wallet_address, product_id, review_hash):
        from chain.builder import ReviewTxBuilder
        from chain.errors import BuilderError

        builder = ReviewTxBuilder(funded_ledger)
        with pytest.raises(BuilderError, match="Script address"):
            await builder.build_submission(wallet_address, reviewer.key_hash, product_id, 5, review_hash)

    @pytest.mark.asyncio
    async def test_submission_needs_no_script_program(self, funded_ledger, script, tx_params, reviewer, wallet_address, product_id, review_hash):
        """Submissions work with only the script address configured."""
        from chain.builder import ReviewTxBuilder

        builder = ReviewTxBuilder(funded_ledger, script_address=script.address, params=tx_params)
        tx = await builder.build_submission(wallet_address, reviewer.key_hash, product_id, 3, review_hash)

        assert tx.redeemers == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field,value", [
        ("product_id", "00" * 31),
        ("review_hash", "not hex"),
        ("reviewer", b"\x01" * 32),
    ])
    async def test_malformed_digests(self, builder, reviewer, wallet_address, product_id, review_hash, field, value):
        from chain.errors import ValidationError

        args = {"product_id": product_id, "review_hash": review_hash, "reviewer": reviewer.key_hash}
        args[field] = value
        with pytest.raises(ValidationError):
            await builder.build_submission(
                wallet_address, args["reviewer"], args["product_id"], 5, args["review_hash"]
            )


# ============================================================================
# Upvote
# ============================================================================

class TestBuildUpvote:
    """Test ReviewTxBuilder.build_upvote()."""

    @pytest.fixture
    async def review(self, post_review, indexer):
        await post_review()
        (review,) = await indexer.fetch_reviews()
        return review

    @pytest.mark.asyncio
    async def test_increments_upvotes(self, builder, review, voter, voter_address):
        """upvotes n -> n+1, every other field unchanged."""
        from chain.datum import decode_datum

        tx = await builder.build_upvote(voter_address, review, voter.key_hash)
        new_datum = decode_datum(tx.outputs[0].inline_datum)

        assert new_datum == review.datum.upvoted()
        assert new_datum.upvotes == review.datum.upvotes + 1

    @pytest.mark.asyncio
    async def test_replacement_output(self, builder, script, review, voter, voter_address):
        """Replacement keeps the value and stays at the script address."""
        from chain.address import to_address_bytes

        tx = await builder.build_upvote(voter_address, review, voter.key_hash)

        assert tx.outputs[0].address == to_address_bytes(script.address)
        assert tx.outputs[0].value == review.utxo.value

    @pytest.mark.asyncio
    async def test_spends_review_with_redeemer(self, builder, script, tx_params, review, voter, voter_address):
        """Script input, spend redeemer at its sorted position, voter signs."""
        from chain.datum import encode_upvote_redeemer
        from core.cbor import dumps

        tx = await builder.build_upvote(voter_address, review, voter.key_hash)
        (redeemer,) = tx.redeemers
        tag, index, data, ex_units = redeemer

        assert review.ref in tx.inputs
        assert tag == 0
        assert index == tx.inputs.index(review.ref)
        assert dumps(data) == encode_upvote_redeemer(voter.key_hash)
        assert ex_units == [tx_params.ex_units_mem, tx_params.ex_units_steps]
        assert tx.required_signers == (voter.key_hash,)

    @pytest.mark.asyncio
    async def test_script_witness_and_data_hash(self, builder, script, tx_params, review, voter, voter_address):
        from chain.hashing import blake2b_256
        from chain.transaction import TX_BODY_SCRIPT_DATA_HASH
        from core.cbor import dumps, loads

        tx = await builder.build_upvote(voter_address, review, voter.key_hash)
        witness = dict(tx.witness_entries())

        assert loads(witness[script.witness_key]) == [script.compiled_code]
        assert tx.body[TX_BODY_SCRIPT_DATA_HASH] == blake2b_256(
            dumps(tx.redeemers) + dumps({script.language_id: list(tx_params.cost_model_v3)})
        )

    @pytest.mark.asyncio
    async def test_collateral_and_fee(self, builder, funded_ledger, tx_params, review, voter, voter_address):
        """ADA-only collateral declared; fee includes execution budget."""
        from chain.selection import estimate_fee

        tx = await builder.build_upvote(voter_address, review, voter.key_hash)
        wallet_refs = {u.ref for u in await funded_ledger.fetch_utxos(voter_address)}

        assert len(tx.collateral) == 1
        assert tx.collateral[0] in wallet_refs
        assert tx.fee >= estimate_fee(len(tx.cbor), 1, tx_params, scripted=True)

    @pytest.mark.asyncio
    async def test_value_conserved(self, builder, funded_ledger, script, review, voter, voter_address):
        tx = await builder.build_upvote(voter_address, review, voter.key_hash)
        known = await funded_ledger.fetch_utxos(voter_address) + await funded_ledger.fetch_utxos(script.address)

        assert input_total(known, tx.inputs) == sum(o.value.coin for o in tx.outputs) + tx.fee

    @pytest.mark.asyncio
    async def test_accepts_plain_utxo(self, builder, review, voter, voter_address):
        tx = await builder.build_upvote(voter_address, review.utxo, voter.key_hash)
        assert review.ref in tx.inputs

    @pytest.mark.asyncio
    async def test_no_inline_datum(self, builder, voter, voter_address, script):
        from chain.errors import UTXOError
        from chain.transaction import OutputRef, UTxO, Value

        bare = UTxO(ref=OutputRef("ff" * 32, 0), address=script.address, value=Value(coin=2_000_000))
        with pytest.raises(UTXOError):
            await builder.build_upvote(voter_address, bare, voter.key_hash)

    @pytest.mark.asyncio
    async def test_script_unavailable(self, funded_ledger, script, tx_params, review, voter, voter_address):
        from chain.builder import ReviewTxBuilder
        from chain.errors import ScriptUnavailable

        builder = ReviewTxBuilder(funded_ledger, script_address=script.address, params=tx_params)
        with pytest.raises(ScriptUnavailable):
            await builder.build_upvote(voter_address, review, voter.key_hash)

    @pytest.mark.asyncio
    async def test_foreign_datum(self, builder, script, voter, voter_address):
        from chain.errors import InvalidDatum
        from chain.transaction import OutputRef, UTxO, Value

        foreign = UTxO(
            ref=OutputRef("ff" * 32, 1),
            address=script.address,
            value=Value(coin=2_000_000),
            inline_datum=bytes.fromhex("d87a80"),
        )
        with pytest.raises(InvalidDatum):
            await builder.build_upvote(voter_address, foreign, voter.key_hash)

    @pytest.mark.asyncio
    async def test_no_collateral(self, fund_wallet, script, tx_params, review, voter):
        """Wallet without a 5 ADA pure-ADA UTxO cannot upvote."""
        from chain.address import enterprise_address
        from chain.builder import ReviewTxBuilder
        from chain.errors import InsufficientFunds
        from chain.provider import MemoryLedgerProvider

        ledger = MemoryLedgerProvider()
        address = enterprise_address(voter.key_hash, 0)
        fund_wallet(ledger, address, amounts=(3_000_000, 3_000_000))
        builder = ReviewTxBuilder(ledger, script=script, params=tx_params)

        with pytest.raises(InsufficientFunds, match="collateral"):
            await builder.build_upvote(address, review, voter.key_hash)

    @pytest.mark.asyncio
    async def test_upvote_lands(self, builder, funded_ledger, indexer, review, voter, voter_address):
        """Signed upvote replaces the review output on the ledger."""
        from chain.assembler import TransactionAssembler

        tx = await builder.build_upvote(voter_address, review, voter.key_hash)
        signed = TransactionAssembler().assemble(unsigned_tx=tx, witness_set=await voter.sign(tx))
        tx_hash = await funded_ledger.submit_transaction(signed)

        (updated,) = await indexer.fetch_reviews()
        assert funded_ledger.is_spent(review.ref)
        assert updated.tx_hash == tx_hash
        assert updated.datum.upvotes == 1

    @pytest.mark.asyncio
    async def test_concurrent_upvotes_one_wins(self, builder, funded_ledger, review, reviewer, wallet_address, voter, voter_address):
        """Two upvotes on the same output: the second submission is rejected."""
        from chain.assembler import TransactionAssembler
        from chain.errors import SubmissionRejected

        assembler = TransactionAssembler()
        first = await builder.build_upvote(voter_address, review, voter.key_hash)
        second = await builder.build_upvote(wallet_address, review, reviewer.key_hash)

        await funded_ledger.submit_transaction(
            assembler.assemble(unsigned_tx=first, witness_set=await voter.sign(first))
        )
        with pytest.raises(SubmissionRejected, match="already spent"):
            await funded_ledger.submit_transaction(
                assembler.assemble(unsigned_tx=second, witness_set=await reviewer.sign(second))
            )
