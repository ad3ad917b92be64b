"""
Transaction Assembler Tests
===========================

[SECURITY] Witness sets must match the declared signers exactly and
verify against the transaction id.
"""

import pytest


@pytest.fixture
async def unsigned(builder, reviewer, wallet_address, product_id, review_hash):
    return await builder.build_submission(wallet_address, reviewer.key_hash, product_id, 5, review_hash)


class TestMerge:
    """Test TransactionAssembler.merge() through assemble()."""

    @pytest.mark.asyncio
    async def test_deterministic(self, unsigned, reviewer):
        """Identical inputs give byte-identical output."""
        from chain.assembler import TransactionAssembler

        witness_set = await reviewer.sign(unsigned)
        first = TransactionAssembler().assemble(unsigned_tx=unsigned, witness_set=witness_set)
        second = TransactionAssembler().assemble(unsigned_tx=unsigned.hex, witness_set=witness_set.hex)

        assert first == second

    @pytest.mark.asyncio
    async def test_body_kept_verbatim(self, unsigned, reviewer):
        """Body bytes (and so the tx id) survive the merge."""
        from chain.assembler import assemble
        from chain.transaction import UnsignedTransaction

        signed = UnsignedTransaction(cbor=assemble(unsigned_tx=unsigned, witness_set=await reviewer.sign(unsigned)))

        assert signed.body_cbor == unsigned.body_cbor
        assert signed.tx_id == unsigned.tx_id
        assert signed.parts()[2:] == unsigned.parts()[2:]

    @pytest.mark.asyncio
    async def test_vkey_witness_inserted(self, unsigned, reviewer):
        from chain.assembler import assemble
        from chain.transaction import UnsignedTransaction, WITNESS_VKEYS
        from core.cbor import loads

        signed = UnsignedTransaction(cbor=assemble(unsigned_tx=unsigned, witness_set=await reviewer.sign(unsigned)))
        witness = dict(signed.witness_entries())
        ((vkey, signature),) = loads(witness[WITNESS_VKEYS])

        assert vkey == reviewer.vkey
        assert len(signature) == 64

    @pytest.mark.asyncio
    async def test_duplicate_witnesses_collapsed(self, unsigned, reviewer):
        from chain.assembler import assemble
        from chain.transaction import WitnessSet

        single = assemble(unsigned_tx=unsigned, witness_set=await reviewer.sign(unsigned))
        witness = reviewer.witness(unsigned)
        doubled = assemble(unsigned_tx=unsigned, witness_set=WitnessSet(vkey_witnesses=(witness, witness)))

        assert single == doubled

    @pytest.mark.asyncio
    async def test_wrong_key_rejected(self, unsigned, voter):
        """Witness signed with K1 while K2 is required."""
        from chain.assembler import assemble
        from chain.errors import AssemblyError

        with pytest.raises(AssemblyError, match="Missing signatures"):
            assemble(unsigned_tx=unsigned, witness_set=await voter.sign(unsigned))

    @pytest.mark.asyncio
    async def test_extra_key_rejected(self, unsigned, reviewer, voter):
        """Keys not declared as required signers are refused."""
        from chain.assembler import assemble
        from chain.errors import AssemblyError
        from chain.transaction import WitnessSet

        witness_set = WitnessSet(vkey_witnesses=(reviewer.witness(unsigned), voter.witness(unsigned)))
        with pytest.raises(AssemblyError, match="not declared"):
            assemble(unsigned_tx=unsigned, witness_set=witness_set)

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, unsigned, reviewer):
        """Right key, signature over other bytes."""
        from chain.assembler import assemble
        from chain.errors import AssemblyError
        from chain.transaction import VKeyWitness, WitnessSet

        forged = VKeyWitness(vkey=reviewer.vkey, signature=reviewer.signing_key.sign(b"other").signature)
        with pytest.raises(AssemblyError, match="does not verify"):
            assemble(unsigned_tx=unsigned, witness_set=WitnessSet(vkey_witnesses=(forged,)))

    @pytest.mark.asyncio
    async def test_verification_can_be_disabled(self, unsigned, reviewer):
        from chain.assembler import TransactionAssembler
        from chain.transaction import VKeyWitness, WitnessSet

        forged = VKeyWitness(vkey=reviewer.vkey, signature=b"\x00" * 64)
        signed = TransactionAssembler(verify_signatures=False).assemble(
            unsigned_tx=unsigned, witness_set=WitnessSet(vkey_witnesses=(forged,))
        )
        assert signed

    @pytest.mark.asyncio
    async def test_script_witnesses_preserved(self, builder, post_review, indexer, voter, voter_address, script):
        """Redeemers and scripts are copied byte-for-byte."""
        from chain.assembler import assemble
        from chain.transaction import UnsignedTransaction, WITNESS_REDEEMERS

        await post_review()
        (review,) = await indexer.fetch_reviews()
        unsigned = await builder.build_upvote(voter_address, review, voter.key_hash)
        signed = UnsignedTransaction(cbor=assemble(unsigned_tx=unsigned, witness_set=await voter.sign(unsigned)))

        before = dict(unsigned.witness_entries())
        after = dict(signed.witness_entries())
        assert after[WITNESS_REDEEMERS] == before[WITNESS_REDEEMERS]
        assert after[script.witness_key] == before[script.witness_key]
        assert sorted(after) == [0, 5, script.witness_key]


    @pytest.mark.asyncio
    async def test_embedded_foreign_witness_rejected(self, unsigned, reviewer, voter):
        """Witnesses already in the transaction count towards the signer check."""
        from chain.assembler import assemble
        from chain.errors import AssemblyError
        from chain.transaction import UnsignedTransaction, WITNESS_VKEYS
        from core.cbor import RawCBOR, dumps

        carried = UnsignedTransaction(cbor=dumps([
            RawCBOR(unsigned.body_cbor),
            {WITNESS_VKEYS: [voter.witness(unsigned).to_cbor()]},
            True,
            None,
        ]))

        with pytest.raises(AssemblyError, match="not declared"):
            assemble(unsigned_tx=carried, witness_set=await reviewer.sign(unsigned))

    @pytest.mark.asyncio
    async def test_embedded_bad_signature_rejected(self, unsigned, reviewer):
        """An embedded witness is verified even when the new set adds nothing."""
        from chain.assembler import assemble
        from chain.errors import AssemblyError
        from chain.transaction import UnsignedTransaction, VKeyWitness, WitnessSet, WITNESS_VKEYS
        from core.cbor import RawCBOR, dumps

        forged = VKeyWitness(vkey=reviewer.vkey, signature=b"\x00" * 64)
        carried = UnsignedTransaction(cbor=dumps([
            RawCBOR(unsigned.body_cbor),
            {WITNESS_VKEYS: [forged.to_cbor()]},
            True,
            None,
        ]))

        with pytest.raises(AssemblyError, match="does not verify"):
            assemble(unsigned_tx=carried, witness_set=WitnessSet())

    @pytest.mark.asyncio
    async def test_embedded_witness_counts_as_signature(self, unsigned, reviewer):
        """A valid embedded witness satisfies the signer set on its own."""
        from chain.assembler import assemble
        from chain.transaction import UnsignedTransaction, WitnessSet, WITNESS_VKEYS
        from core.cbor import RawCBOR, dumps

        carried = UnsignedTransaction(cbor=dumps([
            RawCBOR(unsigned.body_cbor),
            {WITNESS_VKEYS: [reviewer.witness(unsigned).to_cbor()]},
            True,
            None,
        ]))

        expected = assemble(unsigned_tx=unsigned, witness_set=await reviewer.sign(unsigned))
        assert assemble(unsigned_tx=carried, witness_set=WitnessSet()) == expected


class TestAssembleInputs:
    """Test input forms and failures."""

    @pytest.mark.asyncio
    async def test_signed_passthrough(self, unsigned, reviewer):
        from chain.assembler import assemble

        signed = assemble(unsigned_tx=unsigned, witness_set=await reviewer.sign(unsigned))
        assert assemble(signed_tx=signed) == signed
        assert assemble(signed_tx=signed.hex()) == signed

    def test_nothing_supplied(self):
        from chain.assembler import assemble
        from chain.errors import AssemblyError

        with pytest.raises(AssemblyError):
            assemble()

    @pytest.mark.asyncio
    async def test_missing_witness(self, unsigned):
        from chain.assembler import assemble
        from chain.errors import AssemblyError

        with pytest.raises(AssemblyError):
            assemble(unsigned_tx=unsigned)

    @pytest.mark.parametrize("tx_hex", ["zz", "820102", "84a0a0f5f6ff"])
    def test_malformed_signed(self, tx_hex):
        from chain.assembler import assemble
        from chain.errors import AssemblyError

        with pytest.raises(AssemblyError):
            assemble(signed_tx=tx_hex)

    @pytest.mark.asyncio
    async def test_malformed_witness_set(self, unsigned):
        from chain.assembler import assemble
        from chain.errors import AssemblyError

        with pytest.raises(AssemblyError):
            assemble(unsigned_tx=unsigned, witness_set="8001")
