"""
External signer capability.

[TWO-PHASE] The core never holds wallet keys in production: the unsigned
transaction goes to a wallet (CIP-30 signTx with partial signing) and a
witness set comes back. KeySigner is the local Ed25519 implementation
used by tests, scripts and the demo CLI.
"""

from abc import ABC, abstractmethod
from typing import Optional

from nacl.signing import SigningKey

from .hashing import key_hash
from .transaction import UnsignedTransaction, VKeyWitness, WitnessSet


class Signer(ABC):
    """Produces a witness set for an unsigned transaction."""

    @abstractmethod
    async def sign(self, tx: UnsignedTransaction) -> WitnessSet:
        """Sign the transaction id with every key this signer controls."""


class KeySigner(Signer):
    """Ed25519 signer backed by a PyNaCl signing key."""

    def __init__(self, signing_key: Optional[SigningKey] = None):
        self.signing_key = signing_key or SigningKey.generate()
        self.verify_key = self.signing_key.verify_key

    @classmethod
    def from_seed_hex(cls, seed_hex: str) -> "KeySigner":
        return cls(SigningKey(bytes.fromhex(seed_hex)))

    @property
    def vkey(self) -> bytes:
        return bytes(self.verify_key)

    @property
    def key_hash(self) -> bytes:
        return key_hash(self.vkey)

    def witness(self, tx: UnsignedTransaction) -> VKeyWitness:
        signed = self.signing_key.sign(bytes.fromhex(tx.tx_id))
        return VKeyWitness(vkey=self.vkey, signature=signed.signature)

    async def sign(self, tx: UnsignedTransaction) -> WitnessSet:
        return WitnessSet(vkey_witnesses=(self.witness(tx),))
