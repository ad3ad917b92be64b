"""
Chain Module
============
Review-ledger transaction core:
- Datum codec: ReviewDatum <-> on-chain Plutus data
- Builder: unsigned submission / upvote transactions
- Assembler + TxPipeline: two-phase external signing
- Indexer: live reviews at the script address
- Reputation: reviewer score from ledger state
- Balance: wallet CBOR balance -> ADA
"""

from .assembler import TransactionAssembler, assemble
from .balance import decode_lovelace, parse_cbor_balance
from .builder import ReviewTxBuilder
from .datum import ReviewAction, ReviewDatum, decode_datum, encode_datum, encode_upvote_redeemer
from .errors import (
    AssemblyError,
    BuilderError,
    InsufficientFunds,
    InvalidDatum,
    PipelineError,
    ProviderUnavailable,
    ReviewChainError,
    ScriptUnavailable,
    SubmissionRejected,
    UTXOError,
    ValidationError,
)
from .indexer import ReviewIndexer, ReviewUTXO
from .pipeline import TxPipeline, TxState
from .provider import BlockfrostProvider, LedgerProvider, MemoryLedgerProvider, create_provider
from .reputation import ReputationAggregator, score_reviews
from .script import ValidatorScript
from .signer import KeySigner, Signer
from .transaction import OutputRef, UnsignedTransaction, UTxO, Value, WitnessSet

__all__ = [
    "TransactionAssembler",
    "assemble",
    "decode_lovelace",
    "parse_cbor_balance",
    "ReviewTxBuilder",
    "ReviewAction",
    "ReviewDatum",
    "decode_datum",
    "encode_datum",
    "encode_upvote_redeemer",
    "AssemblyError",
    "BuilderError",
    "InsufficientFunds",
    "InvalidDatum",
    "PipelineError",
    "ProviderUnavailable",
    "ReviewChainError",
    "ScriptUnavailable",
    "SubmissionRejected",
    "UTXOError",
    "ValidationError",
    "ReviewIndexer",
    "ReviewUTXO",
    "TxPipeline",
    "TxState",
    "BlockfrostProvider",
    "LedgerProvider",
    "MemoryLedgerProvider",
    "create_provider",
    "ReputationAggregator",
    "score_reviews",
    "ValidatorScript",
    "KeySigner",
    "Signer",
    "OutputRef",
    "UnsignedTransaction",
    "UTxO",
    "Value",
    "WitnessSet",
]
