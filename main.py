#!/usr/bin/env python3
"""
TrustChain Reviews CLI
======================

[CHAIN] Command-line front end for the review-ledger core:
- Query live reviews and reviewer reputation
- Build unsigned review / upvote transactions for an external wallet
- Assemble and submit wallet-signed transactions

[DEMO] Without BLOCKFROST_API_KEY the in-memory ledger is used, so
queries return empty results and builds fail for lack of funds.

Usage:
    python main.py network
    python main.py reviews [--product HEX | --sku SKU] [--reviewer KEYHASH]
    python main.py reputation KEYHASH
    python main.py balance CBOR_HEX
    python main.py build-review --wallet ADDR --reviewer KEYHASH --sku SKU --rating 5 --text "..."
    python main.py build-upvote --wallet ADDR --voter KEYHASH --tx-hash HASH --index 0
    python main.py submit --unsigned TX_HEX --witness WITNESS_HEX
    python main.py tx HASH
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

from dotenv import load_dotenv

# .env must be loaded before config reads the environment
load_dotenv()

from config import config, get_current_network
from core.logger import configure_logging
from chain.assembler import TransactionAssembler
from chain.balance import parse_cbor_balance
from chain.builder import ReviewTxBuilder
from chain.errors import ReviewChainError, ScriptUnavailable, ValidationError
from chain.hashing import generate_product_id, hash_review_content
from chain.indexer import ReviewIndexer
from chain.provider import LedgerProvider, create_provider
from chain.reputation import ReputationAggregator
from chain.script import ValidatorScript

logger = logging.getLogger("trustchain")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def load_script() -> Optional[ValidatorScript]:
    """Validator artifact, or None when it cannot be loaded (upvotes disabled)."""
    try:
        return ValidatorScript.load(
            config.script.plutus_path,
            config.tx.network_id,
            address=config.script.address or None,
        )
    except ScriptUnavailable as e:
        logger.warning(f"[SCRIPT] {e}")
        return None


def script_address(script: Optional[ValidatorScript]) -> str:
    address = config.script.address or (script.address if script else "")
    if not address:
        raise ValidationError("No script address: set SCRIPT_ADDRESS or PLUTUS_PATH")
    return address


# ============================================================================
# Commands
# ============================================================================

async def cmd_network(args: argparse.Namespace, provider: LedgerProvider) -> None:
    network = get_current_network()
    network["blockfrost_configured"] = config.provider.is_configured
    _print_json(network)


async def cmd_reviews(args: argparse.Namespace, provider: LedgerProvider) -> None:
    indexer = ReviewIndexer(provider, script_address(load_script()))
    product_id = args.product or (generate_product_id(args.sku) if args.sku else None)

    if product_id:
        reviews = await indexer.reviews_for_product(product_id)
    elif args.reviewer:
        reviews = await indexer.reviews_by_reviewer(args.reviewer)
    else:
        reviews = await indexer.fetch_reviews()

    if product_id and args.reviewer:
        reviews = [r for r in reviews if r.datum.reviewer.hex() == args.reviewer.lower()]
    _print_json([r.to_dict() for r in reviews])


async def cmd_reputation(args: argparse.Namespace, provider: LedgerProvider) -> None:
    indexer = ReviewIndexer(provider, script_address(load_script()))
    score = await ReputationAggregator(indexer).score(args.key_hash)
    _print_json({"reviewer": args.key_hash, "reputation": score})


async def cmd_balance(args: argparse.Namespace, provider: LedgerProvider) -> None:
    _print_json({"ada": str(parse_cbor_balance(args.cbor_hex))})


async def cmd_build_review(args: argparse.Namespace, provider: LedgerProvider) -> None:
    script = load_script()
    builder = ReviewTxBuilder(provider, script=script, script_address=script_address(script))
    product_id = args.product or generate_product_id(args.sku)
    review_hash = args.review_hash or hash_review_content(args.text, args.rating, product_id)

    tx = await builder.build_submission(
        args.wallet, args.reviewer, product_id, args.rating, review_hash
    )
    _print_json({
        "tx_id": tx.tx_id,
        "fee": tx.fee,
        "product_id": product_id,
        "review_hash": review_hash,
        "unsigned_tx": tx.hex,
    })


async def cmd_build_upvote(args: argparse.Namespace, provider: LedgerProvider) -> None:
    script = load_script()
    if script is None:
        raise ScriptUnavailable("Upvotes require the compiled validator (PLUTUS_PATH)")
    builder = ReviewTxBuilder(provider, script=script, script_address=script_address(script))
    indexer = ReviewIndexer(provider, builder.script_address)

    review = await indexer.get_review(args.tx_hash, args.index)
    if review is None:
        raise ValidationError(f"No live review at {args.tx_hash}#{args.index}")

    tx = await builder.build_upvote(args.wallet, review, args.voter)
    _print_json({
        "tx_id": tx.tx_id,
        "fee": tx.fee,
        "upvotes": review.datum.upvotes + 1,
        "unsigned_tx": tx.hex,
    })


async def cmd_submit(args: argparse.Namespace, provider: LedgerProvider) -> None:
    assembler = TransactionAssembler()
    if args.signed:
        signed = assembler.assemble(signed_tx=args.signed)
    else:
        signed = assembler.assemble(unsigned_tx=args.unsigned, witness_set=args.witness)
    tx_hash = await provider.submit_transaction(signed)
    _print_json({"tx_hash": tx_hash})


async def cmd_tx(args: argparse.Namespace, provider: LedgerProvider) -> None:
    _print_json(await provider.fetch_transaction(args.tx_hash))


COMMANDS = {
    "network": cmd_network,
    "reviews": cmd_reviews,
    "reputation": cmd_reputation,
    "balance": cmd_balance,
    "build-review": cmd_build_review,
    "build-upvote": cmd_build_upvote,
    "submit": cmd_submit,
    "tx": cmd_tx,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="TrustChain review-ledger transaction core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Reviews for a product SKU
  python main.py reviews --sku SKU-123

  # Build, sign in wallet, then submit
  python main.py build-review --wallet addr_test1... --reviewer <keyhash> --sku SKU-123 --rating 5 --text "Great"
  python main.py submit --unsigned <tx hex> --witness <wallet witness hex>
""",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=config.logging.level,
        help=f"Logging level (default: {config.logging.level})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("network", help="Show the active network")

    reviews = sub.add_parser("reviews", help="List live reviews")
    target = reviews.add_mutually_exclusive_group()
    target.add_argument("--product", help="Product id (64 hex chars)")
    target.add_argument("--sku", help="Product SKU (hashed to a product id)")
    reviews.add_argument("--reviewer", help="Reviewer key hash")

    reputation = sub.add_parser("reputation", help="Reviewer reputation score")
    reputation.add_argument("key_hash", help="Reviewer key hash")

    balance = sub.add_parser("balance", help="Decode a wallet CBOR balance")
    balance.add_argument("cbor_hex", help="CIP-30 getBalance() result")

    build_review = sub.add_parser("build-review", help="Build an unsigned review submission")
    build_review.add_argument("--wallet", required=True, help="Wallet (change) address")
    build_review.add_argument("--reviewer", required=True, help="Reviewer key hash")
    product = build_review.add_mutually_exclusive_group(required=True)
    product.add_argument("--product", help="Product id (64 hex chars)")
    product.add_argument("--sku", help="Product SKU")
    build_review.add_argument("--rating", type=int, required=True, help="Rating 1-5")
    content = build_review.add_mutually_exclusive_group(required=True)
    content.add_argument("--text", help="Review text (hashed)")
    content.add_argument("--review-hash", help="Precomputed review hash")

    build_upvote = sub.add_parser("build-upvote", help="Build an unsigned upvote")
    build_upvote.add_argument("--wallet", required=True, help="Wallet (change) address")
    build_upvote.add_argument("--voter", required=True, help="Voter key hash")
    build_upvote.add_argument("--tx-hash", required=True, help="Review output tx hash")
    build_upvote.add_argument("--index", type=int, default=0, help="Review output index")

    submit = sub.add_parser("submit", help="Assemble and submit a transaction")
    submit.add_argument("--signed", help="Finalized transaction hex")
    submit.add_argument("--unsigned", help="Unsigned transaction hex")
    submit.add_argument("--witness", help="Wallet witness set hex")

    tx = sub.add_parser("tx", help="Transaction details")
    tx.add_argument("tx_hash", help="Transaction hash")

    return parser


async def main(argv: Optional[list] = None) -> int:
    """
    Entry point.

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "submit" and not args.signed and not (args.unsigned and args.witness):
        parser.error("submit needs --signed or both --unsigned and --witness")

    configure_logging(args.log_level.upper(), config.logging.format, config.logging.datefmt)
    network = get_current_network()
    logger.debug(f"[CHAIN] Network: {network['name']} (id {network['network_id']})")

    provider = create_provider(config.provider)
    try:
        await COMMANDS[args.command](args, provider)
    except ReviewChainError as e:
        logger.error(f"[{type(e).__name__}] {e}")
        return 1
    return 0


def run() -> None:
    """Console script entry."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
