"""
TrustChain Reviews Test Configuration
=====================================

[QA] Central pytest configuration with fixtures for the review-ledger core:
- Unit tests: isolated, in-memory ledger, no network

[FIXTURES]
- reviewer / voter: PyNaCl Ed25519 signers
- funded_ledger: MemoryLedgerProvider with wallet UTxOs
- blueprint_file: CIP-57 validator artifact on disk
- builder / indexer: wired against the in-memory ledger

Usage:
    pytest tests/unit/          # Fast unit tests
    pytest -m "not slow"
"""

import json
import logging
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Fixed clock for datum timestamps
FIXED_TIME = 1_700_000_000

# Arbitrary program bytes; only the hash and address are derived from them
COMPILED_CODE_HEX = "58a701010032323232323225333002323232323253330073370e900118041baa0011"

WALLET_FUNDS = (100_000_000, 20_000_000, 8_000_000)


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (I/O, slower)")
    config.addinivalue_line("markers", "slow: Slow tests (skip with -m 'not slow')")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their path."""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================================================
# Logging Configuration
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # Silence noisy loggers during tests
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


# ============================================================================
# Temporary Directory Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp(prefix="trustchain_test_"))
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


# ============================================================================
# Key Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def reviewer():
    """Reviewer wallet key (deterministic seed)."""
    from chain.signer import KeySigner
    return KeySigner.from_seed_hex("01" * 32)


@pytest.fixture(scope="function")
def voter():
    """Voter wallet key (deterministic seed)."""
    from chain.signer import KeySigner
    return KeySigner.from_seed_hex("02" * 32)


@pytest.fixture(scope="function")
def wallet_address(reviewer) -> str:
    from chain.address import enterprise_address
    return enterprise_address(reviewer.key_hash, network_id=0)


@pytest.fixture(scope="function")
def voter_address(voter) -> str:
    from chain.address import enterprise_address
    return enterprise_address(voter.key_hash, network_id=0)


# ============================================================================
# Ledger Fixtures
# ============================================================================

def fund(ledger, address: str, amounts=WALLET_FUNDS, seed: str = "aa") -> None:
    """Seed ADA-only UTxOs at address."""
    from chain.transaction import OutputRef, UTxO, Value

    for index, coin in enumerate(amounts):
        ledger.add_utxo(UTxO(
            ref=OutputRef(tx_hash=seed * 32, index=index),
            address=address,
            value=Value(coin=coin),
        ))


@pytest.fixture(scope="function")
def funded_ledger(wallet_address: str, voter_address: str):
    """In-memory ledger with reviewer and voter wallets funded."""
    from chain.provider import MemoryLedgerProvider

    ledger = MemoryLedgerProvider()
    fund(ledger, wallet_address, seed="aa")
    fund(ledger, voter_address, seed="bb")
    return ledger


@pytest.fixture(scope="function")
def blueprint() -> dict:
    return {
        "preamble": {"title": "trustchain/reviews", "plutusVersion": "v3"},
        "validators": [{
            "title": "review.review.spend",
            "compiledCode": COMPILED_CODE_HEX,
        }],
    }


@pytest.fixture(scope="function")
def blueprint_file(temp_dir: Path, blueprint: dict) -> Path:
    path = temp_dir / "plutus.json"
    path.write_text(json.dumps(blueprint), encoding="utf-8")
    return path


@pytest.fixture(scope="function")
def script(blueprint_file: Path):
    from chain.script import ValidatorScript
    return ValidatorScript.load(blueprint_file, network_id=0)


@pytest.fixture(scope="function")
def tx_params():
    from config import TxConfig
    return TxConfig(network_id=0)


@pytest.fixture(scope="function")
def builder(funded_ledger, script, tx_params):
    from chain.builder import ReviewTxBuilder
    return ReviewTxBuilder(funded_ledger, script=script, params=tx_params, clock=lambda: FIXED_TIME)


@pytest.fixture(scope="function")
def indexer(funded_ledger, script):
    from chain.indexer import ReviewIndexer
    return ReviewIndexer(funded_ledger, script.address)


@pytest.fixture(scope="function")
def product_id() -> bytes:
    from chain.hashing import generate_product_id
    return bytes.fromhex(generate_product_id("SKU-123"))


@pytest.fixture(scope="function")
def review_hash(product_id: bytes) -> bytes:
    from chain.hashing import hash_review_content
    return bytes.fromhex(hash_review_content("Solid product", 5, product_id.hex()))


@pytest.fixture(scope="function")
def post_review(builder, funded_ledger, reviewer, wallet_address, product_id, review_hash):
    """Build, sign, assemble and submit a review; returns the tx hash."""
    from chain.assembler import TransactionAssembler

    async def _post(rating: int = 5, signer=None, address: str = None, product: bytes = None) -> str:
        signer = signer or reviewer
        tx = await builder.build_submission(
            address or wallet_address, signer.key_hash, product or product_id, rating, review_hash
        )
        witness_set = await signer.sign(tx)
        signed = TransactionAssembler().assemble(unsigned_tx=tx, witness_set=witness_set)
        return await funded_ledger.submit_transaction(signed)

    return _post


@pytest.fixture(scope="function")
def fund_wallet():
    """Factory seeding ADA-only UTxOs: fund_wallet(ledger, address, amounts)."""
    return fund
