"""
TrustChain Reviews Configuration
================================
Centralized configuration for the review-ledger core.
"""

from dataclasses import dataclass, field
from typing import Dict, List

import os

# ============================================================================
# Cardano Network Presets
# ============================================================================

NETWORKS: Dict[str, Dict[str, object]] = {
    "mainnet": {
        "name": "Cardano Mainnet",
        "network_id": 1,
        "blockfrost_url": "https://cardano-mainnet.blockfrost.io/api/v0",
        "explorer_url": "https://cardanoscan.io",
        "address_prefix": "addr",
    },
    "preprod": {
        "name": "Cardano Preprod",
        "network_id": 0,
        "blockfrost_url": "https://cardano-preprod.blockfrost.io/api/v0",
        "explorer_url": "https://preprod.cardanoscan.io",
        "address_prefix": "addr_test",
    },
    "preview": {
        "name": "Cardano Preview",
        "network_id": 0,
        "blockfrost_url": "https://cardano-preview.blockfrost.io/api/v0",
        "explorer_url": "https://preview.cardanoscan.io",
        "address_prefix": "addr_test",
    },
}

# Selected network from environment (.env: TRUSTCHAIN_NETWORK)
TRUSTCHAIN_NETWORK: str = os.getenv("TRUSTCHAIN_NETWORK", "preprod").lower()
if TRUSTCHAIN_NETWORK not in NETWORKS:
    TRUSTCHAIN_NETWORK = "preprod"

_SELECTED = NETWORKS[TRUSTCHAIN_NETWORK]

# Convenience globals
NETWORK_ID: int = int(_SELECTED["network_id"])  # type: ignore
BLOCKFROST_URL: str = _SELECTED["blockfrost_url"]  # type: ignore
EXPLORER_URL: str = _SELECTED["explorer_url"]  # type: ignore
ADDRESS_PREFIX: str = _SELECTED["address_prefix"]  # type: ignore

# Placeholder shipped in the sample .env; treated as "not configured"
BLOCKFROST_PLACEHOLDER = "your_blockfrost_api_key_here"


def _blockfrost_key() -> str:
    key = os.getenv("BLOCKFROST_API_KEY", "").strip()
    if key == BLOCKFROST_PLACEHOLDER:
        return ""
    return key


@dataclass
class ProviderConfig:
    """Ledger-data provider settings."""

    # Blockfrost project id; empty means in-memory demo ledger
    blockfrost_api_key: str = field(default_factory=_blockfrost_key)
    blockfrost_url: str = BLOCKFROST_URL

    # Blockfrost page size for /addresses/{addr}/utxos
    page_size: int = 100

    @property
    def is_configured(self) -> bool:
        return bool(self.blockfrost_api_key)


@dataclass
class ScriptConfig:
    """Compiled validator artifact."""

    # CIP-57 blueprint produced by the validator build
    plutus_path: str = os.getenv("PLUTUS_PATH", "aiken-contracts/plutus.json")

    # Explicit script address; derived from the script hash when empty
    address: str = os.getenv("SCRIPT_ADDRESS", "").strip()


@dataclass
class TxConfig:
    """Transaction building parameters."""

    network_id: int = NETWORK_ID

    # Lovelace locked with every review output (2 ADA)
    script_lovelace: int = 2_000_000

    # Linear fee: min_fee_a * size + min_fee_b
    min_fee_a: int = 44
    min_fee_b: int = 155_381

    # Change below this is folded into the fee
    min_change_lovelace: int = 1_000_000

    # Collateral input for script spends must hold at least this much
    collateral_lovelace: int = 5_000_000

    # Execution budget reserved for the validator run
    ex_units_mem: int = 2_000_000
    ex_units_steps: int = 800_000_000

    # Execution unit prices (lovelace per unit)
    price_mem: str = "0.0577"
    price_steps: str = "0.0000721"

    # Plutus V3 cost model used in the script data hash language view
    cost_model_v3: List[int] = field(default_factory=list)


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"


@dataclass
class Config:
    """Main configuration."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    script: ScriptConfig = field(default_factory=ScriptConfig)
    tx: TxConfig = field(default_factory=TxConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Global configuration instance
config = Config()


def get_current_network() -> Dict[str, object]:
    """Return the active network preset."""
    return {
        "key": TRUSTCHAIN_NETWORK,
        "name": _SELECTED["name"],
        "network_id": NETWORK_ID,
        "blockfrost_url": BLOCKFROST_URL,
        "explorer_url": EXPLORER_URL,
        "address_prefix": ADDRESS_PREFIX,
    }
