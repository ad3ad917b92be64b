"""
Ledger-Data Providers
=====================

[CHAIN] Capability interface over the ledger with exactly three
operations:
- fetch_utxos(address)         -> List[UTxO]
- fetch_transaction(tx_hash)   -> Dict
- submit_transaction(tx_cbor)  -> tx hash

Implementations:
- BlockfrostProvider: Blockfrost REST API via aiohttp
- MemoryLedgerProvider: in-process ledger for tests and demo mode

[CONCURRENCY] No internal timeout and no retry: a call may block for as
long as the backend takes, and cancellation belongs to the caller.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp

from config import ProviderConfig
from core.cbor import CBORError

from .address import encode_address, ensure_bech32
from .errors import AssemblyError, ProviderUnavailable, SubmissionRejected
from .hashing import blake2b_256
from .transaction import OutputRef, UnsignedTransaction, UTxO, Value

logger = logging.getLogger(__name__)


class LedgerProvider(ABC):
    """Ledger-data provider capability."""

    @abstractmethod
    async def fetch_utxos(self, address: str) -> List[UTxO]:
        """All unspent outputs currently at address."""

    @abstractmethod
    async def fetch_transaction(self, tx_hash: str) -> Dict[str, Any]:
        """Transaction details by hash."""

    @abstractmethod
    async def submit_transaction(self, tx_cbor: bytes) -> str:
        """
        Submit a finalized transaction.

        Returns:
            Transaction hash

        Raises:
            SubmissionRejected: Ledger refused the transaction
            ProviderUnavailable: Backend unreachable
        """


# ============================================================================
# Blockfrost
# ============================================================================

class BlockfrostProvider(LedgerProvider):
    """
    Blockfrost-backed provider.

    [USAGE]
        provider = BlockfrostProvider(project_id, base_url)
        utxos = await provider.fetch_utxos(script_address)
    """

    def __init__(
        self,
        project_id: str,
        base_url: str,
        page_size: int = 100,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ):
        """
        Args:
            project_id: Blockfrost project key
            base_url: API root for the network
            page_size: UTxOs requested per page
            timeout: Session timeout (default: none, the caller cancels)
        """
        self.project_id = project_id
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout or aiohttp.ClientTimeout(total=None)

    @classmethod
    def from_config(cls, cfg: ProviderConfig) -> "BlockfrostProvider":
        return cls(cfg.blockfrost_api_key, cfg.blockfrost_url, cfg.page_size)

    @property
    def _headers(self) -> Dict[str, str]:
        return {"project_id": self.project_id}

    async def _get(self, session: aiohttp.ClientSession, path: str, **params: Any) -> Optional[Any]:
        """GET a JSON resource; None on 404."""
        url = f"{self.base_url}{path}"
        async with session.get(url, params=params or None) as response:
            if response.status == 404:
                return None
            if response.status != 200:
                text = await response.text()
                raise ProviderUnavailable(f"Blockfrost error ({response.status}): {text}")
            return await response.json()

    async def fetch_utxos(self, address: str) -> List[UTxO]:
        address = ensure_bech32(address)
        utxos: List[UTxO] = []
        try:
            async with aiohttp.ClientSession(headers=self._headers, timeout=self.timeout) as session:
                page = 1
                while True:
                    batch = await self._get(
                        session,
                        f"/addresses/{address}/utxos",
                        count=self.page_size,
                        page=page,
                    )
                    if not batch:
                        break
                    utxos.extend(self.parse_utxo(entry) for entry in batch)
                    if len(batch) < self.page_size:
                        break
                    page += 1
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable("Blockfrost request timed out") from e
        except aiohttp.ClientError as e:
            raise ProviderUnavailable(f"Blockfrost unreachable: {e}") from e

        logger.debug(f"[CHAIN] {len(utxos)} UTxOs at {address}")
        return utxos

    @staticmethod
    def parse_utxo(entry: Dict[str, Any]) -> UTxO:
        """Map a Blockfrost /addresses/{a}/utxos entry to a UTxO."""
        inline = entry.get("inline_datum")
        return UTxO(
            ref=OutputRef(tx_hash=entry["tx_hash"], index=int(entry["output_index"])),
            address=entry["address"],
            value=Value.from_amounts(entry.get("amount", [])),
            inline_datum=bytes.fromhex(inline) if inline else None,
        )

    async def fetch_transaction(self, tx_hash: str) -> Dict[str, Any]:
        try:
            async with aiohttp.ClientSession(headers=self._headers, timeout=self.timeout) as session:
                details = await self._get(session, f"/txs/{tx_hash}")
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable("Blockfrost request timed out") from e
        except aiohttp.ClientError as e:
            raise ProviderUnavailable(f"Blockfrost unreachable: {e}") from e
        if details is None:
            raise ProviderUnavailable(f"Transaction {tx_hash} not found")
        return details

    async def submit_transaction(self, tx_cbor: bytes) -> str:
        headers = dict(self._headers)
        headers["Content-Type"] = "application/cbor"
        logger.info(f"[TX] Submitting transaction ({len(tx_cbor)} bytes)")
        try:
            async with aiohttp.ClientSession(headers=headers, timeout=self.timeout) as session:
                async with session.post(f"{self.base_url}/tx/submit", data=tx_cbor) as response:
                    if 400 <= response.status < 500:
                        text = await response.text()
                        raise SubmissionRejected(f"Submission rejected: {text}", status=response.status)
                    if response.status != 200:
                        text = await response.text()
                        raise ProviderUnavailable(f"Blockfrost error ({response.status}): {text}")
                    tx_hash = await response.json()
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable("Blockfrost request timed out") from e
        except aiohttp.ClientError as e:
            raise ProviderUnavailable(f"Blockfrost unreachable: {e}") from e

        logger.info(f"[TX] Submitted: {tx_hash}")
        return tx_hash


# ============================================================================
# In-Memory Ledger
# ============================================================================

class MemoryLedgerProvider(LedgerProvider):
    """
    In-process ledger.

    [UTXO] Keeps the live UTxO set keyed by (tx_hash, index). Submitting a
    transaction spends its inputs and creates its outputs; a reference can
    be spent at most once, exactly like the real ledger.
    """

    def __init__(self):
        self._utxos: Dict[OutputRef, UTxO] = {}
        self._spent: Dict[OutputRef, str] = {}
        self._transactions: Dict[str, Dict[str, Any]] = {}
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise ProviderUnavailable("Ledger provider offline")

    def add_utxo(self, utxo: UTxO) -> UTxO:
        """Seed the ledger with an output (genesis funds, fixtures)."""
        self._utxos[utxo.ref] = utxo
        return utxo

    def is_spent(self, ref: OutputRef) -> bool:
        return ref in self._spent

    async def fetch_utxos(self, address: str) -> List[UTxO]:
        self._check_available()
        address = ensure_bech32(address)
        return [u for u in self._utxos.values() if u.address == address]

    async def fetch_transaction(self, tx_hash: str) -> Dict[str, Any]:
        self._check_available()
        if tx_hash not in self._transactions:
            raise ProviderUnavailable(f"Transaction {tx_hash} not found")
        return dict(self._transactions[tx_hash])

    async def submit_transaction(self, tx_cbor: bytes) -> str:
        self._check_available()
        tx = UnsignedTransaction(cbor=tx_cbor)
        try:
            tx_hash = blake2b_256(tx.body_cbor).hex()
            inputs = tx.inputs
            outputs = tx.outputs
            fee = tx.fee
        except (AssemblyError, CBORError, ValueError, TypeError, KeyError) as e:
            raise SubmissionRejected(f"Malformed transaction: {e}", status=400) from e

        for ref in inputs:
            if ref in self._spent:
                raise SubmissionRejected(
                    f"Input {ref} already spent by {self._spent[ref]}", status=400
                )
            if ref not in self._utxos:
                raise SubmissionRejected(f"Unknown input {ref}", status=400)

        for ref in inputs:
            del self._utxos[ref]
            self._spent[ref] = tx_hash

        for index, output in enumerate(outputs):
            ref = OutputRef(tx_hash=tx_hash, index=index)
            self._utxos[ref] = UTxO(
                ref=ref,
                address=encode_address(output.address),
                value=output.value,
                inline_datum=output.inline_datum,
            )

        self._transactions[tx_hash] = {
            "hash": tx_hash,
            "fees": str(fee),
            "size": len(tx_cbor),
            "inputs": [str(ref) for ref in inputs],
            "output_count": len(outputs),
        }
        logger.info(f"[TX] Accepted {tx_hash} ({len(inputs)} in, {len(outputs)} out)")
        return tx_hash


def create_provider(cfg: ProviderConfig) -> LedgerProvider:
    """Blockfrost when a project id is configured, in-memory demo ledger otherwise."""
    if cfg.is_configured:
        logger.info("[CHAIN] Blockfrost provider initialized")
        return BlockfrostProvider.from_config(cfg)
    logger.warning("[CHAIN] Blockfrost provider NOT initialized - using in-memory demo ledger")
    return MemoryLedgerProvider()
