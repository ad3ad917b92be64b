"""
Compiled validator artifact.

[SCRIPT] Loads the CIP-57 blueprint (plutus.json) produced by the
validator build and derives the script hash and the ledger address the
review outputs are locked at.

    {
      "preamble": {"plutusVersion": "v3", ...},
      "validators": [{"title": "...", "compiledCode": "<hex>", "hash": "<hex>"}]
    }
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .address import enterprise_address
from .errors import ScriptUnavailable
from .hashing import blake2b_224

logger = logging.getLogger(__name__)

PLUTUS_VERSIONS = {"v1": 1, "v2": 2, "v3": 3}

# Witness-set key carrying scripts of each Plutus version
SCRIPT_WITNESS_KEYS = {1: 3, 2: 6, 3: 7}

# Language id used in the script data hash language views
LANGUAGE_IDS = {1: 0, 2: 1, 3: 2}


def script_hash(compiled_code: bytes, version: int) -> bytes:
    """BLAKE2b-224 over the language prefix byte and the script bytes."""
    return blake2b_224(bytes([version]) + compiled_code)


@dataclass(frozen=True)
class ValidatorScript:
    """Review validator program and its derived address."""

    title: str
    compiled_code: bytes
    version: int
    hash: bytes
    address: str

    @property
    def witness_key(self) -> int:
        return SCRIPT_WITNESS_KEYS[self.version]

    @property
    def language_id(self) -> int:
        return LANGUAGE_IDS[self.version]

    @classmethod
    def from_blueprint(
        cls,
        blueprint: Dict[str, Any],
        network_id: int,
        address: Optional[str] = None,
    ) -> "ValidatorScript":
        """
        Build from a parsed blueprint; the first validator is used.

        Raises:
            ScriptUnavailable: Blueprint lacks a usable validator
        """
        try:
            validator = blueprint["validators"][0]
            compiled_code = bytes.fromhex(validator["compiledCode"])
            version_name = blueprint.get("preamble", {}).get("plutusVersion", "v3")
            version = PLUTUS_VERSIONS[version_name.lower()]
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ScriptUnavailable(f"Invalid validator blueprint: {e!r}") from e

        digest = script_hash(compiled_code, version)
        declared = validator.get("hash")
        if declared and declared.lower() != digest.hex():
            logger.warning(
                f"[SCRIPT] Blueprint hash {declared} differs from computed {digest.hex()}"
            )

        return cls(
            title=validator.get("title", "review"),
            compiled_code=compiled_code,
            version=version,
            hash=digest,
            address=address or enterprise_address(digest, network_id, script=True),
        )

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        network_id: int,
        address: Optional[str] = None,
    ) -> "ValidatorScript":
        """
        Load the blueprint from disk.

        Raises:
            ScriptUnavailable: File missing or not valid JSON
        """
        try:
            blueprint = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ScriptUnavailable(f"Plutus script not loaded from {path}: {e}") from e

        script = cls.from_blueprint(blueprint, network_id, address)
        logger.info(f"[SCRIPT] Loaded {script.title} (v{script.version}) at {script.address}")
        return script
