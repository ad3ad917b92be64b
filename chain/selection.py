"""
Coin selection and fee arithmetic.

[SELECTION] Sequential accumulation: walk the wallet UTxOs in provider
order and take them until the target is covered. Deliberately naive;
a better algorithm can replace select_utxos without touching the builder.
"""

import math
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from config import TxConfig

from .errors import InsufficientFunds
from .transaction import OutputRef, UTxO

# Serialized size of one vkey witness: [bytes(32), bytes(64)] plus list header
VKEY_WITNESS_SIZE = 1 + 2 + 32 + 2 + 64

# Witness map header, key 0 and array header added when signatures land
WITNESS_SET_OVERHEAD = 4


def select_utxos(
    utxos: Sequence[UTxO],
    target: int,
    exclude: Iterable[OutputRef] = (),
) -> Tuple[List[UTxO], int]:
    """
    Accumulate UTxOs until their lovelace covers target.

    Returns:
        (selected, total lovelace)

    Raises:
        InsufficientFunds: All candidates together do not cover target
    """
    skip = set(exclude)
    selected: List[UTxO] = []
    total = 0
    if target <= 0:
        return selected, total

    for utxo in utxos:
        if utxo.ref in skip or utxo.inline_datum is not None:
            continue
        selected.append(utxo)
        total += utxo.value.coin
        if total >= target:
            return selected, total

    raise InsufficientFunds(required=target, available=total)


def select_collateral(utxos: Sequence[UTxO], minimum: int) -> Optional[UTxO]:
    """First ADA-only UTxO holding at least minimum lovelace."""
    for utxo in utxos:
        if utxo.is_pure_ada and utxo.value.coin >= minimum:
            return utxo
    return None


def linear_fee(size: int, params: TxConfig) -> int:
    return params.min_fee_a * size + params.min_fee_b


def execution_fee(params: TxConfig) -> int:
    """Price of the reserved execution budget, rounded up."""
    cost = (
        Decimal(params.price_mem) * params.ex_units_mem
        + Decimal(params.price_steps) * params.ex_units_steps
    )
    return int(math.ceil(cost))


def estimate_fee(tx_size: int, signer_count: int, params: TxConfig, scripted: bool = False) -> int:
    """Fee for a transaction once signer_count vkey witnesses are attached."""
    fee = linear_fee(
        tx_size + WITNESS_SET_OVERHEAD + VKEY_WITNESS_SIZE * max(signer_count, 1), params
    )
    if scripted:
        fee += execution_fee(params)
    return fee
