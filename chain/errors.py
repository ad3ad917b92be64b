"""
Review-ledger error taxonomy.

Every failure surfaced by the chain package derives from ReviewChainError,
so callers can catch the family or a specific kind.
"""

from typing import Optional


class ReviewChainError(Exception):
    """Base error of the review-ledger core."""
    pass


class ValidationError(ReviewChainError):
    """Caller input violates a declared invariant."""
    pass


class UTXOError(ValidationError):
    """UTxO cannot be used as requested (e.g. no inline datum)."""
    pass


class BuilderError(ReviewChainError):
    """Transaction cannot be constructed."""
    pass


class InsufficientFunds(BuilderError):
    """Wallet UTxOs do not cover the required value."""

    def __init__(self, required: int, available: int, message: Optional[str] = None):
        self.required = required
        self.available = available
        super().__init__(
            message or f"Insufficient funds: required {required} lovelace, available {available}"
        )


class ScriptUnavailable(BuilderError):
    """Compiled validator program could not be loaded."""
    pass


class AssemblyError(ReviewChainError):
    """Witness set does not fit the unsigned transaction."""
    pass


class InvalidDatum(ReviewChainError):
    """On-chain datum bytes do not match the review layout."""
    pass


class ProviderUnavailable(ReviewChainError):
    """External ledger-data provider or signer is unreachable."""
    pass


class SubmissionRejected(ReviewChainError):
    """Ledger refused the transaction (e.g. an input is already spent)."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class PipelineError(ReviewChainError):
    """Signing pipeline step invoked out of order."""
    pass
