"""Error taxonomy for claim verification.

``ProofNotVerified`` is the expected negative outcome of a verification and
is folded into ``False`` by ``proof_verify.verify_proof``. ``SignatureNotFound``
is the one precondition failure that escapes the boolean API.
"""
from __future__ import annotations


class ClaimVerificationError(Exception):
    """Base class for every error raised by the verification modules."""


class MalformedContext(ClaimVerificationError, ValueError):
    """A non-empty claim context is not valid JSON."""


class MalformedProof(ClaimVerificationError, ValueError):
    """An inbound proof does not have the expected wire shape."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("malformed proof: " + "; ".join(self.errors))


class InsufficientWitnessPool(ClaimVerificationError):
    """The beacon state cannot satisfy the quorum for a claim."""


class ProofNotVerified(ClaimVerificationError):
    """Identifier mismatch or missing witness coverage."""


class SignatureNotFound(ClaimVerificationError):
    """A proof carries no signatures at all."""


class InvalidSignature(ClaimVerificationError):
    """A signature is malformed or was produced by an unexpected key."""


class UnknownEpoch(ClaimVerificationError):
    """The beacon has no state for the requested epoch."""


class BeaconUnavailable(ClaimVerificationError):
    """Witness selection was needed but no beacon was supplied."""
