"""Value types for claims, witnesses, beacon state and proofs.

Every type here is a frozen dataclass: an identifier re-derived from a
mutated ClaimInfo would silently diverge from what the witnesses signed.
Wire dicts use the camelCase keys of the proof format; ``from_dict`` and
``to_dict`` translate between the two.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from claim_errors import MalformedProof
from validate_proof import validate_proof

# Witness URL sentinels marking a single-witness claim.
MANUAL_VERIFY_URL = "manual-verify"
AI_WITNESS_URL = "ai-witness"


@dataclass(frozen=True)
class ClaimInfo:
    """Provider name plus the JSON-encoded parameters and context."""
    provider: str
    parameters: str
    context: str = ""


@dataclass(frozen=True)
class WitnessData:
    id: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WitnessData":
        return cls(id=data["id"], url=data["url"])


@dataclass(frozen=True)
class CompleteClaimData:
    """The payload witnesses sign.

    Carries either a known ``identifier`` or the ``info`` it is derived from.
    """
    owner: str
    timestamp_s: int
    epoch: int
    identifier: Optional[str] = None
    info: Optional[ClaimInfo] = None

    def __post_init__(self):
        if self.identifier is None and self.info is None:
            raise ValueError("CompleteClaimData needs an identifier or a ClaimInfo")


@dataclass(frozen=True)
class SignedClaim:
    claim: CompleteClaimData
    signatures: tuple[bytes, ...] = ()


@dataclass(frozen=True)
class BeaconState:
    """Witness pool and quorum in effect for one epoch."""
    witnesses: tuple[WitnessData, ...]
    epoch: int
    witnesses_required_for_claim: int
    next_epoch_timestamp_s: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "witnesses": [w.to_dict() for w in self.witnesses],
            "epoch": self.epoch,
            "witnessesRequiredForClaim": self.witnesses_required_for_claim,
            "nextEpochTimestampS": self.next_epoch_timestamp_s,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BeaconState":
        return cls(
            witnesses=tuple(WitnessData.from_dict(w) for w in data["witnesses"]),
            epoch=int(data["epoch"]),
            witnesses_required_for_claim=int(data["witnessesRequiredForClaim"]),
            next_epoch_timestamp_s=int(data.get("nextEpochTimestampS", 0)),
        )


@dataclass(frozen=True)
class ProviderClaimData:
    """The ``claimData`` member of a proof."""
    provider: str
    parameters: str
    owner: str
    timestamp_s: int
    context: str
    identifier: str
    epoch: int

    @property
    def claim_info(self) -> ClaimInfo:
        return ClaimInfo(
            provider=self.provider,
            parameters=self.parameters,
            context=self.context,
        )

    def to_complete_claim(self) -> CompleteClaimData:
        return CompleteClaimData(
            owner=self.owner,
            timestamp_s=self.timestamp_s,
            epoch=self.epoch,
            identifier=self.identifier or None,
            info=self.claim_info,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "parameters": self.parameters,
            "owner": self.owner,
            "timestampS": self.timestamp_s,
            "context": self.context,
            "identifier": self.identifier,
            "epoch": self.epoch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProviderClaimData":
        return cls(
            provider=data["provider"],
            parameters=data["parameters"],
            owner=data["owner"],
            timestamp_s=data["timestampS"],
            context=data["context"],
            identifier=data["identifier"],
            epoch=data["epoch"],
        )


@dataclass(frozen=True)
class Proof:
    """A claim together with its witness signatures.

    ``witnesses`` records what the producer says it used; verification
    recomputes the expected set instead of trusting it.
    """
    identifier: str
    claim_data: ProviderClaimData
    signatures: tuple[str, ...]
    witnesses: tuple[WitnessData, ...]
    extracted_parameter_values: Any = None
    public_data: Optional[dict[str, str]] = None
    task_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "identifier": self.identifier,
            "claimData": self.claim_data.to_dict(),
            "signatures": list(self.signatures),
            "witnesses": [w.to_dict() for w in self.witnesses],
            "extractedParameterValues": self.extracted_parameter_values,
        }
        if self.public_data is not None:
            data["publicData"] = dict(self.public_data)
        if self.task_id is not None:
            data["taskId"] = self.task_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Proof":
        """Build a Proof from its wire dict.

        Raises MalformedProof only when fields cannot be read; format
        problems are left for verification to reject.
        """
        errors = validate_proof(data, strict=False)
        if errors:
            raise MalformedProof(errors)
        return cls(
            identifier=data["identifier"],
            claim_data=ProviderClaimData.from_dict(data["claimData"]),
            signatures=tuple(data["signatures"]),
            witnesses=tuple(WitnessData.from_dict(w) for w in data["witnesses"]),
            extracted_parameter_values=data.get("extractedParameterValues"),
            public_data=data.get("publicData"),
            task_id=data.get("taskId"),
        )
