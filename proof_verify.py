#!/usr/bin/env python3
"""Witness-quorum verifier for claim proofs.

Confirms that a proof was signed by the witnesses the protocol required for
it, without trusting any single witness or the proof's own witness list.

Verification steps:
  1. Reject a proof with no signatures (SignatureNotFound)
  2. Decide the witness mode: a manual/AI sentinel witness (only when the
     caller opts in), otherwise pool selection
  3. For pool selection, fetch the epoch's BeaconState and recompute the
     required witnesses from (identifier, epoch, quorum, timestampS)
  4. Re-derive the identifier from provider/parameters/context and compare
     it with the proof identifier (quotes stripped)
  5. Recover every signer from the claim sign-data
  6. Check the recovered signers cover the expected witnesses; extra
     signers are fine

verify_proof() is a boolean predicate: every failure in steps 2-6 is logged
and returned as False. check_proof() exposes the same pipeline as a typed
ProofCheck so callers can see which step failed.

Dependencies: coincurve, pycryptodome, jcs.py

Usage:
    python proof_verify.py [--beacon PATH] <proof.json>
    python proof_verify.py --json --allow-manual <proof.json>
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from beacon import Beacon, CachedBeacon, StaticBeacon
from claim_errors import (
    BeaconUnavailable,
    ClaimVerificationError,
    MalformedProof,
    ProofNotVerified,
    SignatureNotFound,
)
from claim_types import (
    AI_WITNESS_URL,
    MANUAL_VERIFY_URL,
    ClaimInfo,
    Proof,
    SignedClaim,
    WitnessData,
)
from jcs import canonicalize
from signatures import assert_valid_signed_claim, to_bytes
from witness import fetch_witness_list_for_claim, get_identifier_from_claim_info

logger = logging.getLogger(__name__)

BEACON_PATH = Path(
    os.environ.get("CLAIM_VERIFY_BEACON_PATH", Path(__file__).parent / "beacon.json")
)
LOG_LEVEL = os.environ.get("CLAIM_VERIFY_LOG_LEVEL", "WARNING")

IDENTIFIER_MISMATCH = "Identifier Mismatch"


# --- Witness mode ---

@dataclass(frozen=True)
class SelectedWitnesses:
    """Expected witnesses come from deterministic pool selection."""


@dataclass(frozen=True)
class ManualWitness:
    witness: WitnessData


@dataclass(frozen=True)
class AiAttestedWitness:
    witness: WitnessData


WitnessMode = Union[SelectedWitnesses, ManualWitness, AiAttestedWitness]


def witness_mode_for(
    proof: Proof,
    allow_manual_verify: bool = False,
    allow_ai_witness: bool = False,
) -> WitnessMode:
    """Classify a proof once, at the point its sentinel URL is read."""
    if proof.witnesses:
        first = proof.witnesses[0]
        if first.url == MANUAL_VERIFY_URL and allow_manual_verify:
            return ManualWitness(first)
        if first.url == AI_WITNESS_URL and allow_ai_witness:
            return AiAttestedWitness(first)
    return SelectedWitnesses()


# --- Typed result ---

@dataclass
class ProofCheck:
    """Result of checking one proof."""
    status: str  # "verified" | "identifier_mismatch" | "missing_signatures" | "error"
    mode: Optional[WitnessMode] = None
    errors: list[str] = field(default_factory=list)
    failure: Optional[Exception] = None
    expected_witnesses: list[str] = field(default_factory=list)
    recovered_signers: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "verified"


def normalize_identifier(identifier: str) -> str:
    # Legacy encoders double-quoted the identifier.
    return identifier.replace('"', "")


def recompute_identifier(proof: Proof) -> str:
    claim_data = proof.claim_data
    return get_identifier_from_claim_info(ClaimInfo(
        provider=claim_data.provider,
        parameters=json.loads(canonicalize(claim_data.parameters)),
        context=claim_data.context,
    ))


async def get_witnesses_for_claim(
    beacon: Optional[Beacon],
    epoch: int,
    identifier: str,
    timestamp_s: int,
) -> list[str]:
    """Fetch the epoch state and return the required witness addresses."""
    if beacon is None:
        logger.warning("No beacon available for getting witnesses")
        raise BeaconUnavailable("No beacon available")
    state = await beacon.get_state(epoch)
    witnesses = fetch_witness_list_for_claim(state, identifier, timestamp_s)
    return [w.id.lower() for w in witnesses]


def _as_proof(proof: Union[Proof, dict]) -> Proof:
    if isinstance(proof, Proof):
        return proof
    return Proof.from_dict(proof)


async def check_proof(
    proof: Union[Proof, dict],
    beacon: Optional[Beacon] = None,
    *,
    allow_manual_verify: bool = False,
    allow_ai_witness: bool = False,
) -> ProofCheck:
    """Run every verification step and report where it stopped.

    Raises SignatureNotFound for a proof without signatures and
    MalformedProof for a dict that is not a proof; every other failure is
    returned inside the ProofCheck.
    """
    proof = _as_proof(proof)
    if not proof.signatures:
        raise SignatureNotFound("No signatures")

    identifier = normalize_identifier(proof.identifier)
    result = ProofCheck(status="error")
    try:
        mode = witness_mode_for(proof, allow_manual_verify, allow_ai_witness)
        result.mode = mode
        if isinstance(mode, SelectedWitnesses):
            result.expected_witnesses = await get_witnesses_for_claim(
                beacon,
                proof.claim_data.epoch,
                identifier,
                proof.claim_data.timestamp_s,
            )
        else:
            result.expected_witnesses = [mode.witness.id.lower()]

        calculated = recompute_identifier(proof)
        if calculated != identifier:
            raise ProofNotVerified(IDENTIFIER_MISMATCH)

        signed_claim = SignedClaim(
            claim=proof.claim_data.to_complete_claim(),
            signatures=tuple(to_bytes(sig) for sig in proof.signatures),
        )
        result.recovered_signers = assert_valid_signed_claim(
            signed_claim, result.expected_witnesses
        )
    except ProofNotVerified as e:
        result.status = (
            "identifier_mismatch" if str(e) == IDENTIFIER_MISMATCH else "missing_signatures"
        )
        result.failure = e
        result.errors.append(str(e))
        return result
    except Exception as e:
        result.failure = e
        result.errors.append(f"{type(e).__name__}: {e}")
        return result

    result.status = "verified"
    return result


async def verify_proof(
    proof_or_proofs: Union[Proof, dict, Sequence[Union[Proof, dict]]],
    beacon: Optional[Beacon] = None,
    *,
    allow_manual_verify: bool = False,
    allow_ai_witness: bool = False,
) -> bool:
    """Return True when the proof (or every proof, in order) verifies.

    A list stops at the first failing proof. Only SignatureNotFound (and
    MalformedProof for a dict that is not a proof) propagate.
    """
    if isinstance(proof_or_proofs, (list, tuple)):
        for proof in proof_or_proofs:
            verified = await verify_proof(
                proof,
                beacon,
                allow_manual_verify=allow_manual_verify,
                allow_ai_witness=allow_ai_witness,
            )
            if not verified:
                return False
        return True

    result = await check_proof(
        proof_or_proofs,
        beacon,
        allow_manual_verify=allow_manual_verify,
        allow_ai_witness=allow_ai_witness,
    )
    if not result.ok:
        logger.info("Error verifying proof: %s", "; ".join(result.errors))
    return result.ok


def transform_for_onchain(proof: Union[Proof, dict]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a proof into the (claimInfo, signedClaim) pair contracts expect.

    Key order is part of the contract.
    """
    proof = _as_proof(proof)
    claim_data = proof.claim_data
    claim_info = {
        "context": claim_data.context,
        "parameters": claim_data.parameters,
        "provider": claim_data.provider,
    }
    signed_claim = {
        "claim": {
            "epoch": claim_data.epoch,
            "identifier": claim_data.identifier,
            "owner": claim_data.owner,
            "timestampS": claim_data.timestamp_s,
        },
        "signatures": list(proof.signatures),
    }
    return claim_info, signed_claim


# --- CLI ---

def _configure_logging(level: str) -> None:
    if level.lower() == "silent":
        logging.disable(logging.CRITICAL)
        return
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


async def _run(
    proofs: list[Any],
    beacon: Optional[Beacon],
    allow_manual: bool,
    allow_ai: bool,
) -> list[ProofCheck]:
    results = []
    try:
        for proof in proofs:
            try:
                results.append(await check_proof(
                    proof,
                    beacon,
                    allow_manual_verify=allow_manual,
                    allow_ai_witness=allow_ai,
                ))
            except ClaimVerificationError as e:
                results.append(ProofCheck(status="error", failure=e, errors=[str(e)]))
    finally:
        if beacon is not None:
            await beacon.close()
    return results


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="claim-verify",
        description="Verify that claim proofs carry their required witness signatures.",
    )
    parser.add_argument("proof", type=Path, help="JSON file holding a proof or a list of proofs")
    parser.add_argument("--beacon", type=Path, default=BEACON_PATH,
                        help="JSON file with beacon epoch states")
    parser.add_argument("--json", action="store_true", help="print results as JSON")
    parser.add_argument("--allow-manual", action="store_true",
                        help="trust manual-verify sentinel witnesses")
    parser.add_argument("--allow-ai", action="store_true",
                        help="trust ai-witness sentinel witnesses")
    parser.add_argument("--log-level", default=LOG_LEVEL)
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)

    try:
        data = json.loads(args.proof.read_text())
    except (OSError, ValueError) as e:
        print(f"ERROR: cannot read {args.proof}: {e}", file=sys.stderr)
        return 2
    proofs = data if isinstance(data, list) else [data]

    try:
        for proof in proofs:
            Proof.from_dict(proof)
    except MalformedProof as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    beacon: Optional[Beacon] = None
    if args.beacon.exists():
        beacon = CachedBeacon(StaticBeacon.from_file(args.beacon))

    results = asyncio.run(_run(proofs, beacon, args.allow_manual, args.allow_ai))

    if args.json:
        print(json.dumps([
            {
                "ok": r.ok,
                "status": r.status,
                "errors": r.errors,
                "expected_witnesses": r.expected_witnesses,
                "recovered_signers": r.recovered_signers,
            }
            for r in results
        ], indent=2))
    else:
        for proof, r in zip(proofs, results):
            label = "PASS" if r.ok else "FAIL"
            print(f"Proof {proof.get('identifier', '?')}: {label} ({r.status})")
            for e in r.errors:
                print(f"  ERROR: {e}")

    return 0 if all(r.ok for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
