"""Structural validation of inbound proof objects.

Checks the wire shape of a proof before any hashing or key recovery happens.
Returns a list of error strings; an empty list means the proof is
well-formed (it says nothing about whether the proof verifies).
"""
from __future__ import annotations

import re
from typing import Any

HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")
IDENTIFIER_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

REQUIRED_FIELDS = {"identifier", "claimData", "signatures", "witnesses"}

OPTIONAL_FIELDS = {"extractedParameterValues", "publicData", "taskId"}

CLAIM_DATA_STRINGS = ("provider", "parameters", "owner", "context", "identifier")
CLAIM_DATA_INTEGERS = ("timestampS", "epoch")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_claim_data(claim_data: Any, strict: bool = True) -> list[str]:
    """Validate the ``claimData`` member of a proof."""
    if not isinstance(claim_data, dict):
        return ["claimData must be an object"]

    errors: list[str] = []
    for field in CLAIM_DATA_STRINGS:
        if field not in claim_data:
            errors.append(f"claimData: missing required field '{field}'")
        elif not isinstance(claim_data[field], str):
            errors.append(f"claimData: field '{field}' must be a string")

    for field in CLAIM_DATA_INTEGERS:
        if field not in claim_data:
            errors.append(f"claimData: missing required field '{field}'")
        elif not _is_int(claim_data[field]) or claim_data[field] < 0:
            errors.append(f"claimData: {field} must be a non-negative integer")

    owner = claim_data.get("owner")
    if strict and isinstance(owner, str) and not ADDRESS_RE.match(owner):
        errors.append("claimData: owner is not a 20-byte hex address")

    return errors


def validate_witnesses(witnesses: Any) -> list[str]:
    if not isinstance(witnesses, list):
        return ["witnesses must be a list"]

    errors: list[str] = []
    for i, witness in enumerate(witnesses):
        if not isinstance(witness, dict):
            errors.append(f"witnesses[{i}]: must be an object")
            continue
        for field in ("id", "url"):
            if not isinstance(witness.get(field), str):
                errors.append(f"witnesses[{i}]: field '{field}' must be a string")
    return errors


def validate_proof(proof: Any, strict: bool = True) -> list[str]:
    """Validate a single proof dict. Returns list of error strings.

    With ``strict=False`` only the checks that stop the fields from being
    read at all are applied: missing keys and wrong container or scalar
    types. Format problems (identifier length, signature encoding, owner
    address, unknown keys) are then left to verification, which reports
    them as a failed proof.
    """
    if not isinstance(proof, dict):
        return ["proof must be a JSON object"]

    errors: list[str] = []

    for field in sorted(REQUIRED_FIELDS):
        if field not in proof:
            errors.append(f"missing required field '{field}'")

    extra = set(proof.keys()) - REQUIRED_FIELDS - OPTIONAL_FIELDS
    if strict and extra:
        errors.append(f"unexpected fields: {sorted(extra)}")

    # Some encoders wrap the identifier in quotes; tolerate that here and
    # let verification normalize it.
    identifier = proof.get("identifier")
    if identifier is not None:
        if not isinstance(identifier, str):
            errors.append("identifier must be a string")
        elif strict and not IDENTIFIER_RE.match(identifier.replace('"', "")):
            errors.append("identifier is not a 0x-prefixed 32-byte hex string")

    if "claimData" in proof:
        errors.extend(validate_claim_data(proof["claimData"], strict))

    # An empty list is well-formed; verification reports it as SignatureNotFound.
    signatures = proof.get("signatures")
    if signatures is not None:
        if not isinstance(signatures, list):
            errors.append("signatures must be a list")
        else:
            for i, sig in enumerate(signatures):
                if not isinstance(sig, str):
                    errors.append(f"signatures[{i}]: must be a string")
                elif strict and not HEX_RE.match(sig):
                    errors.append(f"signatures[{i}]: must be a 0x-prefixed hex string")

    if "witnesses" in proof:
        errors.extend(validate_witnesses(proof["witnesses"]))

    public_data = proof.get("publicData")
    if public_data is not None and not isinstance(public_data, dict):
        errors.append("publicData must be an object when present")

    return errors
