"""Claim identifiers, signed-message layout and witness selection.

Both the verifier and the attestors compute these independently, so every
function here must be bit-for-bit reproducible:

  - identifier = keccak256(provider \\n parameters \\n canonical(context))
  - sign data  = identifier \\n owner \\n timestampS \\n epoch
  - selection  = swap-remove draws from the pool, indexed by successive
                 big-endian uint32 words of
                 keccak256(identifier \\n epoch \\n quorum \\n timestampS)
"""
from __future__ import annotations

import json
import logging
from typing import Any

from Crypto.Hash import keccak

from claim_errors import InsufficientWitnessPool, MalformedContext
from claim_types import BeaconState, ClaimInfo, CompleteClaimData, WitnessData
from jcs import canonicalize

logger = logging.getLogger(__name__)

DIGEST_SIZE = 32
WORD_SIZE = 4


def keccak256(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def keccak256_hex(data: bytes) -> str:
    """Lowercase 0x-prefixed keccak-256 of *data*."""
    return "0x" + keccak256(data).hex()


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def canonical_context(context: str) -> str:
    """Re-serialize a JSON context canonically; empty stays empty."""
    if not context:
        return ""
    try:
        parsed = json.loads(context, parse_constant=_reject_constant)
    except (TypeError, ValueError) as e:
        raise MalformedContext("unable to parse non-empty context. Must be JSON") from e
    return canonicalize(parsed)


def get_identifier_from_claim_info(info: ClaimInfo) -> str:
    """Derive the content-addressed identifier of a claim."""
    line = f"{info.provider}\n{info.parameters}\n{canonical_context(info.context)}"
    return keccak256_hex(line.encode("utf-8")).lower()


def create_sign_data_for_claim(data: CompleteClaimData) -> str:
    """Build the exact text witnesses sign for a claim."""
    if data.identifier is not None:
        identifier = data.identifier
    else:
        identifier = get_identifier_from_claim_info(data.info)
    lines = [
        identifier,
        data.owner.lower(),
        str(data.timestamp_s),
        str(data.epoch),
    ]
    return "\n".join(lines)


def selection_seed(state: BeaconState, identifier: str, timestamp_s: int) -> bytes:
    complete_input = "\n".join([
        identifier,
        str(state.epoch),
        str(state.witnesses_required_for_claim),
        str(timestamp_s),
    ])
    return keccak256(complete_input.encode("utf-8"))


def fetch_witness_list_for_claim(
    state: BeaconState,
    identifier: str,
    timestamp_s: int,
) -> list[WitnessData]:
    """Deterministically pick ``witnesses_required_for_claim`` witnesses.

    The pool is copied into a fixed array; each draw reads the next uint32
    word of the seed, takes it modulo the live length, then moves the last
    live element into the chosen slot and shrinks the live length by one.
    Offsets wrap around the 32-byte digest.
    """
    required = state.witnesses_required_for_claim
    if required < 0:
        raise InsufficientWitnessPool(f"invalid quorum size {required}")

    digest = selection_seed(state, identifier, timestamp_s)
    pool = list(state.witnesses)
    live = len(pool)
    selected: list[WitnessData] = []
    offset = 0

    for _ in range(required):
        if live == 0:
            raise InsufficientWitnessPool(
                f"epoch {state.epoch} requires {required} witnesses "
                f"but only {len(state.witnesses)} are available"
            )
        word = int.from_bytes(digest[offset:offset + WORD_SIZE], "big")
        index = word % live
        selected.append(pool[index])
        pool[index] = pool[live - 1]
        live -= 1
        offset = (offset + WORD_SIZE) % DIGEST_SIZE

    logger.debug(
        "selected %d of %d witnesses for %s in epoch %d",
        len(selected), len(state.witnesses), identifier, state.epoch,
    )
    return selected
