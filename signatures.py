"""Personal-message signatures over claims (secp256k1 + keccak-256).

Witnesses sign the claim sign-data as an Ethereum personal message:

    hash = keccak256("\\x19Ethereum Signed Message:\\n" + len(msg) + msg)

and the signature is the 65-byte ``r || s || v`` form. Recovery returns the
lowercase 0x address of the signing key.

Dependencies: coincurve (libsecp256k1 bindings), pycryptodome (keccak).
"""
from __future__ import annotations

import logging
from typing import Union

from coincurve import PrivateKey, PublicKey

from claim_errors import InvalidSignature, ProofNotVerified
from claim_types import CompleteClaimData, SignedClaim
from jcs import canonicalize
from witness import create_sign_data_for_claim, keccak256

logger = logging.getLogger(__name__)

PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"
SIGNATURE_LENGTH = 65

BytesLike = Union[bytes, bytearray, str]


def to_bytes(value: BytesLike) -> bytes:
    """Decode 0x-prefixed hex (or pass bytes through)."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise InvalidSignature(f"expected hex string or bytes, got {type(value)!r}")
    text = value[2:] if value[:2].lower() == "0x" else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise InvalidSignature(f"invalid hex data: {value[:20]}...") from e


def _message_bytes(message: Union[str, bytes]) -> bytes:
    return message.encode("utf-8") if isinstance(message, str) else bytes(message)


def hash_personal_message(message: Union[str, bytes]) -> bytes:
    data = _message_bytes(message)
    return keccak256(PERSONAL_MESSAGE_PREFIX + str(len(data)).encode("ascii") + data)


def address_from_public_key(public_key: PublicKey) -> str:
    uncompressed = public_key.format(compressed=False)
    return "0x" + keccak256(uncompressed[1:])[-20:].hex()


def address_from_private_key(private_key: BytesLike) -> str:
    return address_from_public_key(PrivateKey(to_bytes(private_key)).public_key)


def recover_address(message: Union[str, bytes], signature: BytesLike) -> str:
    """Recover the lowercase address that signed *message*."""
    sig = to_bytes(signature)
    if len(sig) != SIGNATURE_LENGTH:
        raise InvalidSignature(f"signature must be {SIGNATURE_LENGTH} bytes, got {len(sig)}")

    v = sig[64]
    if v in (27, 28):
        recovery_id = v - 27
    elif v in (0, 1):
        recovery_id = v
    else:
        raise InvalidSignature(f"invalid recovery byte v={v}")
    if sig[32] & 0x80:
        raise InvalidSignature("non-canonical s")

    try:
        public_key = PublicKey.from_signature_and_message(
            sig[:64] + bytes([recovery_id]),
            hash_personal_message(message),
            hasher=None,
        )
    except ValueError as e:
        raise InvalidSignature(f"public key recovery failed: {e}") from e
    return address_from_public_key(public_key)


def sign_message(message: Union[str, bytes], private_key: BytesLike) -> str:
    """Sign *message* as a personal message. Returns 0x hex with v in {27, 28}."""
    key = PrivateKey(to_bytes(private_key))
    sig = key.sign_recoverable(hash_personal_message(message), hasher=None)
    return "0x" + (sig[:64] + bytes([sig[64] + 27])).hex()


def sign_claim(claim: CompleteClaimData, private_key: BytesLike) -> str:
    """Attestor-side signature over a CompleteClaimData."""
    return sign_message(create_sign_data_for_claim(claim), private_key)


def recover_signers_of_signed_claim(signed_claim: SignedClaim) -> list[str]:
    """Recover every signer address of a signed claim, lowercased."""
    data_str = create_sign_data_for_claim(signed_claim.claim)
    return [
        recover_address(data_str, signature).lower()
        for signature in signed_claim.signatures
    ]


def assert_valid_signed_claim(
    signed_claim: SignedClaim,
    expected_witness_addresses: list[str],
) -> list[str]:
    """Require every expected witness among the recovered signers.

    Extra signers are tolerated. Returns the recovered addresses.
    """
    signers = recover_signers_of_signed_claim(signed_claim)
    expected = list(dict.fromkeys(addr.lower() for addr in expected_witness_addresses))
    not_seen = set(expected)
    for signer in signers:
        not_seen.discard(signer)

    if not_seen:
        missing = ", ".join(addr for addr in expected if addr in not_seen)
        logger.warning("Claim validation failed. Missing signatures from: %s", missing)
        raise ProofNotVerified(f"Missing signatures from {missing}")
    return signers


def _app_message_hash(provider_id: str, timestamp: str) -> bytes:
    canonical = canonicalize({"providerId": provider_id, "timestamp": timestamp})
    return keccak256(canonical.encode("utf-8"))


def generate_app_signature(provider_id: str, timestamp: str, app_secret: BytesLike) -> str:
    """Sign a verification request on behalf of an application key."""
    return sign_message(_app_message_hash(provider_id, timestamp), app_secret)


def validate_app_signature(
    provider_id: str,
    signature: BytesLike,
    application_id: str,
    timestamp: str,
) -> None:
    """Check a request signature was produced by *application_id*.

    Raises InvalidSignature on any mismatch or malformed input.
    """
    logger.info(
        "Starting signature validation for providerId: %s, applicationId: %s, timestamp: %s",
        provider_id, application_id, timestamp,
    )
    app_id = recover_address(_app_message_hash(provider_id, timestamp), signature)
    if app_id != application_id.lower():
        logger.info(
            "Signature validation failed: derived appId %s != applicationId %s",
            app_id, application_id,
        )
        raise InvalidSignature(f"Signature does not match the application id: {app_id}")
    logger.info("Signature validated successfully for applicationId: %s", application_id)
