"""Tests for personal-message signing and signer recovery."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
from claim_errors import InvalidSignature, ProofNotVerified
from claim_types import CompleteClaimData, SignedClaim
from signatures import (
    address_from_private_key,
    assert_valid_signed_claim,
    generate_app_signature,
    hash_personal_message,
    recover_address,
    recover_signers_of_signed_claim,
    sign_claim,
    sign_message,
    to_bytes,
    validate_app_signature,
)
from witness import keccak256

# --- Fixtures ---

KEYS = [i.to_bytes(32, "big") for i in range(1, 5)]
ADDRS = [address_from_private_key(k) for k in KEYS]

CLAIM = CompleteClaimData(
    owner="0x" + "ab" * 20,
    timestamp_s=1700000000,
    epoch=5,
    identifier="0x" + "11" * 32,
)


def signed(*keys):
    return SignedClaim(claim=CLAIM, signatures=tuple(to_bytes(sign_claim(CLAIM, k)) for k in keys))


def tweak(sig_hex, index, mask=0x01):
    raw = bytearray(to_bytes(sig_hex))
    raw[index] ^= mask
    return "0x" + raw.hex()


class TestAddresses:
    def test_known_addresses(self):
        assert ADDRS[0] == "0x7e5f4552091a69125d5dfcb7b8c2659029395bdf"
        assert ADDRS[1] == "0x2b5ad5c4795c026514f8317c7a215e218dccd6cf"

    def test_hex_private_key(self):
        assert address_from_private_key("0x" + KEYS[0].hex()) == ADDRS[0]


class TestPersonalMessage:
    def test_prefix_and_length(self):
        expected = keccak256(b"\x19Ethereum Signed Message:\n5hello")
        assert hash_personal_message("hello") == expected
        assert hash_personal_message(b"hello") == expected

    def test_length_counts_utf8_bytes(self):
        expected = keccak256(b"\x19Ethereum Signed Message:\n2" + "é".encode("utf-8"))
        assert hash_personal_message("é") == expected


class TestRecover:
    def test_round_trip(self):
        sig = sign_message("claim data", KEYS[2])
        assert recover_address("claim data", sig) == ADDRS[2]

    def test_signature_shape(self):
        sig = to_bytes(sign_message("x", KEYS[0]))
        assert len(sig) == 65
        assert sig[64] in (27, 28)

    def test_zero_one_recovery_byte(self):
        raw = bytearray(to_bytes(sign_message("x", KEYS[0])))
        raw[64] -= 27
        assert recover_address("x", bytes(raw)) == ADDRS[0]

    def test_other_message_recovers_other_address(self):
        sig = sign_message("x", KEYS[0])
        assert recover_address("y", sig) != ADDRS[0]

    def test_bad_length(self):
        with pytest.raises(InvalidSignature, match="65 bytes"):
            recover_address("x", "0x" + "00" * 64)

    def test_bad_hex(self):
        with pytest.raises(InvalidSignature):
            recover_address("x", "0xzz")

    def test_bad_recovery_byte(self):
        raw = bytearray(to_bytes(sign_message("x", KEYS[0])))
        raw[64] = 5
        with pytest.raises(InvalidSignature, match="recovery byte"):
            recover_address("x", bytes(raw))

    def test_high_s_rejected(self):
        sig = tweak(sign_message("x", KEYS[0]), 32, 0x80)
        with pytest.raises(InvalidSignature, match="non-canonical"):
            recover_address("x", sig)

    def test_zero_r_fails_recovery(self):
        sig = "0x" + "00" * 32 + "00" * 31 + "01" + "1b"
        with pytest.raises(InvalidSignature, match="recovery failed"):
            recover_address("x", sig)


class TestSignedClaim:
    def test_recovers_in_order(self):
        assert recover_signers_of_signed_claim(signed(KEYS[1], KEYS[0])) == [ADDRS[1], ADDRS[0]]

    def test_owner_case_does_not_matter(self):
        upper = CompleteClaimData(
            owner=CLAIM.owner.upper().replace("0X", "0x"),
            timestamp_s=CLAIM.timestamp_s,
            epoch=CLAIM.epoch,
            identifier=CLAIM.identifier,
        )
        sig = sign_claim(upper, KEYS[0])
        claim = SignedClaim(claim=CLAIM, signatures=(to_bytes(sig),))
        assert recover_signers_of_signed_claim(claim) == [ADDRS[0]]

    def test_exact_coverage(self):
        assert_valid_signed_claim(signed(KEYS[0], KEYS[1]), [ADDRS[0], ADDRS[1]])

    def test_extra_signer_tolerated(self):
        signers = assert_valid_signed_claim(signed(KEYS[0], KEYS[1], KEYS[3]), [ADDRS[0], ADDRS[1]])
        assert ADDRS[3] in signers

    def test_expected_addresses_compared_lowercase(self):
        assert_valid_signed_claim(signed(KEYS[0]), [ADDRS[0].upper().replace("0X", "0x")])

    def test_missing_signer(self):
        with pytest.raises(ProofNotVerified, match=f"Missing signatures from {ADDRS[1]}"):
            assert_valid_signed_claim(signed(KEYS[0], KEYS[2]), [ADDRS[0], ADDRS[1]])

    def test_missing_lists_every_address(self):
        with pytest.raises(ProofNotVerified) as excinfo:
            assert_valid_signed_claim(signed(KEYS[3]), [ADDRS[0], ADDRS[1]])
        assert str(excinfo.value) == f"Missing signatures from {ADDRS[0]}, {ADDRS[1]}"

    def test_duplicate_signature_does_not_count_twice(self):
        with pytest.raises(ProofNotVerified):
            assert_valid_signed_claim(signed(KEYS[0], KEYS[0]), [ADDRS[0], ADDRS[1]])


class TestAppSignature:
    def test_valid(self):
        sig = generate_app_signature("provider-1", "1700000000000", KEYS[0])
        validate_app_signature("provider-1", sig, ADDRS[0], "1700000000000")

    def test_checksummed_application_id(self):
        sig = generate_app_signature("provider-1", "1", KEYS[1])
        validate_app_signature("provider-1", sig, "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF", "1")

    def test_wrong_application(self):
        sig = generate_app_signature("provider-1", "1", KEYS[0])
        with pytest.raises(InvalidSignature, match="does not match"):
            validate_app_signature("provider-1", sig, ADDRS[1], "1")

    def test_wrong_timestamp(self):
        sig = generate_app_signature("provider-1", "1", KEYS[0])
        with pytest.raises(InvalidSignature):
            validate_app_signature("provider-1", sig, ADDRS[0], "2")
