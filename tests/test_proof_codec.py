import struct

import pytest

from shielded_pool.crypto_core.errors import FieldElementOutOfRange, InvalidArgument
from shielded_pool.crypto_core.field import BN254_BASE_FIELD, SNARK_SCALAR_FIELD
from shielded_pool.crypto_core.proof_codec import (
    PROOF_BYTES,
    bytes_to_field,
    decode_verifier_payload,
    encode_g1_for_verifier,
    encode_g2_for_verifier,
    encode_proof,
    encode_public_signal,
    encode_verifier_payload,
    field_to_canonical_bytes,
    negate_g1_y,
)
from shielded_pool.schemas_api import Fp2, G1Point, G2Point, ProofArtifact


def be(x):
    return x.to_bytes(32, "big")


def _artifact(signals):
    return ProofArtifact(
        point_a=G1Point(x=11, y=12),
        point_b=G2Point(x=Fp2(real=21, imaginary=22), y=Fp2(real=23, imaginary=24)),
        point_c=G1Point(x=31, y=32),
        public_signals=signals,
    )


SNARKJS_PROOF = {
    "pi_a": ["11", "12", "1"],
    "pi_b": [["21", "22"], ["23", "24"], ["1", "0"]],
    "pi_c": ["31", "32", "1"],
    "protocol": "groth16",
    "curve": "bn128",
}


class TestG1:
    def test_layout_without_negation(self):
        out = encode_g1_for_verifier(G1Point(x=1, y=2), negate_y=False)
        assert len(out) == 64
        assert out == be(1) + be(2)

    def test_point_a_is_negated_in_base_field(self):
        out = encode_g1_for_verifier(G1Point(x=1, y=2), negate_y=True)
        assert out[:32] == be(1)
        assert out[32:] == be(BN254_BASE_FIELD - 2)

    @pytest.mark.parametrize("y", [0, 1, 2, 12345, BN254_BASE_FIELD - 1])
    def test_double_negation_is_identity(self, y):
        assert negate_g1_y(negate_g1_y(y)) == y

    def test_zero_y_stays_zero(self):
        assert negate_g1_y(0) == 0

    def test_coordinate_out_of_range(self):
        with pytest.raises(FieldElementOutOfRange):
            encode_g1_for_verifier(G1Point(x=BN254_BASE_FIELD, y=1), negate_y=False)


class TestG2:
    def test_imaginary_first_order(self):
        point = G2Point(x=Fp2(real=1, imaginary=2), y=Fp2(real=3, imaginary=4))
        out = encode_g2_for_verifier(point)
        assert len(out) == 128
        assert [out[i:i + 32] for i in range(0, 128, 32)] == [be(2), be(1), be(4), be(3)]


class TestScalars:
    def test_public_signal_is_big_endian(self):
        assert encode_public_signal(1) == b"\x00" * 31 + b"\x01"

    def test_canonical_bytes_are_little_endian(self):
        assert field_to_canonical_bytes(1) == b"\x01" + b"\x00" * 31

    def test_canonical_and_verifier_forms_differ(self):
        x = 0x0102
        assert field_to_canonical_bytes(x) != encode_public_signal(x)
        assert field_to_canonical_bytes(x) == encode_public_signal(x)[::-1]

    @pytest.mark.parametrize("x", [0, 1, 2 ** 64, SNARK_SCALAR_FIELD - 1])
    def test_canonical_roundtrip(self, x):
        assert bytes_to_field(field_to_canonical_bytes(x)) == x

    def test_largest_signal_accepted(self):
        assert encode_public_signal(SNARK_SCALAR_FIELD - 1) == be(SNARK_SCALAR_FIELD - 1)

    @pytest.mark.parametrize("x", [SNARK_SCALAR_FIELD, SNARK_SCALAR_FIELD + 5, -1])
    def test_out_of_field_signal(self, x):
        with pytest.raises(FieldElementOutOfRange):
            encode_public_signal(x)
        with pytest.raises(FieldElementOutOfRange):
            field_to_canonical_bytes(x)

    def test_bytes_to_field_wrong_length(self):
        with pytest.raises(InvalidArgument):
            bytes_to_field(b"\x01" * 31)


class TestPayload:
    def test_withdraw_payload_layout(self):
        signals = list(range(1, 9))
        art = _artifact(signals)
        data = encode_verifier_payload(art, expected_arity=8)

        assert len(data) == PROOF_BYTES + 4 + 8 * 32
        a, b, c = encode_proof(art)
        assert data[:64] == a
        assert data[64:192] == b
        assert data[192:256] == c
        assert data[256:260] == struct.pack("<I", 8) == b"\x08\x00\x00\x00"
        for i, s in enumerate(signals):
            off = 260 + i * 32
            assert data[off:off + 32] == be(s)

    def test_ragequit_payload_has_four_signals(self):
        data = encode_verifier_payload(_artifact([5, 6, 7, 8]), expected_arity=4)
        assert len(data) == 256 + 4 + 4 * 32

    def test_arity_mismatch(self):
        with pytest.raises(InvalidArgument):
            encode_verifier_payload(_artifact([1, 2, 3]), expected_arity=8)

    def test_signal_outside_field(self):
        with pytest.raises(FieldElementOutOfRange):
            encode_verifier_payload(_artifact([SNARK_SCALAR_FIELD]))

    def test_decode_exposes_named_signals(self):
        signals = [1000, 2000, 3, 4000, 2, 6000, 7000, 8000]
        payload = decode_verifier_payload(encode_verifier_payload(_artifact(signals)))
        assert payload.withdrawn_value == 1000
        assert payload.state_root == 2000
        assert payload.state_tree_depth == 3
        assert payload.asp_root == 4000
        assert payload.asp_tree_depth == 2
        assert payload.context == 6000
        assert payload.new_commitment_hash == 7000
        assert payload.existing_nullifier_hash == 8000
        assert payload.proof_a[32:] == be(BN254_BASE_FIELD - 12)

    @pytest.mark.parametrize("cut", [1, 32, 300])
    def test_decode_rejects_truncated(self, cut):
        data = encode_verifier_payload(_artifact(list(range(1, 9))))
        with pytest.raises(InvalidArgument):
            decode_verifier_payload(data[:-cut])


class TestSnarkjsImport:
    def test_from_snarkjs_maps_c0_c1(self):
        art = ProofArtifact.from_snarkjs(SNARKJS_PROOF, ["1", "2", "3", "4"])
        assert art.point_a == G1Point(x=11, y=12)
        assert art.point_b.x == Fp2(real=21, imaginary=22)
        assert art.point_b.y == Fp2(real=23, imaginary=24)
        assert art.public_signals == (1, 2, 3, 4)
        assert art == _artifact([1, 2, 3, 4])

    def test_named_signals(self):
        art = ProofArtifact.from_snarkjs(SNARKJS_PROOF, [str(i) for i in range(8)])
        named = art.named_signals()
        assert named["withdrawnValue"] == 0
        assert named["existingNullifierHash"] == 7

    def test_projective_point_rejected(self):
        bad = dict(SNARKJS_PROOF, pi_a=["11", "12", "5"])
        with pytest.raises(InvalidArgument):
            ProofArtifact.from_snarkjs(bad, [])

    def test_missing_point(self):
        bad = {k: v for k, v in SNARKJS_PROOF.items() if k != "pi_c"}
        with pytest.raises(InvalidArgument):
            ProofArtifact.from_snarkjs(bad, [])

    def test_signal_outside_scalar_field(self):
        with pytest.raises(FieldElementOutOfRange):
            ProofArtifact.from_snarkjs(SNARKJS_PROOF, [str(SNARK_SCALAR_FIELD)])

    def test_non_numeric_signal(self):
        with pytest.raises(InvalidArgument):
            ProofArtifact.from_snarkjs(SNARKJS_PROOF, ["1", "nan"])

    def test_coordinates_use_base_field(self):
        x = SNARK_SCALAR_FIELD + 1
        art = ProofArtifact.from_snarkjs(dict(SNARKJS_PROOF, pi_c=[str(x), "32", "1"]), ["0x2a"])
        assert art.point_c.x == x
        assert art.public_signals == (42,)
        with pytest.raises(FieldElementOutOfRange):
            ProofArtifact.from_snarkjs(dict(SNARKJS_PROOF, pi_c=[str(BN254_BASE_FIELD), "32", "1"]), [])
