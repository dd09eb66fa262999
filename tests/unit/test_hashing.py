"""
Unit tests for the assignment hash

Assignments must be stable across releases, so these tests pin the digest
against published FNV-1a reference values and check the salt derivation.
"""

import pytest

from mixpanel_flags.hashing import (
    FNV_OFFSET_BASIS_64,
    ROLLOUT_SALT,
    VARIANT_SALT,
    fnv1a_64,
    normalized_hash,
    rollout_salt,
    subject_key_of,
    variant_salt
)


class TestFnv1a:
    """Test the raw 64-bit digest"""

    def test_empty_input_is_offset_basis(self):
        """Test hashing no bytes returns the offset basis"""
        assert fnv1a_64(b"") == FNV_OFFSET_BASIS_64

    def test_reference_vectors(self):
        """Test against the FNV-1a 64-bit reference vectors"""
        assert fnv1a_64(b"a") == 0xaf63dc4c8601ec8c
        assert fnv1a_64(b"foobar") == 0x85944171f73967e8

    def test_result_fits_in_64_bits(self):
        """Test digest never exceeds 64 bits"""
        for text in ("x" * 1000, "user-123", "üñîçødé"):
            assert 0 <= fnv1a_64(text.encode('utf-8')) < 2 ** 64


class TestNormalizedHash:
    """Test bucketed hash used for rollouts and variants"""

    def test_is_deterministic(self):
        """Test repeated calls give identical output"""
        for i in range(50):
            key = f"user{i}flag"
            assert normalized_hash(key, "rollout") == normalized_hash(key, "rollout")

    def test_range_and_granularity(self):
        """Test values fall on one of 100 buckets in [0, 1)"""
        for i in range(500):
            value = normalized_hash(f"subject-{i}", "salt")
            assert 0.0 <= value < 1.0
            assert round(value * 100) == pytest.approx(value * 100)

    def test_uses_plain_concatenation(self):
        """Test key and salt are simply concatenated"""
        assert normalized_hash("ab", "c") == normalized_hash("a", "bc")
        assert normalized_hash("abc", "") == (fnv1a_64(b"abc") % 100) / 100.0

    def test_salt_changes_assignment(self):
        """Test different salts spread subjects differently"""
        different = sum(
            1 for i in range(200)
            if normalized_hash(f"user{i}", "rollout") != normalized_hash(f"user{i}", "variant")
        )
        assert different > 100

    def test_none_arguments_raise(self):
        """Test None key or salt is rejected"""
        with pytest.raises(ValueError):
            normalized_hash(None, "salt")
        with pytest.raises(ValueError):
            normalized_hash("key", None)

    def test_non_ascii_keys_hash_utf8_bytes(self):
        """Test keys are hashed as UTF-8"""
        key = "utilisateur-é"
        assert normalized_hash(key, "rollout") == (fnv1a_64((key + "rollout").encode('utf-8')) % 100) / 100.0


class TestSaltDerivation:
    """Test the salted and unsalted hashing domains"""

    def test_unsalted_rollout_uses_literal(self):
        """Test flags without hash salt hash every rollout with the same literal"""
        assert rollout_salt(None, 0) == ROLLOUT_SALT
        assert rollout_salt(None, 3) == "rollout"

    def test_salted_rollout_appends_index(self):
        """Test salted rollouts append the rollout index"""
        assert rollout_salt("abc", 0) == "abc0"
        assert rollout_salt("abc", 12) == "abc12"

    def test_variant_salt(self):
        """Test variant salt with and without flag salt"""
        assert variant_salt(None) == VARIANT_SALT
        assert variant_salt("abc") == "abcvariant"

    def test_empty_salt_is_unsalted(self):
        """Test an empty hash salt behaves like no salt"""
        assert rollout_salt("", 1) == "rollout"
        assert variant_salt("") == "variant"


class TestSubjectKey:
    """Test the string form of assignment keys"""

    def test_booleans_use_json_spelling(self):
        """Test booleans hash the same as in other SDKs"""
        assert subject_key_of(True) == 'true'
        assert subject_key_of(False) == 'false'

    def test_other_values_use_str(self):
        assert subject_key_of('user-1') == 'user-1'
        assert subject_key_of(42) == '42'
        assert subject_key_of(1.5) == '1.5'
