"""Tests for the PII encryption boundary."""

import pytest

from domain.value_objects import NumberValue, StringValue, StructuredValue, wrap_value
from security.encryption import (
    DataEncryptor,
    DecryptionError,
    PassthroughTransformer,
    PiiValueTransformer,
    build_value_transformer,
    is_encrypted_payload,
    looks_like_pii,
)

TEST_KEY = "unit-test-master-key-0123456789abcdef"


class TestLooksLikePii:
    """Tests for PII shape detection."""

    @pytest.mark.parametrize("text", ["123-45-6789", "123456789", "12-3456789", " 12-3456789 "])
    def test_ssn_and_ein_shapes(self, text):
        assert looks_like_pii(text)

    @pytest.mark.parametrize("text", ["", "single", "12-345", "1234-56-789", None, 123456789])
    def test_other_values(self, text):
        assert not looks_like_pii(text)


class TestDataEncryptor:
    """Tests for DataEncryptor."""

    def setup_method(self):
        self.encryptor = DataEncryptor(TEST_KEY)

    def test_round_trip(self):
        token = self.encryptor.encrypt("123-45-6789")
        assert token != "123-45-6789"
        assert self.encryptor.decrypt(token) == "123-45-6789"

    def test_nonce_makes_ciphertexts_differ(self):
        assert self.encryptor.encrypt("x") != self.encryptor.encrypt("x")

    def test_wrong_key_fails(self):
        token = self.encryptor.encrypt("123-45-6789")
        with pytest.raises(DecryptionError):
            DataEncryptor("another-master-key-0123456789abcdef").decrypt(token)

    def test_garbage_fails(self):
        with pytest.raises(DecryptionError):
            self.encryptor.decrypt("not base64 at all!")


class TestPiiValueTransformer:
    """Tests for the field value boundary."""

    def setup_method(self):
        self.transformer = PiiValueTransformer(DataEncryptor(TEST_KEY))

    def test_ssn_string_becomes_opaque_structure(self):
        stored = self.transformer.transform(StringValue(value="123-45-6789"))
        assert isinstance(stored, StructuredValue)
        assert is_encrypted_payload(stored.value)
        assert stored.value["_encrypted"] is True
        assert "123-45-6789" not in str(stored.value)

    def test_reveal_restores_original(self):
        stored = self.transformer.transform(StringValue(value="12-3456789"))
        assert self.transformer.reveal(stored) == StringValue(value="12-3456789")

    def test_non_pii_passes_through(self):
        for value in (StringValue(value="single"), NumberValue(value=5), wrap_value(None)):
            assert self.transformer.transform(value) is value
            assert self.transformer.reveal(value) is value

    def test_structured_values_are_walked(self):
        original = wrap_value({"dependents": [{"name": "A", "ssn": "123-45-6789"}]})
        stored = self.transformer.transform(original)
        nested = stored.value["dependents"][0]
        assert nested["name"] == "A"
        assert is_encrypted_payload(nested["ssn"])
        assert self.transformer.reveal(stored) == original

    def test_already_encrypted_not_double_wrapped(self):
        stored = self.transformer.transform(StringValue(value="123-45-6789"))
        assert self.transformer.transform(stored) is stored

    def test_tampered_payload_raises(self):
        stored = self.transformer.transform(StringValue(value="123-45-6789"))
        tampered = StructuredValue(value={"_encrypted": True, "data": "AAAA"})
        assert stored != tampered
        with pytest.raises(DecryptionError):
            self.transformer.reveal(tampered)


class TestBuildValueTransformer:
    def test_disabled_policy(self):
        assert isinstance(build_value_transformer(False), PassthroughTransformer)

    def test_enabled_policy(self):
        assert isinstance(build_value_transformer(True, TEST_KEY), PiiValueTransformer)
