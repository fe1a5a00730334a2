"""
Tests for webhook signature helpers, JSON paths and entity mapping.
"""
import time

import pytest

from core.errors import ConfigurationError
from database.models import EntityMapping
from services.webhooks.entity_mapper import ExtractedEntity, map_payload, merge_extracted, resolve_entity
from services.webhooks.json_path import extract_path, extract_value, is_path
from services.webhooks.security import (
    hmac_sha256_base64,
    hmac_sha256_hex,
    is_timestamp_fresh,
    parse_timestamped_signature,
    secure_compare,
    verify_hmac_base64,
    verify_hmac_hex,
    verify_timestamped_hmac,
    verify_token,
)

SECRET = "whsec_test"
BODY = '{"id":"evt_1","type":"checkout.session.completed"}'


def stripe_header(body: str, timestamp: int, secret: str = SECRET) -> str:
    return f"t={timestamp},v1={hmac_sha256_hex(secret, f'{timestamp}.{body}')}"


class TestSecureCompare:

    def test_equal_and_unequal(self):
        assert secure_compare("abc", "abc")
        assert not secure_compare("abc", "abd")

    def test_length_mismatch(self):
        assert not secure_compare("abc", "abcd")
        assert not secure_compare("", "a")

    def test_none_is_empty(self):
        assert secure_compare(None, "")


class TestTimestampedSignatures:
    """Test t=...,v1=... signatures with replay protection"""

    def test_valid_signature(self):
        now = time.time()
        header = stripe_header(BODY, int(now))

        assert verify_timestamped_hmac(BODY, header, SECRET, 300, now=now)

    def test_tampered_body(self):
        now = time.time()
        header = stripe_header(BODY, int(now))

        assert not verify_timestamped_hmac(BODY + " ", header, SECRET, 300, now=now)

    def test_wrong_secret(self):
        now = time.time()
        header = stripe_header(BODY, int(now), secret="other")

        assert not verify_timestamped_hmac(BODY, header, SECRET, 300, now=now)

    def test_stale_timestamp_rejected(self):
        """Test a correctly signed but old delivery is rejected"""
        now = 1_700_000_000
        header = stripe_header(BODY, now - 301)

        assert not verify_timestamped_hmac(BODY, header, SECRET, 300, now=now)

    @pytest.mark.parametrize("header", [
        None,
        "",
        "garbage",
        "t=abc,v1=deadbeef",
        "v1=deadbeef",
        "t=1700000000",
    ])
    def test_malformed_headers(self, header):
        assert not verify_timestamped_hmac(BODY, header, SECRET, 300, now=1_700_000_000)

    def test_parse_keeps_first_value(self):
        parts = parse_timestamped_signature("t=1, v1=aa, v1=bb, v0=cc")

        assert parts == {"t": "1", "v1": "aa", "v0": "cc"}

    def test_freshness_window(self):
        now = 1_000_000
        assert is_timestamp_fresh(now, 300, now=now)
        assert is_timestamp_fresh(now - 299, 300, now=now)
        assert not is_timestamp_fresh(now - 300, 300, now=now)
        assert is_timestamp_fresh(now + 10, 300, now=now)
        assert not is_timestamp_fresh(now + 120, 300, now=now)


class TestBodyHmacs:

    def test_hex_with_and_without_prefix(self):
        signature = hmac_sha256_hex(SECRET, BODY)

        assert verify_hmac_hex(BODY, signature, SECRET)
        assert verify_hmac_hex(BODY, f"sha256={signature}", SECRET)
        assert verify_hmac_hex(BODY, signature.upper(), SECRET)
        assert not verify_hmac_hex(BODY, None, SECRET)
        assert not verify_hmac_hex(BODY, signature, "other")

    def test_base64_with_and_without_prefix(self):
        signature = hmac_sha256_base64(SECRET, BODY)

        assert verify_hmac_base64(BODY, signature, SECRET)
        assert verify_hmac_base64(BODY, f"sha256={signature}", SECRET)
        assert not verify_hmac_base64(BODY, "", SECRET)

    def test_token(self):
        assert verify_token("tok", "tok")
        assert not verify_token("tok2", "tok")
        assert not verify_token(None, "tok")


class TestJsonPath:
    """Test JSON path extraction"""

    PAYLOAD = {"user": {"name": "Ada", "tags": ["a", "b"]}, "items": [{"id": 1}, {"id": 2}]}

    @pytest.mark.parametrize("path,expected", [
        ("$.user.name", "Ada"),
        ("user.name", "Ada"),
        ("$.items[1].id", 2),
        ("items.0.id", 1),
        ("$.user.tags[0]", "a"),
        ("$.user.missing", None),
        ("$.items[5].id", None),
        ("$.user.name.first", None),
    ])
    def test_extract_path(self, path, expected):
        assert extract_path(self.PAYLOAD, path) == expected

    def test_root(self):
        assert extract_path(self.PAYLOAD, "$") is self.PAYLOAD

    def test_static_values(self):
        assert is_path("$.a")
        assert not is_path("lead")
        assert extract_value(self.PAYLOAD, "lead") == "lead"
        assert extract_value(self.PAYLOAD, "$.user.name") == "Ada"


class TestEntityMapping:
    """Test declarative mapping and merging with adapter results"""

    def test_map_payload(self):
        mapping = EntityMapping(
            name="$.contact.full_name",
            email="$.contact.email",
            entity_type="lead",
            metadata={"company": "$.contact.company", "channel": "ads", "missing": "$.nope"},
        )
        payload = {"contact": {"full_name": "Ada", "email": "ada@x.io", "company": "Analytical"}}

        mapped = map_payload(payload, mapping)

        assert mapped.name == "Ada"
        assert mapped.email == "ada@x.io"
        assert mapped.entity_type == "lead"
        assert mapped.metadata == {"company": "Analytical", "channel": "ads"}

    def test_adapter_wins_over_mapping(self):
        adapter = ExtractedEntity(name="From Adapter", entity_type="customer", metadata={"a": 1, "b": None})
        mapped = ExtractedEntity(name="From Mapping", email="m@x.io", entity_type="lead", metadata={"b": 2})

        merged = merge_extracted(adapter, mapped)

        assert merged.name == "From Adapter"
        assert merged.email == "m@x.io"
        assert merged.entity_type == "customer"
        assert merged.metadata == {"a": 1, "b": 2}

    def test_name_falls_back_to_email(self):
        record = resolve_entity(ExtractedEntity(email="a@b.com", entity_type="lead"), ExtractedEntity())

        assert record["name"] == "a@b.com"

    def test_missing_name_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            resolve_entity(ExtractedEntity(entity_type="lead"), ExtractedEntity())

    def test_missing_type_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            resolve_entity(ExtractedEntity(name="A"), ExtractedEntity())
