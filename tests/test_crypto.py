"""Tests for hashing primitives and placeholder proof values."""

import base64
import hashlib
from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from certifarm.crypto import (
    canonical_json,
    inspection_signature_hash,
    isoformat_z,
    parse_iso,
    placeholder_proof_value,
    sha256_hex,
)


class TestSha256:
    def test_known_vector(self):
        assert sha256_hex("abc") == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_str_and_bytes_agree(self):
        assert sha256_hex("Basmati") == sha256_hex(b"Basmati")


class TestCanonicalJson:
    def test_key_order_irrelevant(self):
        assert canonical_json({"b": 1, "a": 2}) == canonical_json({"a": 2, "b": 1})

    def test_no_whitespace(self):
        assert canonical_json({"a": [1, 2]}) == b'{"a":[1,2]}'

    def test_non_ascii_kept(self):
        assert canonical_json({"n": "चावल"}) == '{"n":"चावल"}'.encode("utf-8")


class TestTimestamps:
    def test_isoformat_z_millis(self):
        dt = datetime(2026, 10, 17, 9, 30, 5, 123456, tzinfo=timezone.utc)
        assert isoformat_z(dt) == "2026-10-17T09:30:05.123Z"

    def test_naive_treated_as_utc(self):
        assert isoformat_z(datetime(2026, 1, 2)) == "2026-01-02T00:00:00.000Z"

    def test_offset_converted_to_utc(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        dt = datetime(2026, 1, 2, 5, 30, tzinfo=ist)
        assert isoformat_z(dt) == "2026-01-02T00:00:00.000Z"

    def test_parse_z_suffix(self):
        dt = parse_iso("2026-10-17T00:00:00.000Z")
        assert dt == datetime(2026, 10, 17, tzinfo=timezone.utc)

    @given(st.datetimes(
        min_value=datetime(2000, 1, 1), max_value=datetime(2100, 1, 1),
        timezones=st.just(timezone.utc),
    ))
    @settings(max_examples=50)
    def test_round_trip_to_millisecond(self, dt):
        back = parse_iso(isoformat_z(dt))
        assert back == dt.replace(microsecond=dt.microsecond // 1000 * 1000)


class TestPlaceholderProof:
    def test_formula(self):
        cid = "urn:uuid:0b7c6f1e-1d2a-4c39-9f3e-5a8c1d2e3f40"
        issued = "2026-10-17T00:00:00.000Z"
        digest = hashlib.sha256(f"{cid}:CF-2610-ABC123:{issued}".encode()).hexdigest()
        expected = base64.b64encode(digest.encode()).decode()
        assert placeholder_proof_value(cid, "CF-2610-ABC123", issued) == expected

    def test_decodes_to_hex_digest(self):
        value = placeholder_proof_value("urn:uuid:x", "CF-2610-ABC123", "t")
        decoded = base64.b64decode(value).decode()
        assert len(decoded) == 64
        int(decoded, 16)

    @given(st.text(min_size=1), st.text(min_size=1))
    @settings(max_examples=50)
    def test_depends_on_batch(self, a, b):
        if a == b:
            return
        issued = "2026-10-17T00:00:00.000Z"
        assert placeholder_proof_value("urn:uuid:x", a, issued) != placeholder_proof_value(
            "urn:uuid:x", b, issued
        )


class TestInspectionSignature:
    def test_deterministic(self):
        args = ("insp-1", "CF-2610-ABC123", "pass", "2026-10-17T00:00:00.000Z")
        assert inspection_signature_hash(*args) == inspection_signature_hash(*args)

    def test_result_is_covered(self):
        ts = "2026-10-17T00:00:00.000Z"
        assert inspection_signature_hash("i", "b", "pass", ts) != inspection_signature_hash(
            "i", "b", "fail", ts
        )
