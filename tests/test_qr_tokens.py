"""Tests for QR handoff token generation, parsing and the advisory countdown."""

import json
from datetime import timedelta

import pytest

from keytrack.models.tokens import BatchReturnToken, RequestToken, ReturnToken
from keytrack.services import qr_tokens
from keytrack.utils.exceptions import InvalidRequest, MalformedToken


class TestGeneration:
    def test_request_token_shape(self):
        token = qr_tokens.generate_request_token("k1", "u1")

        payload = json.loads(token.to_qr_payload())

        assert payload["kind"] == "request"
        assert payload["keyId"] == "k1"
        assert payload["userId"] == "u1"
        assert payload["tokenId"].startswith("req-")
        assert "issuedAt" in payload

    def test_token_ids_are_unique(self):
        ids = {qr_tokens.generate_return_token("k1", "u1").token_id for _ in range(50)}

        assert len(ids) == 50

    def test_batch_token_normalizes_ids(self):
        token = qr_tokens.generate_batch_return_token(["k1", {"id": "k2"}, {"_id": "k3"}, "k1"], "u1")

        assert token.kind == "batch-return"
        assert token.key_ids == ["k1", "k2", "k3"]

    def test_missing_arguments(self):
        with pytest.raises(InvalidRequest):
            qr_tokens.generate_request_token("", "u1")
        with pytest.raises(InvalidRequest):
            qr_tokens.generate_return_token("k1", "")
        with pytest.raises(InvalidRequest):
            qr_tokens.generate_batch_return_token([], "u1")

    def test_batch_rejects_bad_ids(self):
        with pytest.raises(InvalidRequest):
            qr_tokens.generate_batch_return_token(["k1", 42], "u1")


class TestParsing:
    def test_parse_returns_typed_token(self):
        raw = qr_tokens.generate_batch_return_token(["k1", "k2"], "u1").to_qr_payload()

        token = qr_tokens.parse(raw)

        assert isinstance(token, BatchReturnToken)
        assert token.key_ids == ["k1", "k2"]

    def test_parse_accepts_decoded_objects(self):
        payload = json.loads(qr_tokens.generate_return_token("k1", "u1").to_qr_payload())

        assert isinstance(qr_tokens.parse(payload), ReturnToken)

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2, 3]",
        '{"kind": "teleport", "keyId": "k1"}',
        '{"kind": "request", "userId": "u1", "tokenId": "t", "issuedAt": "2024-01-01T00:00:00"}',
        '{"kind": "batch-return", "keyIds": [], "userId": "u1", "tokenId": "t", "issuedAt": "2024-01-01T00:00:00"}',
    ])
    def test_parse_rejects_malformed(self, raw):
        with pytest.raises(MalformedToken):
            qr_tokens.parse(raw)

    def test_validate_reports_without_raising(self):
        good = qr_tokens.validate(qr_tokens.generate_request_token("k1", "u1").to_qr_payload())
        bad = qr_tokens.validate('{"kind": "request"}')
        garbage = qr_tokens.validate("}{")

        assert good.valid and good.kind == "request" and good.errors == []
        assert not bad.valid and bad.kind == "request" and bad.errors
        assert not garbage.valid and garbage.kind is None

    def test_expect_rejects_other_kinds(self):
        token = qr_tokens.generate_return_token("k1", "u1")

        assert qr_tokens.expect(token, ReturnToken) is token
        with pytest.raises(MalformedToken):
            qr_tokens.expect(token, RequestToken)


class TestCountdown:
    def test_defaults_per_kind(self):
        single = qr_tokens.generate_request_token("k1", "u1")
        batch = qr_tokens.generate_batch_return_token(["k1"], "u1")

        assert qr_tokens.seconds_remaining(single, now=single.issued_at) == 60
        assert qr_tokens.seconds_remaining(batch, now=batch.issued_at) == 300

    def test_counts_down_and_expires(self):
        token = qr_tokens.generate_request_token("k1", "u1")

        assert qr_tokens.seconds_remaining(token, now=token.issued_at + timedelta(seconds=45)) == 15
        assert not qr_tokens.is_expired(token, now=token.issued_at + timedelta(seconds=59))
        assert qr_tokens.is_expired(token, now=token.issued_at + timedelta(seconds=60))
        assert qr_tokens.seconds_remaining(token, now=token.issued_at + timedelta(minutes=5)) == 0

    def test_custom_ttl(self):
        token = qr_tokens.generate_return_token("k1", "u1")

        assert qr_tokens.seconds_remaining(token, ttl=10, now=token.issued_at + timedelta(seconds=4)) == 6
