import hashlib
import hmac
import json

import pytest
from dispatcher.core.exceptions import SignatureInvalidError, SignatureMissingError
from dispatcher.services import signature

SECRET = "sk_test_secret"


def _expected(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def test_compute_signature_is_hmac_sha512_hex():
    body = b'{"event":"charge.success","data":{"reference":"REF-1"}}'
    sig = signature.compute_signature(body, SECRET)
    assert sig == _expected(body)
    assert len(sig) == 128
    assert sig == sig.lower()


def test_valid_signature_passes():
    body = b'{"event":"charge.success"}'
    signature.verify(body, _expected(body), SECRET)
    assert signature.is_valid(body, _expected(body), SECRET)


@pytest.mark.parametrize(
    "mangle",
    [str.upper, lambda sig: f" {sig}", lambda sig: f"{sig}\n"],
    ids=["uppercase", "leading-space", "trailing-newline"],
)
def test_header_must_match_byte_for_byte(mangle):
    body = b'{"event":"charge.success"}'
    with pytest.raises(SignatureInvalidError):
        signature.verify(body, mangle(_expected(body)), SECRET)
    assert signature.is_valid(body, mangle(_expected(body)), SECRET) is False


@pytest.mark.parametrize("header", [None, "", "   "])
def test_missing_signature(header):
    with pytest.raises(SignatureMissingError, match="Missing signature"):
        signature.verify(b"{}", header, SECRET)
    assert signature.is_valid(b"{}", header, SECRET) is False


def test_wrong_secret_is_invalid():
    body = b'{"event":"charge.success"}'
    with pytest.raises(SignatureInvalidError, match="Invalid signature"):
        signature.verify(body, _expected(body, "other"), SECRET)


def test_signature_covers_exact_bytes():
    payload = {"event": "charge.success", "data": {"reference": "REF-1"}}
    compact = json.dumps(payload, separators=(",", ":")).encode()
    spaced = json.dumps(payload).encode()
    sig = _expected(compact)

    assert signature.is_valid(compact, sig, SECRET)
    # Same JSON document, different bytes
    assert not signature.is_valid(spaced, sig, SECRET)


def test_non_ascii_header_is_invalid_not_an_error():
    assert signature.is_valid(b"{}", "sigé", SECRET) is False
