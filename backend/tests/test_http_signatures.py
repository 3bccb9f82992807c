"""Tests for HTTP message signing and key loading."""

import base64
import hashlib

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from op_gateway.exceptions import ConfigurationError
from op_gateway.services.http_signatures import (
    build_signature_base,
    content_digest,
    load_private_key,
    sign_request,
)


def _pem(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


class TestContentDigest:
    def test_sha512(self):
        expected = base64.b64encode(hashlib.sha512(b'{"a": 1}').digest()).decode()
        assert content_digest(b'{"a": 1}') == f"sha-512=:{expected}:"


class TestSignRequest:
    def test_post_with_body(self):
        key = Ed25519PrivateKey.generate()
        request = httpx.Request(
            "POST",
            "https://rs.example/quotes",
            content=b'{"walletAddress": "https://w"}',
            headers={"Content-Type": "application/json", "Authorization": "GNAP tok"},
        )

        sign_request(request, key, "key-1", created=1700000000)

        signature_input = request.headers["Signature-Input"]
        assert signature_input == (
            'sig1=("@method" "@target-uri" "authorization" "content-digest" "content-length" "content-type")'
            ';created=1700000000;keyid="key-1";alg="ed25519"'
        )
        assert request.headers["Content-Digest"] == content_digest(request.content)

        params = signature_input[len("sig1="):]
        base = build_signature_base(
            request,
            ["@method", "@target-uri", "authorization", "content-digest", "content-length", "content-type"],
            params,
        )
        assert base.splitlines()[0] == '"@method": POST'
        assert base.splitlines()[1] == '"@target-uri": https://rs.example/quotes'

        signature = base64.b64decode(request.headers["Signature"][len("sig1=:"):-1])
        key.public_key().verify(signature, base.encode("utf-8"))

    def test_get_without_body(self):
        request = httpx.Request("GET", "https://rs.example/outgoing-payments/1")

        sign_request(request, Ed25519PrivateKey.generate(), "key-1", created=1)

        assert "Content-Digest" not in request.headers
        assert request.headers["Signature-Input"].startswith('sig1=("@method" "@target-uri");created=1;')


class TestLoadPrivateKey:
    def test_loads_ed25519(self, tmp_path):
        path = tmp_path / "private.key"
        path.write_bytes(_pem(Ed25519PrivateKey.generate()))

        assert isinstance(load_private_key(str(path)), Ed25519PrivateKey)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_private_key(str(tmp_path / "nope.key"))

    def test_not_a_key(self, tmp_path):
        path = tmp_path / "private.key"
        path.write_text("not a key")

        with pytest.raises(ConfigurationError):
            load_private_key(str(path))

    def test_wrong_algorithm(self, tmp_path):
        path = tmp_path / "private.key"
        path.write_bytes(_pem(rsa.generate_private_key(public_exponent=65537, key_size=2048)))

        with pytest.raises(ConfigurationError) as exc_info:
            load_private_key(str(path))

        assert "RSA" in exc_info.value.details["key_type"]
