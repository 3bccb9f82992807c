"""
HTTP Message Signatures for Open Payments Clients

Signs outgoing httpx requests with the wallet's Ed25519 key (RFC 9421).
Authorization and resource servers identify the gateway by these signatures,
so every request from an authenticated client passes through sign_request().

Covered components:
- @method, @target-uri (always)
- authorization, content-digest, content-length, content-type (when present)
"""
import base64
import hashlib
import time
from pathlib import Path
from typing import List, Optional

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ..exceptions import ConfigurationError


SIGNATURE_LABEL = "sig1"
OPTIONAL_COMPONENTS = ("authorization", "content-digest", "content-length", "content-type")


def load_private_key(path: str) -> Ed25519PrivateKey:
    """
    Load an Ed25519 private key from a PEM file.

    Raises:
        ConfigurationError: If the file is unreadable or not an Ed25519 PEM key
    """
    key_path = Path(path).expanduser()
    try:
        pem = key_path.read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Cannot read private key {key_path}: {e}", details={"path": str(key_path)})

    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ConfigurationError(f"Invalid private key {key_path}: {e}", details={"path": str(key_path)})

    if not isinstance(key, Ed25519PrivateKey):
        raise ConfigurationError(
            f"Private key {key_path} is not an Ed25519 key",
            details={"path": str(key_path), "key_type": type(key).__name__}
        )
    return key


def content_digest(body: bytes) -> str:
    """Content-Digest header value (sha-512, structured field byte sequence)."""
    digest = base64.b64encode(hashlib.sha512(body).digest()).decode("ascii")
    return f"sha-512=:{digest}:"


def _component_value(request: httpx.Request, component: str) -> str:
    if component == "@method":
        return request.method.upper()
    if component == "@target-uri":
        return str(request.url)
    return request.headers[component].strip()


def build_signature_base(
    request: httpx.Request,
    components: List[str],
    signature_params: str
) -> str:
    """Build the RFC 9421 signature base for the covered components."""
    lines = [f'"{component}": {_component_value(request, component)}' for component in components]
    lines.append(f'"@signature-params": {signature_params}')
    return "\n".join(lines)


def sign_request(
    request: httpx.Request,
    private_key: Ed25519PrivateKey,
    key_id: str,
    created: Optional[int] = None
) -> httpx.Request:
    """
    Add Content-Digest, Signature-Input and Signature headers to a request.

    The request must already carry its final body and headers.
    """
    body = request.content
    if body:
        request.headers["Content-Digest"] = content_digest(body)
        request.headers["Content-Length"] = str(len(body))

    components = ["@method", "@target-uri"]
    components.extend(c for c in OPTIONAL_COMPONENTS if c in request.headers)

    created = created if created is not None else int(time.time())
    covered = " ".join(f'"{c}"' for c in components)
    signature_params = f'({covered});created={created};keyid="{key_id}";alg="ed25519"'

    base = build_signature_base(request, components, signature_params)
    signature = base64.b64encode(private_key.sign(base.encode("utf-8"))).decode("ascii")

    request.headers["Signature-Input"] = f"{SIGNATURE_LABEL}={signature_params}"
    request.headers["Signature"] = f"{SIGNATURE_LABEL}=:{signature}:"
    return request
