"""Canonical payload strings and RSA-SHA256 signatures for the payment gateway."""

from __future__ import annotations

import base64
import binascii
import logging
import textwrap
from typing import Iterable, Mapping

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

logger = logging.getLogger(__name__)

SIGNATURE_FIELD = "signature"


def _render(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def canonical_string(params: Mapping, exclude: Iterable[str] = (SIGNATURE_FIELD,)) -> str:
    """Build the signed content for *params*.

    Excluded keys and ``None`` values are dropped, the remaining keys are
    sorted lexicographically and joined as ``key=value`` pairs with ``&``.
    """
    skip = set(exclude)
    pairs = [
        f"{key}={_render(value)}"
        for key, value in sorted(params.items())
        if key not in skip and value is not None
    ]
    return "&".join(pairs)


def _pem(key: str, label: str) -> bytes:
    """Accept PEM text or a bare base64 DER body and return PEM bytes."""
    key = key.strip()
    if key.startswith("-----BEGIN"):
        return key.encode("ascii")
    body = "\n".join(textwrap.wrap("".join(key.split()), 64))
    return f"-----BEGIN {label}-----\n{body}\n-----END {label}-----\n".encode("ascii")


def load_public_key(key: str) -> rsa.RSAPublicKey:
    public_key = serialization.load_pem_public_key(_pem(key, "PUBLIC KEY"))
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise ValueError("Provider public key is not an RSA key")
    return public_key


def load_private_key(key: str) -> rsa.RSAPrivateKey:
    private_key = serialization.load_pem_private_key(_pem(key, "PRIVATE KEY"), password=None)
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise ValueError("Merchant private key is not an RSA key")
    return private_key


def sign(data: str, private_key: str) -> str:
    """Return the base64 RSA PKCS#1 v1.5 / SHA-256 signature of *data*."""
    key = load_private_key(private_key)
    signature = key.sign(data.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def sign_params(params: Mapping, private_key: str) -> str:
    return sign(canonical_string(params), private_key)


def verify_signature(data: str, signature_b64: str, public_key: str) -> bool:
    """Verify *signature_b64* over *data*; any failure yields ``False``."""
    if not signature_b64 or not public_key:
        return False
    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Signature is not valid base64")
        return False

    try:
        key = load_public_key(public_key)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        logger.error("Could not load provider public key: %s", exc)
        return False

    try:
        key.verify(signature, data.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature:
        return False
    return True


def verify_params(params: Mapping, public_key: str) -> bool:
    """Verify the ``signature`` field of *params* against its canonical string."""
    signature = params.get(SIGNATURE_FIELD)
    if not isinstance(signature, str):
        return False
    return verify_signature(canonical_string(params), signature, public_key)
