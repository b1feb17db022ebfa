"""Detached JWS (RFC 7515 Appendix F, RFC 7797) signing and verification.

AA providers sign webhook bodies, and expect our request bodies signed, with
a compact JWS whose payload segment is empty (``header..signature``). With
``b64: false`` in the protected header the signing input is the ASCII header
segment, a dot, and the raw body bytes exactly as sent over the wire.

Only asymmetric algorithms are supported. ``none`` and HMAC algorithms are
never accepted, whatever the caller passes as the allow-list.
"""

import base64
import json
import re
import time
from dataclasses import dataclass

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature, encode_dss_signature

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")

# Header parameters we understand when listed in "crit"
_UNDERSTOOD_CRIT = frozenset({"b64"})


class SignatureInvalidError(Exception):
    """Structural or cryptographic JWS verification failure."""

    pass


@dataclass(frozen=True)
class _AlgorithmSpec:
    family: str  # "RSA", "RSA-PSS" or "EC"
    hash_cls: type
    curve: str | None = None  # cryptography curve name for EC algorithms
    coord_size: int = 0  # bytes per r/s coordinate for EC algorithms


ACCEPTED_ALGORITHMS: dict[str, _AlgorithmSpec] = {
    "RS256": _AlgorithmSpec("RSA", hashes.SHA256),
    "RS384": _AlgorithmSpec("RSA", hashes.SHA384),
    "RS512": _AlgorithmSpec("RSA", hashes.SHA512),
    "PS256": _AlgorithmSpec("RSA-PSS", hashes.SHA256),
    "ES256": _AlgorithmSpec("EC", hashes.SHA256, "secp256r1", 32),
    "ES384": _AlgorithmSpec("EC", hashes.SHA384, "secp384r1", 48),
    "ES512": _AlgorithmSpec("EC", hashes.SHA512, "secp521r1", 66),
}

_JWK_CURVES = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
}


def b64url_encode(data: bytes) -> str:
    """Base64url-encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Strictly decode an unpadded base64url segment.

    Raises:
        SignatureInvalidError: If the segment has characters outside the
            base64url alphabet or an impossible length.
    """
    if not _B64URL_RE.match(segment) or len(segment) % 4 == 1:
        raise SignatureInvalidError("Segment is not valid base64url")
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _b64url_int(value: str) -> int:
    return int.from_bytes(b64url_decode(value), "big")


def load_public_key(material: str | bytes):
    """Load a verification key from PEM (SPKI or certificate) or JWK JSON.

    Raises:
        ValueError: If the material is not a usable RSA or EC public key.
    """
    if isinstance(material, bytes):
        material = material.decode("utf-8")
    text = material.strip()
    if not text:
        raise ValueError("Public key material is empty")

    if text.startswith("{"):
        try:
            jwk = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError("Public key JWK is not valid JSON") from e
        return _load_jwk(jwk)

    data = text.encode("ascii")
    try:
        if "BEGIN CERTIFICATE" in text:
            key = x509.load_pem_x509_certificate(data).public_key()
        else:
            key = serialization.load_pem_public_key(data)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Could not load PEM public key: {e}") from e

    if not isinstance(key, (rsa.RSAPublicKey, ec.EllipticCurvePublicKey)):
        raise ValueError("Public key must be RSA or EC")
    return key


def _load_jwk(jwk: dict):
    kty = jwk.get("kty")
    try:
        if kty == "RSA":
            return rsa.RSAPublicNumbers(_b64url_int(jwk["e"]), _b64url_int(jwk["n"])).public_key()
        if kty == "EC":
            curve_cls = _JWK_CURVES.get(jwk.get("crv"))
            if curve_cls is None:
                raise ValueError(f"Unsupported JWK curve: {jwk.get('crv')}")
            return ec.EllipticCurvePublicNumbers(
                _b64url_int(jwk["x"]), _b64url_int(jwk["y"]), curve_cls()
            ).public_key()
    except (KeyError, SignatureInvalidError) as e:
        raise ValueError("JWK is missing or has malformed key parameters") from e
    raise ValueError(f"Unsupported JWK key type: {kty}")


def load_private_key(pem: str | bytes):
    """Load a PKCS#8 / traditional PEM private key for outbound signing."""
    if isinstance(pem, str):
        pem = pem.encode("ascii")
    key = serialization.load_pem_private_key(pem, password=None)
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise ValueError("Private key must be RSA or EC")
    return key


def _decode_header(header_b64: str) -> dict:
    try:
        header = json.loads(b64url_decode(header_b64))
    except (ValueError, UnicodeDecodeError) as e:
        raise SignatureInvalidError("Protected header is not valid JSON") from e
    if not isinstance(header, dict):
        raise SignatureInvalidError("Protected header must be a JSON object")
    return header


def _check_header(header: dict, allowed_algorithms, now: float) -> _AlgorithmSpec:
    alg = header.get("alg")
    if not isinstance(alg, str) or alg not in ACCEPTED_ALGORITHMS:
        raise SignatureInvalidError(f"Unsupported algorithm: {alg!r}")
    if alg not in allowed_algorithms:
        raise SignatureInvalidError(f"Algorithm {alg} is not allowed")

    crit = header.get("crit")
    if crit is not None:
        if not isinstance(crit, list) or not crit:
            raise SignatureInvalidError("'crit' must be a non-empty list")
        for name in crit:
            if name not in _UNDERSTOOD_CRIT:
                raise SignatureInvalidError(f"Unsupported critical header: {name!r}")
            if name not in header:
                raise SignatureInvalidError(f"Critical header {name!r} is missing")

    if "b64" in header and not isinstance(header["b64"], bool):
        raise SignatureInvalidError("'b64' must be a boolean")

    if "exp" in header:
        exp = header["exp"]
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise SignatureInvalidError("'exp' must be numeric")
        if exp <= now:
            raise SignatureInvalidError("Signature has expired")

    return ACCEPTED_ALGORITHMS[alg]


def _signing_input(header_b64: str, header: dict, payload: bytes) -> bytes:
    if header.get("b64") is False:
        return header_b64.encode("ascii") + b"." + payload
    return f"{header_b64}.{b64url_encode(payload)}".encode("ascii")


def _verify(spec: _AlgorithmSpec, public_key, signature: bytes, signing_input: bytes) -> None:
    if spec.family in ("RSA", "RSA-PSS"):
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise SignatureInvalidError("Key type does not match RSA algorithm")
        if spec.family == "RSA":
            pad = padding.PKCS1v15()
        else:
            pad = padding.PSS(mgf=padding.MGF1(spec.hash_cls()), salt_length=padding.PSS.DIGEST_LENGTH)
        public_key.verify(signature, signing_input, pad, spec.hash_cls())
        return

    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise SignatureInvalidError("Key type does not match EC algorithm")
    if public_key.curve.name != spec.curve:
        raise SignatureInvalidError("EC key curve does not match algorithm")
    if len(signature) != 2 * spec.coord_size:
        raise SignatureInvalidError("EC signature has the wrong length")
    r = int.from_bytes(signature[: spec.coord_size], "big")
    s = int.from_bytes(signature[spec.coord_size :], "big")
    public_key.verify(encode_dss_signature(r, s), signing_input, ec.ECDSA(spec.hash_cls()))


def verify_detached_jws(
    signature: str,
    raw_body: bytes,
    public_key,
    allowed_algorithms=("RS256", "ES256"),
    now: float | None = None,
) -> dict:
    """Verify a detached compact JWS over the exact raw body bytes.

    Args:
        signature: The ``header..signature`` string from the request header.
        raw_body: The request body exactly as received, before JSON parsing.
        public_key: A ``cryptography`` RSA or EC public key.
        allowed_algorithms: Algorithms accepted for this verification.
        now: Override for the current epoch time (``exp`` checks).

    Returns:
        The decoded protected header.

    Raises:
        SignatureInvalidError: On any structural or cryptographic failure.
    """
    if not isinstance(signature, str) or not signature:
        raise SignatureInvalidError("Signature is missing")
    if not isinstance(raw_body, (bytes, bytearray)):
        raise SignatureInvalidError("Raw body must be bytes")

    parts = signature.strip().split(".")
    if len(parts) != 3:
        raise SignatureInvalidError(f"Expected 3 segments, got {len(parts)}")
    header_b64, payload_b64, sig_b64 = parts
    if payload_b64 != "":
        raise SignatureInvalidError("Payload segment must be empty for a detached JWS")
    if not header_b64 or not sig_b64:
        raise SignatureInvalidError("Header and signature segments are required")

    header = _decode_header(header_b64)
    spec = _check_header(header, allowed_algorithms, time.time() if now is None else now)
    sig_bytes = b64url_decode(sig_b64)

    try:
        _verify(spec, public_key, sig_bytes, _signing_input(header_b64, header, bytes(raw_body)))
    except InvalidSignature as e:
        raise SignatureInvalidError("Signature does not match body") from e
    return header


def sign_detached_jws(
    payload: bytes,
    private_key,
    alg: str = "RS256",
    kid: str | None = None,
    extra_headers: dict | None = None,
) -> str:
    """Produce a ``header..signature`` detached JWS with ``b64: false``."""
    spec = ACCEPTED_ALGORITHMS.get(alg)
    if spec is None:
        raise ValueError(f"Unsupported algorithm: {alg}")

    header = {"alg": alg, "b64": False, "crit": ["b64"]}
    if kid:
        header["kid"] = kid
    if extra_headers:
        header.update(extra_headers)
    header_b64 = b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    signing_input = _signing_input(header_b64, header, payload)

    if spec.family == "EC":
        der = private_key.sign(signing_input, ec.ECDSA(spec.hash_cls()))
        r, s = decode_dss_signature(der)
        sig = r.to_bytes(spec.coord_size, "big") + s.to_bytes(spec.coord_size, "big")
    elif spec.family == "RSA":
        sig = private_key.sign(signing_input, padding.PKCS1v15(), spec.hash_cls())
    else:
        pad = padding.PSS(mgf=padding.MGF1(spec.hash_cls()), salt_length=padding.PSS.DIGEST_LENGTH)
        sig = private_key.sign(signing_input, pad, spec.hash_cls())

    return f"{header_b64}..{b64url_encode(sig)}"
