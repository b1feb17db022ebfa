#!/usr/bin/env python
"""Sign a webhook body the way an AA provider does, for local testing.

Prints the detached JWS to send as ``x-jws-signature``. With --generate-key
a fresh key pair is written first and the public half can be configured as
``AA_WEBHOOK_PUBLIC_KEY_FILE``.

Usage:
    python -m scripts.sign_webhook --generate-key dev_webhook_key.pem
    python -m scripts.sign_webhook --key dev_webhook_key.pem body.json
    python -m scripts.sign_webhook --key dev_webhook_key.pem --alg ES256 body.json
"""

import argparse
import sys
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from integrations.jws import ACCEPTED_ALGORITHMS, load_private_key, sign_detached_jws


def generate_key(path: Path, alg: str) -> None:
    """Write a private key to ``path`` and its public key next to it."""
    if ACCEPTED_ALGORITHMS[alg].family == "EC":
        curve = {"ES256": ec.SECP256R1, "ES384": ec.SECP384R1, "ES512": ec.SECP521R1}[alg]
        key = ec.generate_private_key(curve())
    else:
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    public_path = path.with_suffix(".pub.pem")
    public_path.write_bytes(
        key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    print(f"Private key: {path}")
    print(f"Public key:  {public_path}  (set AA_WEBHOOK_PUBLIC_KEY_FILE to this)")


def main():
    parser = argparse.ArgumentParser(description="Produce a detached JWS for a webhook body")
    parser.add_argument("body", nargs="?", type=Path, help="File holding the exact request body")
    parser.add_argument("--key", type=Path, help="PEM private key to sign with")
    parser.add_argument("--alg", default="RS256", choices=sorted(ACCEPTED_ALGORITHMS))
    parser.add_argument("--kid", help="Key id to put in the protected header")
    parser.add_argument("--generate-key", type=Path, metavar="PATH", help="Write a new key pair and exit")
    args = parser.parse_args()

    if args.generate_key:
        generate_key(args.generate_key, args.alg)
        return

    if not args.key or not args.body:
        parser.error("--key and body are required unless --generate-key is given")

    try:
        private_key = load_private_key(args.key.read_bytes())
        signature = sign_detached_jws(args.body.read_bytes(), private_key, alg=args.alg, kid=args.kid)
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(signature)


if __name__ == "__main__":
    main()
