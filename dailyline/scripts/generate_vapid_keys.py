#!/usr/bin/env python3
"""
Generate a VAPID key pair for Web Push.

Usage:
    python -m dailyline.scripts.generate_vapid_keys

Prints VAPID_PUBLIC_KEY (uncompressed P-256 point, the browser's
applicationServerKey) and VAPID_PRIVATE_KEY (raw 32-byte scalar), both
urlsafe base64 without padding. Rotating the key invalidates every existing
subscription.
"""
import argparse
import base64
from typing import Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_vapid_keys() -> Tuple[str, str]:
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    private_raw = private_key.private_numbers().private_value.to_bytes(32, "big")
    return _b64url(public_raw), _b64url(private_raw)


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a VAPID key pair")
    parser.add_argument("--subject", default="mailto:support@dailyline.app", help="VAPID_SUBJECT to print alongside the keys")
    args = parser.parse_args()

    public_key, private_key = generate_vapid_keys()
    print("# Add to .env (keep VAPID_PRIVATE_KEY secret)")
    print(f"VAPID_PUBLIC_KEY={public_key}")
    print(f"VAPID_PRIVATE_KEY={private_key}")
    print(f"VAPID_SUBJECT={args.subject}")


if __name__ == "__main__":
    main()
