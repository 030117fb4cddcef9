"""Request signing keys."""

from comx_api.crypto.keypair import (
    KeyPair,
    Signer,
    load_or_create_keypair,
    save_keypair,
    ss58_encode,
    verify_signature,
)

__all__ = [
    "KeyPair",
    "Signer",
    "load_or_create_keypair",
    "save_keypair",
    "ss58_encode",
    "verify_signature",
]
