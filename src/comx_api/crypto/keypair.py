"""Ed25519 signing keys used to authenticate module calls."""

import hashlib
import logging
from pathlib import Path
from typing import Protocol

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)
from mnemonic import Mnemonic

logger = logging.getLogger(__name__)

# Ed25519: private 32 bytes, public 32 bytes, signature 64 bytes
PRIVATE_KEY_LENGTH = 32
PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64

# SS58 address format: prefix byte, public key, first two bytes of
# blake2b-512(b"SS58PRE" + prefix + public key)
SS58_PREFIX = 42
SS58_CHECKSUM_CONTEXT = b"SS58PRE"
SS58_CHECKSUM_LENGTH = 2
MAX_DERIVATION_INDEX = 2**32 - 1


class Signer(Protocol):
    """
    Anything that can sign request bodies.

    Attributes
    ----------
    scheme : str
        Signature scheme name sent in the ``X-Crypto`` header
    public_key : bytes
        Raw public key bytes
    public_key_hex : str
        Hex-encoded public key sent in the ``X-Key`` header

    """

    scheme: str

    @property
    def public_key(self) -> bytes: ...

    @property
    def public_key_hex(self) -> str: ...

    def sign(self, message: bytes) -> bytes: ...


def _normalize_hex(value: str, expected_len: int) -> bytes:
    val = value.strip().lower()
    if val.startswith("0x"):
        val = val[2:]
    if len(val) != expected_len * 2:
        msg = f"invalid hex length, expected {expected_len * 2} hex chars"
        raise ValueError(msg)
    return bytes.fromhex(val)


class KeyPair:
    """
    Ed25519 key pair.

    Parameters
    ----------
    private_key : ed25519.Ed25519PrivateKey
        Underlying signing key

    """

    scheme = "ed25519"

    def __init__(self, private_key: ed25519.Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_key = private_key.public_key()

    @classmethod
    def generate(cls) -> "KeyPair":
        """Create a key pair from fresh random bytes."""
        return cls(ed25519.Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "KeyPair":
        """
        Create a deterministic key pair from a 32-byte seed.

        Raises
        ------
        ValueError
            If the seed is not exactly 32 bytes

        """
        if len(seed) != PRIVATE_KEY_LENGTH:
            msg = f"Ed25519 seed must be {PRIVATE_KEY_LENGTH} bytes"
            raise ValueError(msg)
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_private_key_hex(cls, value: str) -> "KeyPair":
        """Create a key pair from a hex-encoded private key (``0x`` prefix allowed)."""
        return cls.from_seed(_normalize_hex(value, PRIVATE_KEY_LENGTH))

    @classmethod
    def from_seed_phrase(cls, phrase: str, passphrase: str = "") -> "KeyPair":
        """
        Create a key pair from a BIP39 mnemonic.

        The first 32 bytes of the BIP39 seed become the Ed25519 seed.

        Parameters
        ----------
        phrase : str
            English BIP39 mnemonic
        passphrase : str
            Optional BIP39 passphrase

        Raises
        ------
        ValueError
            If the phrase has unknown words or a bad checksum

        """
        normalized = " ".join(Mnemonic.normalize_string(phrase).split())
        if not Mnemonic("english").check(normalized):
            msg = "Invalid seed phrase"
            raise ValueError(msg)
        seed = Mnemonic.to_seed(normalized, passphrase=passphrase)
        return cls.from_seed(seed[:PRIVATE_KEY_LENGTH])

    @property
    def private_key_hex(self) -> str:
        raw = self._private_key.private_bytes(
            encoding=Encoding.Raw,
            format=PrivateFormat.Raw,
            encryption_algorithm=NoEncryption(),
        )
        return raw.hex()

    @property
    def public_key(self) -> bytes:
        return self._public_key.public_bytes(encoding=Encoding.Raw, format=PublicFormat.Raw)

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()

    @property
    def ss58_address(self) -> str:
        """SS58 address of the public key."""
        return ss58_encode(self.public_key)

    def derive_address(self, index: int) -> str:
        """
        Derive a deterministic child address.

        The child key bytes are the first 32 bytes of this key's signature
        over ``index`` as a little-endian u32.

        Parameters
        ----------
        index : int
            Derivation index, 0 to 2**32 - 1

        Returns
        -------
        str
            SS58 address of the derived key

        Raises
        ------
        ValueError
            If ``index`` is out of range

        """
        if not 0 <= index <= MAX_DERIVATION_INDEX:
            msg = f"Derivation index must be between 0 and {MAX_DERIVATION_INDEX}"
            raise ValueError(msg)
        signature = self.sign(index.to_bytes(4, "little"))
        return ss58_encode(signature[:PUBLIC_KEY_LENGTH])

    def sign(self, message: bytes) -> bytes:
        """Sign ``message`` and return the 64-byte signature."""
        return self._private_key.sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        """Check a signature against this key pair's public key."""
        return verify_signature(message, signature, self.public_key)

    def __repr__(self) -> str:
        return f"KeyPair(scheme={self.scheme!r}, public_key={self.public_key_hex!r})"


def ss58_encode(public_key: bytes, prefix: int = SS58_PREFIX) -> str:
    """
    Encode a 32-byte public key as an SS58 address.

    Raises
    ------
    ValueError
        If the key is not 32 bytes or the prefix does not fit in one byte

    """
    if len(public_key) != PUBLIC_KEY_LENGTH:
        msg = f"Public key must be {PUBLIC_KEY_LENGTH} bytes"
        raise ValueError(msg)
    if not 0 <= prefix < 64:
        msg = "Only single-byte SS58 prefixes (0-63) are supported"
        raise ValueError(msg)
    payload = bytes([prefix]) + public_key
    checksum = hashlib.blake2b(SS58_CHECKSUM_CONTEXT + payload).digest()[:SS58_CHECKSUM_LENGTH]
    return base58.b58encode(payload + checksum).decode("ascii")


def verify_signature(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify an Ed25519 signature.

    Parameters
    ----------
    message : bytes
        Signed message
    signature : bytes
        64-byte signature
    public_key : bytes
        32-byte raw public key

    Returns
    -------
    bool
        True if the signature is valid, False otherwise

    """
    if len(signature) != SIGNATURE_LENGTH or len(public_key) != PUBLIC_KEY_LENGTH:
        return False
    try:
        ed25519.Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except InvalidSignature:
        return False
    return True


def load_or_create_keypair(path: Path) -> KeyPair:
    """
    Load a key pair from a hex private key file, or create and store a new one.

    Parameters
    ----------
    path : Path
        Key file location

    Returns
    -------
    KeyPair
        Loaded or newly generated key pair

    """
    if path.exists():
        return KeyPair.from_private_key_hex(path.read_text(encoding="utf-8"))

    keypair = KeyPair.generate()
    save_keypair(keypair, path)
    return keypair


def save_keypair(keypair: KeyPair, path: Path) -> None:
    """Write the hex private key to ``path``, readable by the owner only."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(keypair.private_key_hex, encoding="utf-8")
    try:
        path.chmod(0o600)
    except OSError as e:
        logger.debug("Could not restrict permissions on %s: %s", path, e)
