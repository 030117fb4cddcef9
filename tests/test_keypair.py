"""Tests for Ed25519 key handling."""

import hashlib

import base58
import pytest

from comx_api.crypto import KeyPair, load_or_create_keypair, save_keypair, ss58_encode, verify_signature


def test_from_seed_is_deterministic(keypair):
    """Test from seed is deterministic."""
    again = KeyPair.from_seed(bytes(range(32)))

    assert again.public_key == keypair.public_key
    assert len(keypair.public_key) == 32
    assert len(keypair.public_key_hex) == 64


def test_seed_length_is_checked():
    """Test seed length is checked."""
    with pytest.raises(ValueError, match="32 bytes"):
        KeyPair.from_seed(b"short")


def test_private_key_hex_round_trip(keypair):
    """Test private key hex round trip."""
    restored = KeyPair.from_private_key_hex("0x" + keypair.private_key_hex.upper())

    assert restored.public_key_hex == keypair.public_key_hex


def test_invalid_private_key_hex():
    """Test invalid private key hex."""
    with pytest.raises(ValueError, match="invalid hex length"):
        KeyPair.from_private_key_hex("abcd")


def test_sign_and_verify(keypair):
    """Test sign and verify."""
    message = b'{"params":null,"target_key":"5Fabc"}'
    signature = keypair.sign(message)

    assert len(signature) == 64
    assert keypair.verify(message, signature)
    assert not keypair.verify(message + b" ", signature)


def test_verify_with_other_key(keypair):
    """Test verify with other key."""
    other = KeyPair.generate()
    signature = other.sign(b"payload")

    assert not verify_signature(b"payload", signature, keypair.public_key)
    assert verify_signature(b"payload", signature, other.public_key)


def test_verify_rejects_bad_lengths(keypair):
    """Test verify rejects bad lengths."""
    assert not verify_signature(b"payload", b"\x00" * 10, keypair.public_key)
    assert not verify_signature(b"payload", keypair.sign(b"payload"), b"\x00" * 5)


def test_repr_hides_private_key(keypair):
    """Test repr hides private key."""
    text = repr(keypair)

    assert keypair.public_key_hex in text
    assert keypair.private_key_hex not in text


def test_load_or_create_keypair(tmp_path):
    """Test load or create keypair."""
    path = tmp_path / "keys" / "module.key"

    created = load_or_create_keypair(path)
    loaded = load_or_create_keypair(path)

    assert path.exists()
    assert path.read_text(encoding="utf-8") == created.private_key_hex
    assert loaded.public_key_hex == created.public_key_hex


ABANDON_PHRASE = " ".join(["abandon"] * 11 + ["about"])


def _decode_ss58(address):
    raw = base58.b58decode(address)
    return raw[0], raw[1:33], raw[33:]


def test_from_seed_phrase_uses_bip39_seed():
    """Test that a mnemonic yields the first 32 bytes of its BIP39 seed."""
    keypair = KeyPair.from_seed_phrase(ABANDON_PHRASE)

    assert keypair.private_key_hex == "5eb00bbddcf069084889a8ab9155568165f5c453ccb85e70811aaed6f6da5fc1"


def test_from_seed_phrase_normalizes_whitespace():
    """Test that extra whitespace does not change the derived key."""
    spaced = "  " + ABANDON_PHRASE.replace(" ", "   ") + "\n"

    assert KeyPair.from_seed_phrase(spaced).public_key == KeyPair.from_seed_phrase(ABANDON_PHRASE).public_key


@pytest.mark.parametrize("phrase", [" ".join(["abandon"] * 12), "not a real mnemonic at all", ""])
def test_from_seed_phrase_rejects_invalid(phrase):
    """Test that bad checksums and unknown words are rejected."""
    with pytest.raises(ValueError, match="Invalid seed phrase"):
        KeyPair.from_seed_phrase(phrase)


def test_ss58_address_layout(keypair):
    """Test SS58 prefix, embedded public key, and checksum."""
    prefix, public_key, checksum = _decode_ss58(keypair.ss58_address)

    assert prefix == 42
    assert public_key == keypair.public_key
    assert checksum == hashlib.blake2b(b"SS58PRE" + bytes([42]) + public_key).digest()[:2]
    assert keypair.ss58_address.startswith("5")


def test_ss58_encode_rejects_bad_input():
    """Test key length and prefix validation."""
    with pytest.raises(ValueError, match="32 bytes"):
        ss58_encode(b"\x01" * 31)
    with pytest.raises(ValueError, match="prefixes"):
        ss58_encode(b"\x01" * 32, prefix=64)


def test_derive_address_is_deterministic(keypair):
    """Test that derivation depends only on the key and the index."""
    first = keypair.derive_address(0)

    assert keypair.derive_address(0) == first
    assert keypair.derive_address(1) != first
    assert first != keypair.ss58_address

    _, derived_key, _ = _decode_ss58(first)
    assert derived_key == keypair.sign((0).to_bytes(4, "little"))[:32]


@pytest.mark.parametrize("index", [-1, 2**32])
def test_derive_address_index_range(keypair, index):
    """Test that indexes outside u32 are rejected."""
    with pytest.raises(ValueError, match="Derivation index"):
        keypair.derive_address(index)


def test_save_keypair_round_trip(tmp_path):
    """Test that a saved key loads back unchanged."""
    keypair = KeyPair.from_seed_phrase(ABANDON_PHRASE)
    path = tmp_path / "phrase.key"

    save_keypair(keypair, path)

    assert load_or_create_keypair(path).ss58_address == keypair.ss58_address
