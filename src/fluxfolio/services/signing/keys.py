"""ed25519 key material in the ``ed25519:<base58>`` string format."""

import base58
from nacl.exceptions import CryptoError
from nacl.signing import SigningKey

from fluxfolio.errors.exceptions import InvalidKeyError

KEY_PREFIX = "ed25519:"


def parse_secret_key(key: str) -> SigningKey:
    """Accept a 64-byte secret (seed + public key) or a bare 32-byte seed."""
    if not isinstance(key, str) or not key.startswith(KEY_PREFIX):
        raise InvalidKeyError('Secret key must start with "ed25519:"')
    try:
        raw = base58.b58decode(key[len(KEY_PREFIX):])
    except ValueError as exc:
        raise InvalidKeyError("Secret key is not valid base58") from exc

    if len(raw) == 64:
        seed, public = raw[:32], raw[32:]
    elif len(raw) == 32:
        seed, public = raw, None
    else:
        raise InvalidKeyError(f"Secret key must decode to 32 or 64 bytes, got {len(raw)}")

    try:
        signing_key = SigningKey(seed)
    except CryptoError as exc:
        raise InvalidKeyError("Secret key rejected by ed25519") from exc
    if public is not None and bytes(signing_key.verify_key) != public:
        raise InvalidKeyError("Secret key public half does not match its seed")
    return signing_key


def public_key_string(signing_key: SigningKey) -> str:
    return KEY_PREFIX + base58.b58encode(bytes(signing_key.verify_key)).decode("ascii")


def secret_key_string(signing_key: SigningKey) -> str:
    raw = bytes(signing_key) + bytes(signing_key.verify_key)
    return KEY_PREFIX + base58.b58encode(raw).decode("ascii")


def derive_signer_id(key: str) -> str:
    """Implicit account id: lowercase hex of the ed25519 public key."""
    return bytes(parse_secret_key(key).verify_key).hex()


def generate_keypair() -> tuple[str, str]:
    """Return ``(secret_key, public_key)`` strings for a fresh key."""
    signing_key = SigningKey.generate()
    return secret_key_string(signing_key), public_key_string(signing_key)


def compress_public_key(pub_key: bytes) -> bytes:
    """Compress a secp256k1 public key (64/65-byte uncompressed or 33-byte)."""
    if len(pub_key) == 64:
        pub_key = b"\x04" + pub_key
    if len(pub_key) == 65 and pub_key[0] == 0x04:
        x, y = pub_key[1:33], pub_key[33:65]
        prefix = 0x02 if y[-1] % 2 == 0 else 0x03
        return bytes([prefix]) + x
    if len(pub_key) == 33 and pub_key[0] in (0x02, 0x03):
        return pub_key
    raise InvalidKeyError("Invalid public key format")
