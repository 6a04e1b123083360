"""Local ed25519 signing with a key held by the service."""

import base64

import base58

from fluxfolio.services.intents.canonical import canonical_json
from fluxfolio.services.signing.keys import parse_secret_key


def sign_message(secret_key: str, message: str) -> str:
    """Detached signature over the UTF-8 bytes of ``message``, base58."""
    signing_key = parse_secret_key(secret_key)
    signature = signing_key.sign(message.encode("utf-8")).signature
    return base58.b58encode(signature).decode("ascii")


def sign_ephemeral(data: dict, secret_key: str) -> str:
    """Base64 signature over the canonical JSON of ``data`` for contract calls."""
    signing_key = parse_secret_key(secret_key)
    signature = signing_key.sign(canonical_json(data).encode("utf-8")).signature
    return base64.b64encode(signature).decode("ascii")
