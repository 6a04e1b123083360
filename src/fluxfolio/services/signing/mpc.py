"""ERC-191 hashing and conversion of MPC signer output."""

import base58
from eth_utils import keccak

from fluxfolio.errors.exceptions import SigningError

ERC191_PREFIX = "\x19Ethereum Signed Message:\n"


def erc191_message(message: str) -> bytes:
    body = message.encode("utf-8")
    return ERC191_PREFIX.encode("utf-8") + str(len(body)).encode("ascii") + body


def erc191_hash(message: str) -> bytes:
    """keccak256 of the Ethereum-prefixed message."""
    return keccak(erc191_message(message))


def _hex_bytes(value: object, field: str) -> bytes:
    if not isinstance(value, str):
        raise SigningError(f"MPC signature field {field} is missing", details={"field": field})
    try:
        return bytes.fromhex(value.removeprefix("0x"))
    except ValueError as exc:
        raise SigningError(f"MPC signature field {field} is not hex") from exc


def convert_mpc_signature(result: dict | list) -> str:
    """Turn ``{big_r: {affine_point}, s: {scalar}, recovery_id}`` into
    ``secp256k1:<base58(r || s || v)>``.
    """
    if isinstance(result, list):
        if not result:
            raise SigningError("MPC signer returned no signatures")
        result = result[0]
    if not isinstance(result, dict):
        raise SigningError("MPC signer returned a malformed signature", details=result)

    big_r = _hex_bytes((result.get("big_r") or {}).get("affine_point"), "big_r.affine_point")
    s = _hex_bytes((result.get("s") or {}).get("scalar"), "s.scalar")
    recovery_id = result.get("recovery_id")

    if len(big_r) != 33 or big_r[0] not in (0x02, 0x03):
        raise SigningError(f"big_r must be a 33-byte compressed point, got {len(big_r)} bytes")
    if len(s) != 32:
        raise SigningError(f"s must be 32 bytes, got {len(s)}")
    if recovery_id not in (0, 1):
        raise SigningError(f"recovery_id must be 0 or 1, got {recovery_id!r}")

    raw = big_r[1:] + s + bytes([recovery_id])
    return "secp256k1:" + base58.b58encode(raw).decode("ascii")
