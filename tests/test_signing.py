"""Tests for key handling and the signing service."""

import base64
import json
from unittest.mock import AsyncMock

import base58
import pytest
from eth_utils import keccak
from nacl.signing import SigningKey, VerifyKey

from fluxfolio.errors.exceptions import ExternalCallError, InvalidKeyError, SigningError
from fluxfolio.models.enums import SigningStandard
from fluxfolio.models.intents import IntentPayload, TokenDiffIntent
from fluxfolio.services.intents.canonical import canonical_json
from fluxfolio.services.signing.keys import (
    compress_public_key,
    derive_signer_id,
    generate_keypair,
    parse_secret_key,
    public_key_string,
)
from fluxfolio.services.signing.local import sign_ephemeral
from fluxfolio.services.signing.mpc import convert_mpc_signature, erc191_hash, erc191_message
from fluxfolio.services.signing.service import LocalKey, RemoteSignerRef, SigningService

BIG_R = "02" + "11" * 32
S = "22" * 32


def _payload() -> IntentPayload:
    return IntentPayload(
        signer_id="ab" * 32,
        verifying_contract="intents.near",
        deadline="2030-01-01T00:00:00.000Z",
        nonce=base64.b64encode(b"\x01" * 32).decode(),
        intents=[TokenDiffIntent(diff={"nep141:a": "-10", "nep141:b": "5"})],
    )


def _success(value) -> dict:
    return {"status": {"SuccessValue": base64.b64encode(json.dumps(value).encode()).decode()}}


def test_parse_secret_key_formats():
    seed = SigningKey.generate()
    full = "ed25519:" + base58.b58encode(bytes(seed) + bytes(seed.verify_key)).decode()
    bare = "ed25519:" + base58.b58encode(bytes(seed)).decode()
    assert bytes(parse_secret_key(full)) == bytes(seed)
    assert bytes(parse_secret_key(bare)) == bytes(seed)


@pytest.mark.parametrize(
    "key",
    [
        "secp256k1:abc",
        "ed25519:0OIl",  # not base58
        "ed25519:" + base58.b58encode(b"\x01" * 16).decode(),
        "ed25519:" + base58.b58encode(b"\x01" * 64).decode(),  # public half mismatch
    ],
)
def test_parse_secret_key_rejects_bad_material(key):
    with pytest.raises(InvalidKeyError):
        parse_secret_key(key)


def test_generated_keypair_and_signer_id():
    secret, public = generate_keypair()
    key = parse_secret_key(secret)
    assert public_key_string(key) == public
    assert derive_signer_id(secret) == bytes(key.verify_key).hex()
    assert len(derive_signer_id(secret)) == 64


@pytest.mark.asyncio
async def test_local_signature_verifies_over_payload():
    secret, public = generate_keypair()
    payload = _payload()
    envelope = await SigningService().sign(payload, LocalKey(secret))

    assert envelope.standard == SigningStandard.RAW_ED25519
    assert envelope.payload == canonical_json(payload.message_dict())
    assert envelope.public_key == public
    signature = base58.b58decode(envelope.signature.removeprefix("ed25519:"))
    verify_key = VerifyKey(base58.b58decode(public.removeprefix("ed25519:")))
    verify_key.verify(envelope.payload.encode(), signature)


def test_local_key_repr_hides_secret():
    secret, _ = generate_keypair()
    assert secret not in repr(LocalKey(secret))


def test_sign_ephemeral_is_base64_over_canonical_json():
    secret, _ = generate_keypair()
    data = {"portfolio_id": 7, "nonce": 1, "owner_pubkey": "ed25519:x"}
    signature = base64.b64decode(sign_ephemeral(data, secret))
    parse_secret_key(secret).verify_key.verify(canonical_json(data).encode(), signature)


def test_erc191_prefix_uses_byte_length():
    assert erc191_message("é") == b"\x19Ethereum Signed Message:\n2" + "é".encode()
    assert erc191_hash("hello") == keccak(b"\x19Ethereum Signed Message:\n5hello")


def test_convert_mpc_signature():
    result = {"big_r": {"affine_point": BIG_R}, "s": {"scalar": S}, "recovery_id": 1}
    encoded = convert_mpc_signature(result)
    assert encoded.startswith("secp256k1:")
    raw = base58.b58decode(encoded.removeprefix("secp256k1:"))
    assert raw == bytes.fromhex("11" * 32) + bytes.fromhex(S) + b"\x01"
    assert convert_mpc_signature([result]) == encoded


@pytest.mark.parametrize(
    "result",
    [
        {"big_r": {"affine_point": "04" + "11" * 32}, "s": {"scalar": S}, "recovery_id": 0},
        {"big_r": {"affine_point": BIG_R}, "s": {"scalar": "22" * 31}, "recovery_id": 0},
        {"big_r": {"affine_point": BIG_R}, "s": {"scalar": S}, "recovery_id": 2},
        {"big_r": {}, "s": {"scalar": S}, "recovery_id": 0},
        [],
    ],
)
def test_convert_mpc_signature_rejects_malformed(result):
    with pytest.raises(SigningError):
        convert_mpc_signature(result)


@pytest.mark.asyncio
async def test_remote_signing_calls_contract():
    caller = AsyncMock()
    caller.function_call.return_value = _success(
        {"big_r": {"affine_point": BIG_R}, "s": {"scalar": S}, "recovery_id": 0}
    )
    ref = RemoteSignerRef(signer_account_id="agent.near", contract_id="proxy.near", portfolio_account_id="7")
    payload = _payload()

    envelope = await SigningService(caller).sign(payload, ref)

    assert envelope.standard == SigningStandard.ERC191
    assert envelope.public_key is None
    assert envelope.signature.startswith("secp256k1:")
    kwargs = caller.function_call.await_args.kwargs
    assert kwargs["method_name"] == "balance_portfolio"
    assert kwargs["contract_id"] == "proxy.near"
    assert kwargs["args"]["user_portfolio"] == "7"
    assert kwargs["args"]["hash"] == "0x" + erc191_hash(envelope.payload).hex()
    assert kwargs["args"]["defuse_intents"]["intents"] == payload.message_dict()["intents"]


@pytest.mark.asyncio
async def test_remote_signing_failure_maps_to_signing_error():
    caller = AsyncMock()
    caller.function_call.side_effect = ExternalCallError("gateway down")
    ref = RemoteSignerRef(signer_account_id="agent.near", contract_id="proxy.near", portfolio_account_id="7")
    with pytest.raises(SigningError):
        await SigningService(caller).sign(_payload(), ref)


@pytest.mark.asyncio
async def test_remote_signing_without_success_value():
    caller = AsyncMock()
    caller.function_call.return_value = {"status": {"Failure": {"error": "panicked"}}}
    ref = RemoteSignerRef(signer_account_id="agent.near", contract_id="proxy.near", portfolio_account_id="7")
    with pytest.raises(SigningError):
        await SigningService(caller).sign(_payload(), ref)


def test_compress_public_key():
    x, y_even = b"\x01" * 32, b"\x00" * 31 + b"\x02"
    assert compress_public_key(b"\x04" + x + y_even) == b"\x02" + x
    assert compress_public_key(x + b"\x00" * 31 + b"\x03") == b"\x03" + x
    with pytest.raises(InvalidKeyError):
        compress_public_key(b"\x05" * 10)
