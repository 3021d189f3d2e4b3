"""
secp256k1 message signing (Ethereum ``personal_sign`` convention).

Two layers:
- ``sign_message`` / ``recover_message`` sign the raw message bytes behind the
  ``"\\x19Ethereum Signed Message:\\n<len>"`` prefix. Witness signatures over a
  claim use this form directly.
- ``sign`` / ``recover`` first hash the (canonical) payload with Keccak-256 and
  sign the 32-byte digest. Application-authorization signatures use this form.

Signatures are 65 bytes ``r || s || v`` with ``v`` in {27, 28} (0/1 accepted
on input). Addresses are always returned as lower-case ``0x`` hex.
"""

from __future__ import annotations

import os
from typing import Union

from coincurve import PrivateKey, PublicKey
from Crypto.Hash import keccak

from claimattest.protocol.enums import ErrorKind
from claimattest.protocol.errors import ClaimAttestError

SIGNATURE_LENGTH = 65
MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"

KeyLike = Union[str, bytes, PrivateKey]
SignatureLike = Union[str, bytes, bytearray]


def keccak256(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def keccak256_hex(data: bytes) -> str:
    return "0x" + keccak256(data).hex()


def hash_personal_message(message: bytes) -> bytes:
    """Digest actually signed by ``personal_sign`` for ``message``."""
    return keccak256(MESSAGE_PREFIX + str(len(message)).encode("ascii") + message)


def _strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def to_bytes(value: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return bytes.fromhex(_strip_0x(value))


def address_from_public_key(public_key: PublicKey) -> str:
    uncompressed = public_key.format(compressed=False)
    return "0x" + keccak256(uncompressed[1:])[-20:].hex()


def normalize_address(address: str) -> str:
    """Lower-case ``0x`` form; raises INVALID_PARAM for anything not 20 bytes of hex."""
    if not isinstance(address, str):
        raise ClaimAttestError(f"Address must be a string, got {type(address).__name__}", ErrorKind.INVALID_PARAM)
    body = _strip_0x(address.strip())
    try:
        raw = bytes.fromhex(body)
    except ValueError as e:
        raise ClaimAttestError(f"Invalid address: {address}", ErrorKind.INVALID_PARAM, e) from e
    if len(raw) != 20:
        raise ClaimAttestError(f"Invalid address length: {address}", ErrorKind.INVALID_PARAM)
    return "0x" + body.lower()


def parse_signature(signature: SignatureLike) -> bytes:
    """
    Return the signature as 65 bytes ``r || s || recid`` (recid 0/1).
    Raises INVALID_SIGNATURE_FORMAT.
    """
    try:
        raw = to_bytes(signature)
    except (TypeError, ValueError) as e:
        raise ClaimAttestError(
            "Signature is not valid hex", ErrorKind.INVALID_SIGNATURE_FORMAT, e
        ) from e
    if len(raw) != SIGNATURE_LENGTH:
        raise ClaimAttestError(
            f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}",
            ErrorKind.INVALID_SIGNATURE_FORMAT,
        )
    v = raw[64]
    if v >= 27:
        v -= 27
    if v not in (0, 1):
        raise ClaimAttestError(
            f"Signature recovery id out of range: {raw[64]}",
            ErrorKind.INVALID_SIGNATURE_FORMAT,
        )
    return raw[:64] + bytes([v])


class EthSigner:
    """
    secp256k1 signer.

    Usage:
        signer = EthSigner.from_hex("0x4c08...")
        sig = signer.sign(canonical_payload)
        assert recover(canonical_payload, sig) == signer.address
    """

    def __init__(self, private_key: PrivateKey):
        self._private_key = private_key
        self._address = address_from_public_key(private_key.public_key)

    @property
    def address(self) -> str:
        return self._address

    @property
    def private_key_hex(self) -> str:
        return "0x" + self._private_key.secret.hex()

    def sign_message(self, message: bytes) -> str:
        digest = hash_personal_message(message)
        raw = self._private_key.sign_recoverable(digest, hasher=None)
        return "0x" + (raw[:64] + bytes([raw[64] + 27])).hex()

    def sign(self, payload: bytes) -> str:
        return self.sign_message(keccak256(payload))

    @classmethod
    def generate(cls) -> "EthSigner":
        """New random key. Tests and local tooling only."""
        return cls(PrivateKey(os.urandom(32)))

    @classmethod
    def from_hex(cls, key: str) -> "EthSigner":
        return cls.from_private_bytes(to_bytes(key))

    @classmethod
    def from_private_bytes(cls, key_bytes: bytes) -> "EthSigner":
        if len(key_bytes) != 32:
            raise ValueError(f"Private key must be 32 bytes, got {len(key_bytes)}")
        return cls(PrivateKey(key_bytes))

    @classmethod
    def load(cls, key: KeyLike) -> "EthSigner":
        if isinstance(key, PrivateKey):
            return cls(key)
        if isinstance(key, (bytes, bytearray)):
            return cls.from_private_bytes(bytes(key))
        return cls.from_hex(key)


def sign_message(message: bytes, private_key: KeyLike) -> str:
    return EthSigner.load(private_key).sign_message(message)


def sign(payload: bytes, private_key: KeyLike) -> str:
    return EthSigner.load(private_key).sign(payload)


def address_of(private_key: KeyLike) -> str:
    return EthSigner.load(private_key).address


def recover_message(message: bytes, signature: SignatureLike) -> str:
    raw = parse_signature(signature)
    digest = hash_personal_message(message)
    try:
        public_key = PublicKey.from_signature_and_message(raw, digest, hasher=None)
    except ValueError as e:
        raise ClaimAttestError(
            "Could not recover a public key from the signature",
            ErrorKind.INVALID_SIGNATURE_FORMAT,
            e,
        ) from e
    return address_from_public_key(public_key)


def recover(payload: bytes, signature: SignatureLike) -> str:
    return recover_message(keccak256(payload), signature)


def verify_signer(payload: bytes, signature: SignatureLike, expected_address: str) -> None:
    """Raise INVALID_SIGNATURE unless ``signature`` over ``payload`` recovers to ``expected_address``."""
    try:
        signer = recover(payload, signature)
        expected = normalize_address(expected_address)
    except ClaimAttestError as e:
        raise ClaimAttestError(
            f"Failed to validate signature: {e.message}", ErrorKind.INVALID_SIGNATURE, e
        ) from e
    if signer != expected:
        raise ClaimAttestError(
            f"Signature does not match the application id: {signer}",
            ErrorKind.INVALID_SIGNATURE,
        )
