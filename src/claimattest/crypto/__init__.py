from .signing import (
    EthSigner,
    keccak256,
    sign,
    sign_message,
    recover,
    recover_message,
    address_of,
    verify_signer,
)

__all__ = [
    "EthSigner",
    "keccak256",
    "sign",
    "sign_message",
    "recover",
    "recover_message",
    "address_of",
    "verify_signer",
]
