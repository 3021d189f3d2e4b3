from __future__ import annotations

import logging
from typing import Iterable, List, Set

from claimattest.claims.identifier import claim_sign_data
from claimattest.crypto.signing import recover_message
from claimattest.protocol.enums import ErrorKind
from claimattest.protocol.errors import ClaimAttestError
from claimattest.protocol.models import SignedClaim

logger = logging.getLogger(__name__)


def recover_signers_of_signed_claim(signed_claim: SignedClaim) -> List[str]:
    """Addresses (lower-case) that produced each signature, in signature order."""
    data = claim_sign_data(signed_claim.claim)
    return [recover_message(data, signature) for signature in signed_claim.signatures]


def assert_valid_signed_claim(signed_claim: SignedClaim, expected_witnesses: Iterable[str]) -> None:
    """
    Coverage check: every expected witness must have signed.

    Extra signers are tolerated. A signer is one address no matter how many
    signatures it contributed, so it can cover at most one expected witness.
    """
    signers: Set[str] = set(recover_signers_of_signed_claim(signed_claim))
    expected = [w.lower() for w in expected_witnesses]
    missing = [w for w in dict.fromkeys(expected) if w not in signers]

    if missing:
        missing_str = ", ".join(missing)
        logger.info("Claim validation failed. Missing signatures from: %s", missing_str)
        raise ClaimAttestError(
            f"Missing signatures from {missing_str}", ErrorKind.PROOF_NOT_VERIFIED
        )
