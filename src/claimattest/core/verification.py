"""
Proof verification pipeline.

A proof is accepted only if:
  1. it carries at least one signature,
  2. its stated identifier equals the identifier derived from its claim data,
  3. every witness expected for the claim (manual-verify entry or beacon
     selection) recovered from one of its signatures.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence, Union

from claimattest.claims.identifier import assert_identifier_matches, normalize_identifier
from claimattest.crypto.signing import parse_signature
from claimattest.protocol.enums import ErrorKind
from claimattest.protocol.errors import ClaimAttestError
from claimattest.protocol.models import CompleteClaimData, Proof, SignedClaim
from claimattest.witness.quorum import assert_valid_signed_claim
from claimattest.witness.resolver import WitnessResolver

logger = logging.getLogger(__name__)


def signed_claim_from_proof(proof: Proof) -> SignedClaim:
    claim = proof.claim_data
    return SignedClaim(
        claim=CompleteClaimData(
            provider=claim.provider,
            parameters=claim.parameters,
            context=claim.context,
            owner=claim.owner,
            timestamp_s=claim.timestamp_s,
            epoch=claim.epoch,
            identifier=normalize_identifier(proof.identifier),
        ),
        signatures=[parse_signature(s) for s in proof.signatures],
    )


async def assert_valid_proof(proof: Proof, resolver: WitnessResolver) -> None:
    """Raise ClaimAttestError unless ``proof`` passes every check."""
    if not proof.signatures:
        raise ClaimAttestError("No signatures", ErrorKind.SIGNATURE_NOT_FOUND)

    witnesses = await resolver.resolve(proof)
    assert_identifier_matches(proof.claim_data, proof.identifier)
    assert_valid_signed_claim(signed_claim_from_proof(proof), witnesses)


async def verify_proof(
    proof_or_proofs: Union[Proof, Sequence[Proof]],
    resolver: WitnessResolver,
    *,
    log: Optional[logging.Logger] = None,
) -> bool:
    """
    True when the proof (or every proof of a list) verifies.

    A proof without signatures raises SIGNATURE_NOT_FOUND; every other
    verification failure is logged and reported as False.
    """
    log = log or logger
    if isinstance(proof_or_proofs, (list, tuple)):
        for proof in proof_or_proofs:
            if not await verify_proof(proof, resolver, log=log):
                return False
        return True

    proof = proof_or_proofs
    if not proof.signatures:
        raise ClaimAttestError("No signatures", ErrorKind.SIGNATURE_NOT_FOUND)

    try:
        await assert_valid_proof(proof, resolver)
    except ClaimAttestError as e:
        log.info("Error verifying proof: %s (%s)", e.message, e.kind.value)
        return False
    except Exception as e:
        log.info("Error verifying proof: %s", e)
        return False
    return True


def transform_for_onchain(proof: Proof) -> Dict[str, Any]:
    """Split a proof into the ``claimInfo`` / ``signedClaim`` shape contracts expect."""
    claim = proof.claim_data
    claim_info = {
        "context": claim.context,
        "parameters": claim.parameters,
        "provider": claim.provider,
    }
    signed_claim: Dict[str, Any] = {
        "claim": {
            "epoch": claim.epoch,
            "identifier": claim.identifier,
            "owner": claim.owner,
            "timestampS": claim.timestamp_s,
        },
        "signatures": list(proof.signatures),
    }
    return {"claimInfo": claim_info, "signedClaim": signed_claim}

