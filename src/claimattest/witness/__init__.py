"""
Witness module.

- Beacon interface and in-memory beacon
- Witness selection (all, or deterministic hash selection)
- Witness resolution with the manual-verify shortcut
- Signature quorum (coverage) validation
"""

from claimattest.witness.resolver import (
    Beacon,
    StaticBeacon,
    WitnessResolver,
    HashWitnessSelector,
    select_all,
)
from claimattest.witness.quorum import (
    assert_valid_signed_claim,
    recover_signers_of_signed_claim,
)

__all__ = [
    "Beacon",
    "StaticBeacon",
    "WitnessResolver",
    "HashWitnessSelector",
    "select_all",
    "assert_valid_signed_claim",
    "recover_signers_of_signed_claim",
]
