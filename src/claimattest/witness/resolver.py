"""
Witness resolution.

Given a proof, decide which witness addresses must have signed it:

1. ``manual-verify`` shortcut: if the proof's first witness entry carries the
   ``manual-verify`` url, that single witness is authoritative and the beacon
   is not consulted.
2. Otherwise the beacon publishes the witness list for the claim's epoch and a
   pluggable selector picks the witnesses applicable to
   ``(identifier, timestampS)``.

Resolved sets are immutable once published, so they may be cached per
``(epoch, identifier, timestampS)``.
"""

from __future__ import annotations

import logging
import struct
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from claimattest.claims.identifier import normalize_identifier
from claimattest.crypto.signing import keccak256
from claimattest.protocol.enums import ErrorKind
from claimattest.protocol.errors import ClaimAttestError
from claimattest.protocol.models import Proof, WitnessEntry

logger = logging.getLogger(__name__)

WitnessSelector = Callable[[List[WitnessEntry], str, int, int], List[WitnessEntry]]


# ===========================================================================
# Beacon
# ===========================================================================


class Beacon:
    """External source of the authoritative witness list per epoch."""

    async def get_witness_list_for_epoch(self, epoch: int) -> List[WitnessEntry]:
        raise NotImplementedError


class StaticBeacon(Beacon):
    """
    In-memory beacon backed by a fixed ``epoch -> witnesses`` table.

    Usage:
        beacon = StaticBeacon({5: [WitnessEntry("0xabc...", "wss://witness")]})
    """

    def __init__(self, epochs: Optional[Dict[int, Iterable[WitnessEntry]]] = None):
        self._epochs: Dict[int, List[WitnessEntry]] = {
            int(epoch): list(witnesses) for epoch, witnesses in (epochs or {}).items()
        }
        self.calls = 0

    def publish(self, epoch: int, witnesses: Iterable[WitnessEntry]) -> None:
        self._epochs[int(epoch)] = list(witnesses)

    async def get_witness_list_for_epoch(self, epoch: int) -> List[WitnessEntry]:
        self.calls += 1
        if epoch not in self._epochs:
            raise KeyError(f"No witness list published for epoch {epoch}")
        return list(self._epochs[epoch])


# ===========================================================================
# Selectors
# ===========================================================================


def select_all(
    witnesses: List[WitnessEntry], identifier: str, timestamp_s: int, epoch: int
) -> List[WitnessEntry]:
    """Every published witness is expected to sign."""
    return list(witnesses)


class HashWitnessSelector:
    """
    Deterministic selection of ``required`` witnesses.

    Seeds from keccak256("identifier\\nepoch\\nrequired\\ntimestampS") and
    takes successive 32-bit big-endian words of the digest, each picking an
    index among the witnesses not yet chosen (swap-remove).
    """

    def __init__(self, required: int):
        if required < 1:
            raise ValueError("required must be at least 1")
        self.required = required

    def __call__(
        self, witnesses: List[WitnessEntry], identifier: str, timestamp_s: int, epoch: int
    ) -> List[WitnessEntry]:
        if len(witnesses) < self.required:
            raise ClaimAttestError(
                f"Epoch {epoch} publishes {len(witnesses)} witnesses, {self.required} required",
                ErrorKind.BEACON_ERROR,
            )
        seed_input = "\n".join([identifier, str(epoch), str(self.required), str(timestamp_s)])
        digest = keccak256(seed_input.encode("utf-8"))
        left = list(witnesses)
        selected: List[WitnessEntry] = []
        offset = 0
        for _ in range(self.required):
            (word,) = struct.unpack_from(">I", digest, offset)
            index = word % len(left)
            selected.append(left[index])
            left[index] = left[-1]
            left.pop()
            offset = (offset + 4) % len(digest)
        return selected


# ===========================================================================
# Resolver
# ===========================================================================


class WitnessResolver:
    """
    Resolves the expected witness addresses (lower-case) for a proof.

    The beacon and selector are injected; the selector defaults to
    ``select_all``.
    """

    def __init__(
        self,
        beacon: Optional[Beacon] = None,
        selector: Optional[WitnessSelector] = None,
        *,
        cache: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self._beacon = beacon
        self._selector = selector or select_all
        self._cache_enabled = cache
        self._cache: Dict[Tuple[int, str, int], List[str]] = {}
        self._lock = threading.Lock()
        self._log = logger or logging.getLogger(__name__)

    @property
    def beacon(self) -> Optional[Beacon]:
        return self._beacon

    async def resolve(self, proof: Proof) -> List[str]:
        if proof.witnesses and proof.witnesses[0].is_manual_verify:
            return [proof.witnesses[0].id.lower()]
        claim = proof.claim_data
        return await self.resolve_for_claim(
            claim.epoch, normalize_identifier(proof.identifier), claim.timestamp_s
        )

    async def resolve_for_claim(self, epoch: int, identifier: str, timestamp_s: int) -> List[str]:
        if self._beacon is None:
            self._log.info("No beacon available for getting witnesses")
            raise ClaimAttestError("No beacon available", ErrorKind.NO_BEACON_AVAILABLE)

        key = (epoch, identifier, timestamp_s)
        if self._cache_enabled:
            with self._lock:
                cached = self._cache.get(key)
            if cached is not None:
                return list(cached)

        try:
            witnesses = await self._beacon.get_witness_list_for_epoch(epoch)
        except Exception as e:
            self._log.warning("Beacon lookup failed for epoch %s: %s", epoch, e)
            raise ClaimAttestError(
                f"Failed to fetch witness list for epoch {epoch}", ErrorKind.BEACON_ERROR, e
            ) from e

        selected = self._selector(list(witnesses), identifier, timestamp_s, epoch)
        addresses = [w.id.lower() for w in selected]

        if self._cache_enabled:
            with self._lock:
                self._cache[key] = list(addresses)
        return addresses

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
