"""Confidence scoring.

The score is an additive sum of fixed weights for each piece of evidence the
extractors produced, clamped to ``[0, 1]``. A uniform perturbation of at most
``NOISE_AMPLITUDE`` is then applied to mimic the spread of a learned model's
output. The perturbation comes from an injectable :class:`NoiseSource`, so
tests can pin it; ``random.Random`` satisfies the protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from .models import TransactionType
from .patterns import MIN_REFERENCE_LENGTH

WEIGHT_AMOUNT = 0.30
WEIGHT_UPI_ID = 0.25
WEIGHT_REFERENCE = 0.20
WEIGHT_TYPE = 0.15
WEIGHT_MERCHANT = 0.10

NOISE_AMPLITUDE = 0.05


class NoiseSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


@dataclass(frozen=True, slots=True)
class Evidence:
    """The extracted fields that contribute to the confidence score."""

    amount: Decimal | None
    upi_id: str | None
    reference_number: str | None
    type: TransactionType | None
    merchant_name: str | None


def clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def score_evidence(
    evidence: Evidence, *, min_reference_length: int = MIN_REFERENCE_LENGTH
) -> float:
    """Return the clamped weighted sum for ``evidence`` (no noise)."""

    score = 0.0
    if evidence.amount is not None and evidence.amount > 0:
        score += WEIGHT_AMOUNT
    if evidence.upi_id is not None and "@" in evidence.upi_id:
        score += WEIGHT_UPI_ID
    ref = evidence.reference_number
    if ref is not None and len(ref) >= min_reference_length:
        score += WEIGHT_REFERENCE
    if evidence.type is not None:
        score += WEIGHT_TYPE
    if evidence.merchant_name is not None:
        score += WEIGHT_MERCHANT
    return clamp_unit(score)


def perturb(confidence: float, rng: NoiseSource, *, amplitude: float = NOISE_AMPLITUDE) -> float:
    """Add ``uniform(-amplitude, amplitude)`` and re-clamp."""

    return clamp_unit(confidence + rng.uniform(-amplitude, amplitude))


__all__ = [
    "Evidence",
    "NOISE_AMPLITUDE",
    "NoiseSource",
    "clamp_unit",
    "perturb",
    "score_evidence",
]
