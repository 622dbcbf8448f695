"""
Price Normalizer

Adjusts a comparable's observed price for parking and locker differences
against the subject, so the price reads as if the comparable had the
subject's exact parking/locker counts. Runs before aggregation.
"""

from typing import List, Tuple

from .models import ComparableTransaction, PriceAdjustment, UnitSpec
from .settings import AdjustmentValues


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def adjust_comparable(
    comp: ComparableTransaction,
    subject: UnitSpec,
    values: AdjustmentValues,
) -> Tuple[int, List[PriceAdjustment], bool]:
    """
    Normalize a comparable's close price to the subject's parking/locker.

    adjusted = close - (comp.parking - subject.parking) * parking_value
                     - (comp.locker - subject.locker) * locker_value

    Args:
        comp: Historical transaction
        subject: Normalized subject
        values: Direction-specific dollar values

    Returns:
        Tuple of (adjusted price, adjustments applied, low_quality).
        A result that would go negative is clamped to zero and
        flagged low quality.
    """
    adjustments: List[PriceAdjustment] = []
    adjusted = comp.close_price

    parking_diff = comp.parking - subject.parking
    if parking_diff != 0:
        amount = parking_diff * values.parking_per_space
        adjusted -= amount
        if parking_diff > 0:
            reason = f"Comparable has {_plural(parking_diff, 'more parking space')}"
        else:
            reason = f"Your unit has {_plural(-parking_diff, 'more parking space')}"
        adjustments.append(PriceAdjustment("parking", parking_diff, amount, reason))

    locker_diff = comp.locker_count - subject.locker_count
    if locker_diff != 0:
        amount = locker_diff * values.locker
        adjusted -= amount
        reason = "Comparable includes a locker" if locker_diff > 0 else "Your unit includes a locker"
        adjustments.append(PriceAdjustment("locker", locker_diff, amount, reason))

    low_quality = False
    if adjusted < 0:
        adjusted = 0
        low_quality = True

    return adjusted, adjustments, low_quality


class PriceNormalizer:
    """Applies tenant-configured parking/locker values to comparables."""

    def __init__(self, values: AdjustmentValues):
        self._values = values

    @property
    def values(self) -> AdjustmentValues:
        return self._values

    def normalize(
        self,
        comp: ComparableTransaction,
        subject: UnitSpec,
    ) -> Tuple[int, List[PriceAdjustment], bool]:
        return adjust_comparable(comp, subject, self._values)
