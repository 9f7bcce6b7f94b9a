"""VAT and delivery fee calculation.

All amounts are integer VND. Only the VAT step rounds (half-up); fees are
flat per parcel. Rush delivery ships rush-eligible items as a separate
parcel, so a mixed cart pays for both parcels.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from .config import Settings, get_settings
from .models import CartLine, DeliverySelection


@dataclass(frozen=True)
class PricingPolicy:
    """Fee schedule and the single region where rush delivery operates."""

    vat_rate: Decimal = Decimal("0.10")
    regular_fee: int = 30000
    rush_fee: int = 50000
    rush_province: str = "Hà Nội"

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PricingPolicy":
        settings = settings or get_settings()
        return cls(
            vat_rate=settings.vat_rate,
            regular_fee=settings.regular_fee,
            rush_fee=settings.rush_fee,
            rush_province=settings.rush_province,
        )


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: int
    vat: int
    delivery_fee: int
    rush_applied: bool = False

    @property
    def total(self) -> int:
        return self.subtotal + self.vat + self.delivery_fee

    def to_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "vat": self.vat,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
            "rush_applied": self.rush_applied,
        }


def _normalize_province(value: str) -> str:
    return " ".join(value.split()).casefold()


def is_rush_region(province: str | None, policy: PricingPolicy) -> bool:
    """True if rush delivery may be requested for this province."""
    if not province:
        return False
    return _normalize_province(province) == _normalize_province(policy.rush_province)


def calculate_subtotal(lines: Iterable[CartLine]) -> int:
    return sum(line.product.price * max(line.quantity, 0) for line in lines)


def calculate_vat(subtotal: int, policy: PricingPolicy) -> int:
    """VAT on the subtotal, rounded half-up to a whole currency unit."""
    vat = Decimal(max(subtotal, 0)) * policy.vat_rate
    return int(vat.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def partition_lines(
    lines: Iterable[CartLine],
) -> tuple[list[CartLine], list[CartLine]]:
    """Split lines into (rush-eligible, regular), ignoring empty lines."""
    rush: list[CartLine] = []
    regular: list[CartLine] = []
    for line in lines:
        if line.quantity <= 0:
            continue
        (rush if line.product.rush_eligible else regular).append(line)
    return rush, regular


def calculate_delivery_fee(
    lines: Sequence[CartLine], rush_requested: bool, policy: PricingPolicy
) -> int:
    """
    Delivery fee for a cart.

    Without rush, or when no line qualifies for rush, one regular parcel is
    charged. With rush, rush-eligible lines form a rush parcel and any
    remaining lines a regular parcel.
    """
    rush, regular = partition_lines(lines)
    if not rush and not regular:
        return 0
    if not rush_requested or not rush:
        return policy.regular_fee
    if regular:
        return policy.rush_fee + policy.regular_fee
    return policy.rush_fee


def rush_applies(
    lines: Sequence[CartLine], selection: DeliverySelection, policy: PricingPolicy
) -> bool:
    """True if the selection's rush request actually produces a rush parcel."""
    if not selection.rush_requested or not is_rush_region(selection.province, policy):
        return False
    rush, _ = partition_lines(lines)
    return bool(rush)


def calculate_pricing(
    lines: Sequence[CartLine],
    selection: DeliverySelection,
    policy: PricingPolicy | None = None,
) -> PriceBreakdown:
    """Subtotal, VAT, delivery fee and total for a cart and delivery selection."""
    policy = policy or PricingPolicy.from_settings()
    subtotal = calculate_subtotal(lines)
    rush = selection.rush_requested and is_rush_region(selection.province, policy)
    return PriceBreakdown(
        subtotal=subtotal,
        vat=calculate_vat(subtotal, policy),
        delivery_fee=calculate_delivery_fee(lines, rush, policy),
        rush_applied=rush_applies(lines, selection, policy),
    )
