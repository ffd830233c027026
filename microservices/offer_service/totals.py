"""
Offer totals

Money is held in integer minor units. Prices are tax inclusive: the gross
total is the sum of discounted item prices, and the net/tax split is derived
from it with a single VAT rate.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol, Union

from .models import ItemTotals, OfferTotals

DEFAULT_VAT_RATE = 19


class PricedItem(Protocol):
    item_id: str
    quantity: int
    unit_price: int
    discount_percentage: Decimal
    discount_amount: int


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_item_totals(item: PricedItem) -> ItemTotals:
    """Gross, discount and net of one item.

    A positive discount percentage takes precedence over a fixed discount
    amount. The discount never exceeds the gross price.
    """
    gross = item.unit_price * item.quantity
    percentage = Decimal(str(item.discount_percentage or 0))

    if percentage > 0:
        discount = _round(Decimal(gross) * percentage / Decimal(100))
    else:
        discount = item.discount_amount or 0

    discount = min(discount, gross)
    return ItemTotals(item_id=item.item_id, gross=gross, discount=discount, net=gross - discount)


def calculate_offer_totals(
    items: Iterable[PricedItem],
    vat_rate: Union[int, Decimal] = DEFAULT_VAT_RATE,
) -> OfferTotals:
    """
    Recompute the money fields of an offer from its items.

    Args:
        items: Line items (product and service alike)
        vat_rate: VAT percentage contained in the gross prices

    Returns:
        OfferTotals with subtotal (net), tax_amount, discount_amount and
        total_amount (gross)
    """
    item_totals = [calculate_item_totals(item) for item in items]

    gross_total = sum(t.net for t in item_totals)
    discount_total = sum(t.discount for t in item_totals)
    net_total = _round(Decimal(gross_total) * Decimal(100) / (Decimal(100) + Decimal(vat_rate)))

    return OfferTotals(
        subtotal=net_total,
        tax_amount=gross_total - net_total,
        discount_amount=discount_total,
        total_amount=gross_total,
        items=item_totals,
    )
