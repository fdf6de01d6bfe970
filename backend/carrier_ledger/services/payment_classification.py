"""Cash-on-delivery classification shared by every settlement path."""

from decimal import Decimal

COD_PAYMENT_METHODS = frozenset(
    {
        "efectivo",
        "cash",
        "contra entrega",
        "contra_entrega",
        "cod",
        "",
    }
)


def is_order_cod(payment_method: str | None, prepaid_method: str | None = None) -> bool:
    """Return True when the carrier must collect cash for the order.

    A prepaid override (the order was paid up front, e.g. by transfer)
    always wins over the original payment method. Without an override the
    order is COD when the method is missing or one of the cash methods,
    compared case and whitespace insensitively.
    """
    if prepaid_method is not None and prepaid_method.strip():
        return False
    if payment_method is None:
        return True
    return payment_method.strip().lower() in COD_PAYMENT_METHODS


def amount_to_collect(
    payment_method: str | None, prepaid_method: str | None, total_price: Decimal
) -> Decimal:
    """Cash the courier should bring back for an order (0 for prepaid)."""
    if is_order_cod(payment_method, prepaid_method):
        return Decimal(str(total_price))
    return Decimal("0")
