"""
Order and booking lifecycles.

Orders move strictly forward one step at a time:

    pending -> processing -> shipped -> delivered

and may be cancelled from any state before delivery. ``delivered`` and
``cancelled`` are terminal. Bookings follow a shorter flow where payment
confirmation is the only automatic step.
"""
import re
from typing import Any, Dict, Iterable, List, Optional

ORDER_FLOW = ["pending", "processing", "shipped", "delivered"]
CANCELLABLE = {"pending", "processing", "shipped"}
TERMINAL = {"delivered", "cancelled"}

BOOKING_COMPLETABLE = {"pending_payment", "confirmed"}
BOOKING_TERMINAL = {"completed", "cancelled"}


class TransitionError(ValueError):
    pass


def next_status(status: str) -> Optional[str]:
    """The single state an admin may advance to, or None at the end of the flow."""
    if status not in ORDER_FLOW:
        return None
    idx = ORDER_FLOW.index(status)
    if idx + 1 >= len(ORDER_FLOW):
        return None
    return ORDER_FLOW[idx + 1]


def can_cancel(status: str) -> bool:
    return status in CANCELLABLE


def available_actions(order: Dict[str, Any]) -> List[Dict[str, str]]:
    status = order.get("status", "pending")
    actions = []
    nxt = next_status(status)
    if nxt:
        actions.append({"action": "advance", "to": nxt})
    if can_cancel(status):
        actions.append({"action": "cancel", "to": "cancelled"})
    return actions


def check_transition(current: str, target: str) -> None:
    if target == "cancelled":
        if not can_cancel(current):
            raise TransitionError(f"Cannot cancel an order that is {current}")
        return
    if next_status(current) != target:
        raise TransitionError(f"Cannot move order from {current} to {target}")


def display_status(order: Dict[str, Any]) -> str:
    # Customers see unpaid orders as awaiting payment whatever the fulfilment state
    if order.get("payment_status", "pending") == "pending" and order.get("status") != "cancelled":
        return "pending_payment"
    return order.get("status") or "pending"


def line_total(items: Iterable[Dict[str, Any]]) -> float:
    return round(sum(float(it["price"]) * int(it["quantity"]) for it in items), 2)


def total_mismatch(order: Dict[str, Any]) -> bool:
    """True when the stored total disagrees with its items (a data-integrity bug)."""
    expected = line_total(order.get("items", [])) + float(order.get("delivery_fee", 0) or 0)
    return abs(round(expected, 2) - float(order.get("total_amount", 0))) >= 0.005


def check_booking_transition(current: str, target: str) -> None:
    if current in BOOKING_TERMINAL:
        raise TransitionError(f"Booking is already {current}")
    if target == "confirmed" and current != "pending_payment":
        raise TransitionError(f"Cannot confirm payment for a booking that is {current}")
    if target == "completed" and current not in BOOKING_COMPLETABLE:
        raise TransitionError(f"Cannot complete a booking that is {current}")


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
