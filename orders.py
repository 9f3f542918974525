"""
Order workflow

Checkout fan-out by shop, seller status transitions, refunds and the
inventory/balance side effects they carry.

Multi-record changes run as a small saga: each applied step registers a
compensation, and a failure in a later step undoes the earlier ones in
reverse order before the error reaches the caller.
"""

import logging
from typing import Callable, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
from database import create_document, get_documents, now, to_object_id, to_str_id
from errors import BadRequestError, ForbiddenError, InventoryAdjustmentError, NotFoundError, UpstreamError
from mailer import Mailer, MailError, order_confirmation_email, order_status_email
from schemas import CartItem, CreateOrderRequest, InventoryState, Order, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

# stock sign applied per unit; sold_out moves the opposite way
FULFIL = -1
RESTOCK = 1

# the only labels a buyer may set through a refund request
REFUND_REQUEST_STATUSES = (OrderStatus.PROCESSING_REFUND,)


def partition_cart(cart: List[CartItem]) -> Dict[str, List[CartItem]]:
    """Group cart lines by shop, keeping shops in first-seen order."""
    by_shop: Dict[str, List[CartItem]] = {}
    for item in cart:
        by_shop.setdefault(item.shop_id, []).append(item)
    return by_shop


def _send(mailer: Mailer, to: Optional[str], message) -> None:
    subject, text, html = message
    try:
        mailer.send(to, subject, text, html)
    except MailError as exc:
        logger.error("Failed to send %r to %s: %s", subject, to, exc)
        raise UpstreamError(str(exc))


def create_orders(database: Database, mailer: Mailer, payload: CreateOrderRequest) -> List[dict]:
    if not payload.cart:
        raise BadRequestError("Cart is empty")

    # every order keeps the checkout-wide address, user, total and payment info
    created = []
    try:
        for shop_id, items in partition_cart(payload.cart).items():
            order = Order(
                cart=items,
                shipping_address=payload.shipping_address,
                user=payload.user,
                total_price=payload.total_price,
                payment_info=payload.payment_info,
            )
            created.append(create_document(database, "order", order))
    except PyMongoError as exc:
        logger.error("Order creation stopped after %d orders: %s", len(created), exc)
        raise UpstreamError(str(exc))

    user = payload.user
    _send(
        mailer,
        user.get("email"),
        order_confirmation_email(user.get("name", ""), str(created[0]["_id"]), payload.total_price),
    )
    return [to_str_id(o) for o in created]


def get_order(database: Database, order_id: str) -> dict:
    try:
        order = database["order"].find_one({"_id": to_object_id(order_id)})
    except ValueError:
        order = None
    if not order:
        raise BadRequestError("Order not found with this id")
    return order


def list_user_orders(database: Database, user_id: str) -> List[dict]:
    found = get_documents(database, "order", {"$or": [{"user._id": user_id}, {"user.id": user_id}]}, sort=[("created_at", -1)])
    return [to_str_id(o) for o in found]


def list_shop_orders(database: Database, shop_id: str) -> List[dict]:
    found = get_documents(database, "order", {"cart.shop_id": shop_id}, sort=[("created_at", -1)])
    return [to_str_id(o) for o in found]


def list_all_orders(database: Database) -> List[dict]:
    found = get_documents(database, "order", sort=[("delivered_at", -1), ("created_at", -1)])
    return [to_str_id(o) for o in found]


def _inc_product(database: Database, product_id: str, qty: int, sign: int):
    return database["product"].update_one(
        {"_id": to_object_id(product_id)},
        {"$inc": {"stock": sign * qty, "sold_out": -sign * qty}},
    )


def revert_inventory(database: Database, applied: List[dict], sign: int) -> None:
    for line in reversed(applied):
        try:
            _inc_product(database, line["product_id"], line["qty"], -sign)
        except PyMongoError:
            logger.exception("Could not revert inventory for product %s (qty %s)", line["product_id"], line["qty"])


def adjust_inventory(database: Database, cart: List[dict], sign: int) -> List[dict]:
    """
    Apply the stock/sold_out change for every cart line and collect the outcome.

    All lines are attempted. If any line fails, the lines that were applied are
    reverted and InventoryAdjustmentError lists the failed lines.
    """
    applied, failures = [], []
    for line in cart:
        product_id = line.get("product_id")
        qty = int(line.get("qty") or 0)
        try:
            result = _inc_product(database, product_id, qty, sign)
        except (ValueError, PyMongoError) as exc:
            failures.append({"product_id": product_id, "qty": qty, "error": str(exc)})
            continue
        if result.matched_count == 0:
            failures.append({"product_id": product_id, "qty": qty, "error": "Product not found"})
            continue
        applied.append({"product_id": product_id, "qty": qty})

    if failures:
        logger.warning("Inventory adjustment failed for %d of %d lines, reverting", len(failures), len(cart))
        revert_inventory(database, applied, sign)
        raise InventoryAdjustmentError("Inventory could not be updated for every item", failures)
    return applied


def credit_shop(database: Database, shop_id: str, amount: float) -> float:
    """Credit a shop on delivery. Returns the balance held before the credit."""
    if config.SHOP_BALANCE_CREDIT_MODE == "increment":
        update = {"$inc": {"available_balance": amount}}
    else:
        update = {"$set": {"available_balance": amount}}
    try:
        before = database["shop"].find_one_and_update(
            {"_id": to_object_id(shop_id)}, update, return_document=ReturnDocument.BEFORE
        )
    except ValueError:
        before = None
    if before is None:
        raise NotFoundError("Shop not found")
    return before.get("available_balance", 0)


def restore_shop_balance(database: Database, shop_id: str, balance: float) -> None:
    try:
        database["shop"].update_one({"_id": to_object_id(shop_id)}, {"$set": {"available_balance": balance}})
    except PyMongoError:
        logger.exception("Could not restore balance %s for shop %s", balance, shop_id)


def _compensate(steps: List[Callable[[], None]]) -> None:
    for undo in reversed(steps):
        undo()


def claim_inventory_state(database: Database, order_id, from_states: List[InventoryState], to_state: InventoryState) -> bool:
    """
    Move the order's inventory state forward if it is in one of from_states.

    The conditional update is the guard: only the request whose update matches
    may touch stock. Orders stored without a state count as reserved.
    """
    allowed = [s.value for s in from_states]
    if InventoryState.RESERVED in from_states:
        allowed.append(None)
    result = database["order"].update_one(
        {"_id": order_id, "inventory_state": {"$in": allowed}},
        {"$set": {"inventory_state": to_state.value}},
    )
    return result.modified_count == 1


def release_inventory_state(database: Database, order_id, state: InventoryState) -> None:
    try:
        database["order"].update_one({"_id": order_id}, {"$set": {"inventory_state": state.value}})
    except PyMongoError:
        logger.exception("Could not reset inventory state of order %s to %s", order_id, state.value)


def claim_balance_credit(database: Database, order_id) -> bool:
    result = database["order"].update_one(
        {"_id": order_id, "balance_credited": {"$ne": True}},
        {"$set": {"balance_credited": True}},
    )
    return result.modified_count == 1


def release_balance_credit(database: Database, order_id) -> None:
    try:
        database["order"].update_one({"_id": order_id}, {"$set": {"balance_credited": False}})
    except PyMongoError:
        logger.exception("Could not reset balance credit flag of order %s", order_id)


def _move_stock(database: Database, order: dict, from_state: InventoryState, to_state: InventoryState,
                sign: int, compensations: List[Callable[[], None]]) -> None:
    if not claim_inventory_state(database, order["_id"], [from_state], to_state):
        logger.info("Order %s is not %s, stock left unchanged", order["_id"], from_state.value)
        return
    compensations.append(lambda: release_inventory_state(database, order["_id"], from_state))
    applied = adjust_inventory(database, order["cart"], sign)
    compensations.append(lambda: revert_inventory(database, applied, sign))


def update_order_status(database: Database, mailer: Mailer, order_id: str, status: OrderStatus, seller: dict) -> dict:
    order = get_order(database, order_id)
    shop_id = seller["id"]
    if not any(line.get("shop_id") == shop_id for line in order.get("cart", [])):
        raise ForbiddenError("This order does not belong to your shop")

    compensations: List[Callable[[], None]] = []
    try:
        if status == OrderStatus.TRANSFERRED:
            _move_stock(database, order, InventoryState.RESERVED, InventoryState.FULFILLED, FULFIL, compensations)

        changes = {"status": status.value, "updated_at": now()}
        if status == OrderStatus.DELIVERED and claim_balance_credit(database, order["_id"]):
            compensations.append(lambda: release_balance_credit(database, order["_id"]))
            total = float(order.get("total_price", 0))
            service_charge = total * config.SERVICE_CHARGE_RATE
            previous = credit_shop(database, shop_id, total - service_charge)
            compensations.append(lambda: restore_shop_balance(database, shop_id, previous))
            changes["delivered_at"] = now()
            changes["payment_info.status"] = PaymentStatus.SUCCEEDED.value

        database["order"].update_one({"_id": order["_id"]}, {"$set": changes})
    except PyMongoError as exc:
        _compensate(compensations)
        raise UpstreamError(str(exc))
    except Exception:
        _compensate(compensations)
        raise

    updated = database["order"].find_one({"_id": order["_id"]})
    user = updated.get("user") or {}
    _send(
        mailer,
        user.get("email"),
        order_status_email(user.get("name", ""), str(updated["_id"]), status.value, updated.get("total_price")),
    )
    return to_str_id(updated)


def request_refund(database: Database, order_id: str, status: OrderStatus) -> dict:
    if status not in REFUND_REQUEST_STATUSES:
        raise BadRequestError(f"Refund requests can only set status to: {', '.join(s.value for s in REFUND_REQUEST_STATUSES)}")
    order = get_order(database, order_id)
    try:
        database["order"].update_one(
            {"_id": order["_id"]}, {"$set": {"status": status.value, "updated_at": now()}}
        )
    except PyMongoError as exc:
        raise UpstreamError(str(exc))
    order["status"] = status.value
    return to_str_id(order)


def approve_refund(database: Database, order_id: str, status: OrderStatus, seller: dict) -> dict:
    order = get_order(database, order_id)
    if not any(line.get("shop_id") == seller["id"] for line in order.get("cart", [])):
        raise ForbiddenError("This order does not belong to your shop")

    compensations: List[Callable[[], None]] = []
    try:
        # only stock that left with the delivery partner is put back
        if status == OrderStatus.REFUND_SUCCESS:
            _move_stock(database, order, InventoryState.FULFILLED, InventoryState.RESTOCKED, RESTOCK, compensations)
        database["order"].update_one(
            {"_id": order["_id"]}, {"$set": {"status": status.value, "updated_at": now()}}
        )
    except PyMongoError as exc:
        _compensate(compensations)
        raise UpstreamError(str(exc))
    except Exception:
        _compensate(compensations)
        raise

    order["status"] = status.value
    return to_str_id(order)
