import logging
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, is_object_id, now, to_object_id
from mpesa import MpesaClient, parse_stk_callback
from schemas import Payment, PaymentRequest, PaymentStatus

logger = logging.getLogger(__name__)


def initiate_payment(database: Database, gateway: MpesaClient, payload: PaymentRequest) -> Optional[dict]:
    """Start an STK push and record it as a pending payment. Returns the gateway response or None."""
    response = gateway.stk_push(payload.amount, payload.phone_number, payload.account_number)
    if not response:
        return None

    checkout_request_id = response.get("CheckoutRequestID")
    if checkout_request_id:
        payment = Payment(
            merchant_request_id=response.get("MerchantRequestID"),
            checkout_request_id=checkout_request_id,
            amount=payload.amount,
            phone_number=payload.phone_number,
            account_reference=payload.account_number,
            order_id=payload.order_id,
        )
        create_document(database, "payment", payment)
    else:
        logger.warning("Gateway accepted payment without a CheckoutRequestID: %s", response)
    return response


def reconcile_callback(database: Database, body: Dict[str, Any]) -> Optional[dict]:
    """
    Apply a gateway callback to its pending payment.

    Only a payment still Pending is updated, so repeated callbacks are no-ops.
    Returns the updated payment, or None when nothing changed.
    """
    logger.info("Payment Callback: %s", body)
    callback = parse_stk_callback(body)
    if callback is None:
        logger.warning("Ignoring callback without an STK payload")
        return None

    status = PaymentStatus.SUCCEEDED if callback["result_code"] == 0 else PaymentStatus.FAILED
    receipt = callback["metadata"].get("MpesaReceiptNumber")
    payment = database["payment"].find_one_and_update(
        {"checkout_request_id": callback["checkout_request_id"], "status": PaymentStatus.PENDING.value},
        {
            "$set": {
                "status": status.value,
                "result_code": callback["result_code"],
                "result_desc": callback["result_desc"],
                "receipt_number": str(receipt) if receipt is not None else None,
                "updated_at": now(),
            }
        },
        return_document=ReturnDocument.AFTER,
    )
    if payment is None:
        logger.info("No pending payment for CheckoutRequestID %s", callback["checkout_request_id"])
        return None

    order_id = payment.get("order_id")
    if status == PaymentStatus.SUCCEEDED and is_object_id(order_id):
        database["order"].update_one(
            {"_id": to_object_id(order_id)},
            {"$set": {"payment_info.status": PaymentStatus.SUCCEEDED.value, "updated_at": now()}},
        )
    logger.info("Payment %s marked %s", callback["checkout_request_id"], status.value)
    return payment
