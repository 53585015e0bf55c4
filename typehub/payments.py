"""
Payment settlement.

Order creation prices the selected products as a bundle, opens a Razorpay
order and remembers which products it unlocks. Verification checks the
checkout signature, consumes the pending order exactly once and grants a
30-day subscription per product.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import razorpay
from razorpay.errors import SignatureVerificationError
from sqlalchemy.orm import Session

from typehub import config
from typehub.entitlements import bundle_price, get_product
from typehub.errors import InvalidInput, VerificationFailed
from typehub.models.payments import PaymentConfirmation
from typehub.models.schema import Subscription, User
from typehub.orders import OrderStore, PendingOrderData
from typehub.utils import format_amount_display, make_receipt, utcnow

logger = logging.getLogger(__name__)

SUBSCRIPTION_VALIDITY_DAYS = 30
ADMIN_GRANT_ORDER_ID = "admin-grant"


class PaymentGateway:
    """Thin wrapper over the Razorpay client"""

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None):
        self.key_id = key_id or config.RAZORPAY_KEY_ID
        self.client = razorpay.Client(auth=(self.key_id, key_secret or config.RAZORPAY_KEY_SECRET))

    def create_order(self, amount_paise: int, receipt: str) -> str:
        order = self.client.order.create({
            "amount": amount_paise,
            "currency": config.CURRENCY,
            "receipt": receipt,
        })
        return order["id"]


def get_payment_gateway() -> PaymentGateway:
    return PaymentGateway()


def verify_signature(order_id: str, payment_id: str, signature: str) -> bool:
    """HMAC-SHA256 of "order_id|payment_id" under the key secret must match"""
    client = razorpay.Client(auth=(config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET))
    try:
        client.utility.verify_payment_signature({
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        })
    except SignatureVerificationError:
        return False
    return True


def create_order(user: User, product_ids: List[str], gateway: PaymentGateway, store: OrderStore) -> Dict:
    product_ids = list(dict.fromkeys(product_ids))
    if not product_ids:
        raise InvalidInput("productIds array is required and must not be empty.")

    invalid = [pid for pid in product_ids if get_product(pid) is None]
    if invalid:
        raise InvalidInput(f"Invalid productIds: {', '.join(invalid)}.")

    amount_paise = bundle_price(product_ids)
    if amount_paise <= 0:
        raise InvalidInput("Could not compute order amount.")

    order_id = gateway.create_order(amount_paise, make_receipt(user.id))
    store.put(PendingOrderData(
        order_id=order_id,
        user_id=user.id,
        product_ids=product_ids,
        amount_paise=amount_paise,
    ))
    logger.info(f"Order {order_id} created for user {user.id}: {product_ids} ({format_amount_display(amount_paise)})")

    return {
        "orderId": order_id,
        "amount": amount_paise,
        "currency": config.CURRENCY,
        "keyId": gateway.key_id,
    }


def grant_subscription(
    db: Session,
    user_id: str,
    product_id: str,
    order_id: str,
    payment_id: Optional[str],
    valid_until: Optional[datetime],
) -> bool:
    """Add a subscription unless the user already holds one that lasts at least as long.

    Shorter or expired rows for the same product are replaced. Returns True
    when a row was created.
    """
    existing = (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id, Subscription.product_id == product_id)
        .all()
    )
    for sub in existing:
        if sub.valid_until is None:
            return False
        if valid_until is not None and sub.valid_until >= valid_until:
            return False
    for sub in existing:
        db.delete(sub)

    db.add(Subscription(
        user_id=user_id,
        product_id=product_id,
        order_id=order_id,
        payment_id=payment_id,
        valid_until=valid_until,
    ))
    return True


def settle(
    db: Session,
    user: User,
    confirmation: PaymentConfirmation,
    store: OrderStore,
    now: Optional[datetime] = None,
) -> List[str]:
    """Verify a checkout confirmation and grant what the order was for.

    Returns the granted product ids. Replays and unknown orders raise
    VerificationFailed without touching any subscription.
    """
    order_id = confirmation.razorpay_order_id
    payment_id = confirmation.razorpay_payment_id
    if not order_id or not payment_id or not confirmation.razorpay_signature:
        raise VerificationFailed("Missing payment details.")

    if not verify_signature(order_id, payment_id, confirmation.razorpay_signature):
        logger.warning(f"Signature mismatch for order {order_id} (user {user.id})")
        raise VerificationFailed()

    pending = store.take_and_remove(order_id)
    if pending is None or not pending.product_ids:
        logger.warning(f"Order {order_id} not found or already processed (user {user.id})")
        raise VerificationFailed("Order not found or already processed.")
    if pending.user_id != user.id:
        # hand the order back so the buyer can still settle it
        store.put(pending)
        logger.warning(f"Order {order_id} belongs to {pending.user_id}, verified by {user.id}")
        raise VerificationFailed("Order not found or already processed.")

    now = now or utcnow()
    valid_until = now + timedelta(days=SUBSCRIPTION_VALIDITY_DAYS)
    for product_id in pending.product_ids:
        grant_subscription(db, user.id, product_id, order_id, payment_id, valid_until)

    # Keep the legacy flag in sync for older clients
    user.is_paid = True
    db.commit()
    db.refresh(user)

    logger.info(f"Order {order_id} settled for user {user.id}: {pending.product_ids}")
    return list(pending.product_ids)
