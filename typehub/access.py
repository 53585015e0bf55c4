"""
Access evaluation for paragraphs.

Paragraphs carry one of three access types (free, free-after-login, paid).
Rows written before ``access_type`` existed fall back to the legacy
``is_free`` flag. Paid access comes from a subscription to the product that
covers the paragraph's (language, category).

Legacy rule: users with the global ``is_paid`` flag set and zero currently
active subscriptions may read every paid paragraph. Once they hold any active
subscription, the flag on its own no longer opens other products.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from typehub.entitlements import ALL_PRODUCT_IDS, product_for
from typehub.errors import Forbidden
from typehub.models.enums import AccessType, PriceTier
from typehub.models.schema import Paragraph, Subscription, User
from typehub.utils import utcnow

logger = logging.getLogger(__name__)

SIGN_IN_MESSAGE = "Sign in to access this passage."
UPGRADE_MESSAGE = "Upgrade to access this passage."


def effective_access_type(paragraph) -> AccessType:
    if paragraph.access_type:
        return AccessType(paragraph.access_type)
    return AccessType.FREE if paragraph.is_free is not False else AccessType.PAID


def is_active(subscription: Subscription, now: datetime) -> bool:
    return subscription.valid_until is None or subscription.valid_until > now


def _active_filter(now: datetime):
    return or_(Subscription.valid_until.is_(None), Subscription.valid_until > now)


def count_active_subscriptions(db: Session, user_id: str, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id, _active_filter(now))
        .count()
    )


def can_access(db: Session, user: Optional[User], paragraph, now: Optional[datetime] = None) -> bool:
    access_type = effective_access_type(paragraph)
    if access_type == AccessType.FREE:
        return True
    if access_type == AccessType.FREE_AFTER_LOGIN:
        return user is not None
    if user is None:
        return False

    product_id = product_for(paragraph.language, paragraph.category)
    if not product_id:
        return True

    now = now or utcnow()
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.user_id == user.id, Subscription.product_id == product_id)
        .all()
    )
    if subscriptions:
        return any(is_active(sub, now) for sub in subscriptions)

    if user.is_paid:
        return count_active_subscriptions(db, user.id, now) == 0
    return False


def check_access(db: Session, user: Optional[User], paragraph):
    """Raise Forbidden with a reader-facing reason when access is denied"""
    if can_access(db, user, paragraph):
        return
    logger.debug(f"Access denied to paragraph {paragraph.id} for user {user.id if user else 'anonymous'}")
    if user is None:
        raise Forbidden(SIGN_IN_MESSAGE)
    raise Forbidden(UPGRADE_MESSAGE)


def active_product_ids(db: Session, user: User, now: Optional[datetime] = None) -> List[str]:
    """Products the user can currently use, with the legacy paid-flag fallback"""
    now = now or utcnow()
    rows = (
        db.query(Subscription.product_id)
        .filter(Subscription.user_id == user.id, _active_filter(now))
        .all()
    )
    product_ids = sorted({row.product_id for row in rows})
    if user.is_paid and not product_ids:
        return list(ALL_PRODUCT_IDS)
    return product_ids


def paragraph_price_filter(price: PriceTier):
    """SQL condition on the effective access type, or None for 'all'"""
    effective = func.coalesce(
        Paragraph.access_type,
        case((Paragraph.is_free.is_(False), AccessType.PAID.value), else_=AccessType.FREE.value),
    )
    if price == PriceTier.PAID:
        return effective == AccessType.PAID.value
    if price == PriceTier.FREE:
        return effective != AccessType.PAID.value
    return None
