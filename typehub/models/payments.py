from pydantic import BaseModel, Field
from typing import List, Optional

from typehub.models.auth import CamelModel


class CreateOrderRequest(CamelModel):
    product_ids: List[str] = Field(default_factory=list)


class PaymentConfirmation(BaseModel):
    """Fields exactly as returned by the Razorpay checkout widget"""
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
