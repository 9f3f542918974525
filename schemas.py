"""
Database Schemas

MongoDB collection schemas and request bodies, defined with Pydantic models.

Each stored model maps to a collection named after it in lowercase:
- Order -> "order" collection
- Product -> "product" collection
- Shop -> "shop" collection
- Payment -> "payment" collection

Stored documents use snake_case keys. Request bodies also accept the camelCase
keys sent by the storefront client (shippingAddress, totalPrice, shopId, ...).
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class OrderStatus(str, Enum):
    PROCESSING = "Processing"
    TRANSFERRED = "Transferred to delivery partner"
    SHIPPING = "Shipping"
    RECEIVED = "Received"
    ON_THE_WAY = "On the way"
    DELIVERED = "Delivered"
    PROCESSING_REFUND = "Processing refund"
    REFUND_SUCCESS = "Refund Success"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class InventoryState(str, Enum):
    """Where an order stands in stock accounting. Moves reserved -> fulfilled -> restocked only."""
    RESERVED = "reserved"
    FULFILLED = "fulfilled"
    RESTOCKED = "restocked"


class ClientModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CartItem(ClientModel):
    product_id: str = Field(..., description="Product ObjectId as string")
    shop_id: str = Field(..., description="Shop that sells this product")
    name: Optional[str] = Field(None, description="Snapshot of product name")
    qty: int = Field(..., ge=1, description="Quantity ordered")
    price: float = Field(..., ge=0, description="Unit price at purchase time")
    is_reviewed: bool = Field(False, description="Whether the buyer reviewed this line")


class PaymentInfo(ClientModel):
    id: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    cart: List[CartItem]
    shipping_address: Dict[str, Any]
    user: Dict[str, Any]
    total_price: float = Field(..., ge=0)
    payment_info: PaymentInfo = Field(default_factory=PaymentInfo)
    status: OrderStatus = Field(OrderStatus.PROCESSING)
    inventory_state: InventoryState = Field(InventoryState.RESERVED)
    balance_credited: bool = Field(False, description="Shop was credited for this order")


class ProductImage(BaseModel):
    public_id: str
    url: str


class Review(BaseModel):
    user: str = Field(..., description="Reviewer user id")
    rating: float = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    product_id: str


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    category: Optional[str] = Field(None, description="Product category")
    tags: Optional[str] = None
    original_price: Optional[float] = Field(None, ge=0)
    discount_price: float = Field(..., ge=0, description="Selling price")
    stock: int = Field(0, ge=0, description="Units in stock")
    sold_out: int = Field(0, ge=0, description="Units sold so far")
    images: List[ProductImage] = Field(default_factory=list)
    reviews: List[Review] = Field(default_factory=list)
    ratings: float = Field(0, ge=0, le=5, description="Mean review rating")
    shop_id: str
    shop: Optional[Dict[str, Any]] = None


class Shop(BaseModel):
    name: str
    email: Optional[str] = None
    available_balance: float = 0


class Payment(BaseModel):
    """
    Payments collection schema
    Collection name: "payment"

    checkout_request_id is the gateway's correlation key for callbacks.
    """
    merchant_request_id: Optional[str] = None
    checkout_request_id: str
    amount: float
    phone_number: str
    account_reference: str
    order_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    result_code: Optional[int] = None
    result_desc: Optional[str] = None
    receipt_number: Optional[str] = None


# Request bodies

class CreateOrderRequest(ClientModel):
    cart: List[CartItem]
    shipping_address: Dict[str, Any]
    user: Dict[str, Any]
    total_price: float = Field(..., ge=0)
    payment_info: PaymentInfo = Field(default_factory=PaymentInfo)


class StatusRequest(ClientModel):
    status: OrderStatus


class CreateProductRequest(ClientModel):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[str] = None
    original_price: Optional[float] = Field(None, ge=0)
    discount_price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    shop_id: str
    images: Union[str, List[str]] = Field(default_factory=list)


class ReviewRequest(ClientModel):
    rating: float = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    product_id: str
    order_id: str

    @field_validator("rating", mode="before")
    @classmethod
    def rating_is_numeric(cls, v):
        if isinstance(v, bool):
            raise ValueError("Rating must be a number between 1 and 5")
        return v


class PaymentRequest(ClientModel):
    amount: float = Field(..., gt=0)
    phone_number: str
    account_number: str
    order_id: Optional[str] = None
