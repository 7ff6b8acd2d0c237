"""
models.py — Data Models of the Storefront Client

This module defines the data structures exchanged with the storefront backend
and held in the client-side stores. Pydantic models give type safety and
validation of both server responses and user input. Field names follow the
backend's camelCase wire format.

Models:
    - LineKey: Identity of a cart line (productId, size, color).
    - CartLineItem: One line of a cart, with a display snapshot.
    - CartSummary: Subtotal, shipping, tax and total of a cart.
    - User / AuthSession: The authenticated identity and its credentials.
    - Address / AddressInput: Address book records and the creation form.
    - Order / OrderLine: Server-owned orders, read and created only.
    - PaymentConfirmation: Outcome of the processor's client-side confirmation.
    - Navigation: A routing instruction handed back to the UI layer.
"""

from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class LineKey(BaseModel):
    """
    Identity key of a cart line. Two lines with equal keys are the same line.

    Empty strings for size/color are treated as "no variant" so that
    ``LineKey(productId="p1", size="")`` equals ``LineKey(productId="p1")``.
    """
    model_config = ConfigDict(frozen=True)

    productId: str
    size: Optional[str] = None
    color: Optional[str] = None

    @field_validator("size", "color", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def __str__(self):
        return "/".join([self.productId, self.size or "-", self.color or "-"])


class CartLineItem(BaseModel):
    """
    Represents a purchasable product instance in a cart.

    Attributes:
        productId (str): Stable reference to the catalog entry.
        name (str): Product name captured when the line was added.
        unitPrice (Decimal): Unit price in currency units.
        imageRefs (List[str]): Ordered image URLs.
        availableStock (int): Last-known stock, used by the UI to bound quantity.
        size (str | None), color (str | None): Variant selectors, part of the line identity.
        quantity (int): Number of units, at least one.
        slug (str | None): Catalog slug, for linking back to the product page.
    """
    productId: str
    name: str = ""
    unitPrice: Decimal = Decimal("0")
    imageRefs: List[str] = Field(default_factory=list)
    availableStock: int = Field(0, ge=0)
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int = Field(1, ge=1)
    slug: Optional[str] = None

    @field_validator("size", "color", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def key(self) -> LineKey:
        return LineKey(productId=self.productId, size=self.size, color=self.color)

    @property
    def line_total(self) -> Decimal:
        return self.unitPrice * self.quantity

    @property
    def exceeds_stock(self) -> bool:
        return self.quantity > self.availableStock

    @classmethod
    def from_backend(cls, entry: dict) -> "CartLineItem":
        """Maps one entry of ``GET /cart`` (``{id, product, quantity, size, color}``) to a line."""
        product = entry.get("product") or {}
        return cls(
            productId=str(product["id"]),
            name=product.get("name", ""),
            unitPrice=Decimal(str(product.get("price", 0))),
            imageRefs=product.get("images") or [],
            availableStock=product.get("stock") or 0,
            size=entry.get("size"),
            color=entry.get("color"),
            quantity=entry["quantity"],
            slug=product.get("slug"),
        )


class CartSummary(BaseModel):
    subtotal: Decimal
    shippingCost: Decimal
    tax: Decimal
    total: Decimal
    itemCount: int


class User(BaseModel):
    """
    The authenticated user. The backend sends more profile fields than the
    client relies on (firstName, lastName, phone, ...); they are kept as extras.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    email: str
    role: Literal["USER", "ADMIN"] = "USER"

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)


class AuthSession(BaseModel):
    user: User
    accessToken: str
    refreshToken: Optional[str] = None


class LoginForm(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class RegisterForm(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class AddressInput(BaseModel):
    """Address form as submitted to ``POST /users/addresses``."""
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zipCode: str = Field(..., min_length=3)
    country: str = "India"
    phone: str = Field(..., min_length=7)
    isDefault: bool = False


class Address(AddressInput):
    """A saved address owned by the current user."""
    model_config = ConfigDict(extra="allow")

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class OrderLine(BaseModel):
    """Line submitted with ``POST /orders`` and echoed back in the order snapshot."""
    model_config = ConfigDict(extra="allow")

    productId: str
    quantity: int = Field(..., gt=0)
    size: Optional[str] = None
    color: Optional[str] = None


class Order(BaseModel):
    """
    A server-owned order. Totals and statuses are computed by the backend; the
    client only creates orders and requests the cancel transition.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    items: List[OrderLine] = Field(default_factory=list)
    shippingAddress: Optional[dict] = None
    paymentMethod: str = "CARD"
    subtotal: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    orderStatus: OrderStatus = OrderStatus.PENDING
    paymentStatus: PaymentStatus = PaymentStatus.PENDING

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value):
        return str(value)

    @property
    def is_cancellable(self) -> bool:
        return self.orderStatus in (OrderStatus.PENDING, OrderStatus.PROCESSING)


class PaymentConfirmation(BaseModel):
    """
    Result of the processor's client-side confirmation call.

    Attributes:
        paymentIntentId (str): Processor id of the payment intent.
        status (str): 'succeeded', 'requires_action', 'processing', ...
        redirectUrl (str | None): Off-site authentication URL when status is 'requires_action'.
    """
    paymentIntentId: str
    status: str
    redirectUrl: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def requires_redirect(self) -> bool:
        return self.status == "requires_action" and bool(self.redirectUrl)


class Navigation(BaseModel):
    path: str
    state: dict = Field(default_factory=dict)
