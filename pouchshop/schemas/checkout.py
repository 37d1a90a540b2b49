"""
Pydantic schemas for the kustom-checkout function
"""

from typing import Annotated, Any, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter

CHECKOUT_OPERATIONS = ("create_checkout", "mark_paid", "get_order")


class CustomerInput(BaseModel):
    """Shopper details collected by the storefront checkout form"""
    firstName: Optional[str] = ""
    lastName: Optional[str] = ""
    email: Optional[str] = None
    phone: Optional[str] = ""
    address: Optional[str] = ""
    city: Optional[str] = ""
    postalCode: Optional[str] = ""
    country: Optional[str] = ""


class CartItemInput(BaseModel):
    """Cart line as sent by the browser; sanitized by the checkout service"""
    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    packSize: Optional[float] = None
    price: Optional[float] = None
    quantity: Optional[float] = None
    image: Optional[str] = None


class CreateCheckoutRequest(BaseModel):
    operation: Literal["create_checkout"]
    customer: Optional[CustomerInput] = None
    cart: List[CartItemInput] = Field(default_factory=list)
    locale: Optional[str] = "it"
    currency: str = Field("EUR", min_length=3, max_length=3)


class MarkPaidRequest(BaseModel):
    operation: Literal["mark_paid"]
    order_id: Optional[int] = None
    kustom_order_id: Optional[str] = None
    kustom_order_token: Optional[str] = None


class GetOrderRequest(BaseModel):
    operation: Literal["get_order"]
    order_id: Optional[int] = None


CheckoutOperation = Annotated[
    Union[CreateCheckoutRequest, MarkPaidRequest, GetOrderRequest],
    Field(discriminator="operation"),
]

checkout_operation_adapter = TypeAdapter(CheckoutOperation)


class SanitizedCartItem(BaseModel):
    """Cart line stored on the order"""
    id: str
    name: str
    packSize: int
    price: float
    quantity: int
    image: Optional[str] = None


class CreateCheckoutResult(BaseModel):
    order_id: int
    order_number: str
    kustom_order_id: str
    kustom_order_token: str = ""
    html_snippet: str
    checkout_url: str = ""
    status: str = "pending"


class MarkPaidResult(BaseModel):
    order_id: int
    order_number: str
    status: str
    payment_confirmed: bool
    kustom_status: str
    confirmation_data: Any = None
