"""
Database Schemas for the Laundry Marketplace

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name
(Order -> "order", OrderForMerchant -> "orderformerchant").
"""
from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr

Role = Literal["user", "rider", "merchant"]
ShopType = Literal["coin", "full"]
PaymentMethod = Literal["cash", "wallet", "card", "truemoney"]
OrderStatus = Literal[
    "decision", "rider_coming", "at_shop", "in_progress",
    "out_for_delivery", "deliverying", "completed", "cancelled",
]
RiderStatus = Literal["online", "offline", "on_delivery"]


class User(BaseModel):
    email: EmailStr
    username: str
    display_name: str = ""
    phone: str = ""
    address: str = ""
    balance: float = Field(0.0, allow_inf_nan=False)
    role: Role = "user"
    google_id: Optional[str] = None
    google_sub: Optional[str] = None
    is_onboarded: bool = False
    lat: Optional[float] = None
    lon: Optional[float] = None
    location_name: Optional[str] = None


# ---- shop service catalog ----
class WashServiceOption(BaseModel):
    setting: str
    duration: int = Field(..., description="Minutes")
    price: float = Field(..., ge=0, allow_inf_nan=False)


class WashService(BaseModel):
    weight: float = Field(..., allow_inf_nan=False, description="Machine capacity in kg")
    options: List[WashServiceOption] = []


class DryServiceOption(WashServiceOption):
    pass


class DryService(BaseModel):
    weight: float = Field(..., allow_inf_nan=False)
    options: List[DryServiceOption] = []


class IroningServiceOption(BaseModel):
    type: str
    price: float = Field(..., ge=0, allow_inf_nan=False)


class IroningService(BaseModel):
    category: str
    options: List[IroningServiceOption] = []


class FoldingServiceOption(BaseModel):
    type: str
    price_per_kg: float = Field(..., ge=0, allow_inf_nan=False)


class FoldingService(BaseModel):
    options: List[FoldingServiceOption] = []


class OtherServiceOption(BaseModel):
    name: str
    price: float = Field(..., ge=0, allow_inf_nan=False)
    unit: str


class OtherService(BaseModel):
    category: str
    default_unit: Optional[str] = None
    options: List[OtherServiceOption] = []


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)


class Shop(BaseModel):
    name: str
    rating: float = Field(..., ge=0, le=5, allow_inf_nan=False)
    review_count: int = 0
    price_level: int = Field(..., ge=1, le=4)
    type: ShopType
    delivery_fee: float = Field(..., ge=0, allow_inf_nan=False)
    delivery_time: int = Field(..., description="Minutes")
    balance: float = Field(0.0, allow_inf_nan=False)
    image_url: Optional[str] = None
    location: Optional[Location] = None
    wash_services: List[WashService] = []
    dry_services: List[DryService] = []
    ironing_services: List[IroningService] = []
    folding_services: List[FoldingService] = []
    other_services: List[OtherService] = []


# ---- orders ----
class OrderItem(BaseModel):
    name: str
    details: Optional[str] = None
    price: float = Field(..., ge=0, allow_inf_nan=False)
    quantity: int = Field(1, ge=1)


class Order(BaseModel):
    user_id: str
    user_display_name: str
    user_address: str
    shop_id: str
    shop_name: str
    shop_type: ShopType = "coin"
    rider_id: Optional[str] = None
    items: List[OrderItem]
    service_total: float = Field(..., allow_inf_nan=False)
    delivery_fee: float = Field(..., allow_inf_nan=False)
    total: float = Field(..., allow_inf_nan=False)
    payment_method: PaymentMethod = "cash"
    status: OrderStatus = "decision"


class OrderForMerchant(Order):
    shop_type: ShopType = "full"


# ---- everything else ----
class Rider(BaseModel):
    full_name: str
    display_name: Optional[str] = None
    avatar_initial: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    status: RiderStatus = "offline"


class ChatMessage(BaseModel):
    rider_id: str
    shop_id: Optional[str] = None
    sender: Literal["user", "rider"]
    text: str = Field(..., min_length=1)


class EmailOtp(BaseModel):
    email: str
    code_hash: str
    expires_at: datetime


class Signup(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email_verification_id: Optional[str] = None
    payment_method: Optional[Literal["truemoney", "cash", "card"]] = None
    card_last4: Optional[str] = None


class Transaction(BaseModel):
    """One signed wallet movement. Balances are the running sum of these."""
    account_type: Literal["user", "shop"]
    account_id: str
    amount: float = Field(..., allow_inf_nan=False)
    kind: Literal["order_payment", "order_refund", "deposit", "withdraw"]
    reference: Optional[str] = None
    balance_after: Optional[float] = None
    status: str = "success"
