"""
Database Schemas for the Glow Beauty store

Each Pydantic model describes either a MongoDB document (Product, CartItem,
Favorite, Order, Booking, User) or a request payload accepted by the API.
Collection names live in database.py.
"""
from datetime import date as date_type
from typing import List, Optional, Literal
from pydantic import BaseModel, Field, EmailStr, field_validator

ProductStatus = Literal["In Stock", "Low Stock", "Out of Stock"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed"]
ShippingMethod = Literal["standard", "express", "pickup"]
PaymentMethod = Literal["mobile-money", "card", "bank-transfer"]
BookingStatus = Literal["pending_payment", "confirmed", "completed", "cancelled"]

DELIVERY_FEES = {
    "standard": 15.0,
    "express": 25.0,
    "pickup": 0.0,
}

REGIONS = [
    "Greater Accra", "Ashanti", "Western", "Western North", "Central", "Eastern",
    "Volta", "Northern", "Upper East", "Upper West", "Bono", "Ahafo",
    "Bono East", "Oti", "Savannah", "North East",
]

# Auth

def fits_bcrypt(password: str) -> str:
    # bcrypt only reads the first 72 bytes
    if len(password.encode("utf-8")) > 72:
        raise ValueError("password must be at most 72 bytes")
    return password

class User(BaseModel):
    email: EmailStr
    password_hash: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    role: Literal["customer", "admin"] = "customer"

class SignupPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    name: Optional[str] = None

    @field_validator("password")
    @classmethod
    def bcrypt_sized(cls, v: str) -> str:
        return fits_bcrypt(v)

class LoginPayload(BaseModel):
    email: EmailStr
    password: str

class ResetRequest(BaseModel):
    email: EmailStr

class ResetConfirm(BaseModel):
    token: str
    new_password: str = Field(..., min_length=6, max_length=72)

    @field_validator("new_password")
    @classmethod
    def bcrypt_sized(cls, v: str) -> str:
        return fits_bcrypt(v)

class ProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str

# Catalog

class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    original_price: float = Field(..., ge=0)
    discounted_price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    quantity: int = Field(0, ge=0, description="Units in stock")
    status: ProductStatus = "In Stock"
    image_url: Optional[str] = None

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    original_price: Optional[float] = Field(None, ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1)
    quantity: Optional[int] = Field(None, ge=0)
    status: Optional[ProductStatus] = None
    image_url: Optional[str] = None

# Cart & favorites

class CartItem(BaseModel):
    user_id: str
    product_id: str
    name: str
    price: float = Field(..., ge=0, description="Snapshot of the price at add-to-cart time")
    quantity: int = Field(1, ge=1)
    image_url: Optional[str] = None
    category: Optional[str] = None

class CartAdd(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)

class QuantityChange(BaseModel):
    delta: int

class Favorite(BaseModel):
    user_id: str
    product_id: str
    name: str
    image_url: Optional[str] = None
    price: float
    category: Optional[str] = None

# Orders

class ShippingAddress(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    region: str
    locality: Optional[str] = None
    country: str = "Ghana"
    phone: str = Field(..., min_length=7, max_length=20)
    email: EmailStr
    postal_code: Optional[str] = None
    delivery_notes: Optional[str] = None

    @field_validator("first_name", "last_name", "address", "city", "phone")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("region")
    @classmethod
    def known_region(cls, v: str) -> str:
        if v not in REGIONS:
            raise ValueError("unknown region")
        return v

class PaymentConfirmation(BaseModel):
    """Result reported by the payment provider before the order is written."""
    method: PaymentMethod = "mobile-money"
    status: Literal["pending", "paid", "completed", "failed"] = "pending"
    reference: Optional[str] = None

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return "paid" if v == "completed" else v

class CheckoutPayload(BaseModel):
    shipping_address: ShippingAddress
    shipping_method: ShippingMethod = "standard"
    payment: PaymentConfirmation = PaymentConfirmation()

class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int = Field(..., ge=1)
    image_url: Optional[str] = None

class Order(BaseModel):
    order_number: str
    user_id: str
    customer_name: str
    customer_email: EmailStr
    customer_phone: str
    shipping_address: ShippingAddress
    items: List[OrderItem]
    subtotal: float
    delivery_fee: float = 0
    total_amount: float
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None
    shipping_method: ShippingMethod
    tracking_number: Optional[str] = None

class TrackingUpdate(BaseModel):
    tracking_number: str = Field(..., min_length=1)

# Consultations

class Plan(BaseModel):
    id: str
    title: str
    duration: str
    price: float
    features: List[str] = []

PLANS = [
    Plan(id="skincare-analysis", title="Skincare Analysis", duration="30 min", price=29.0,
         features=["Skin type assessment", "Product recommendations", "Routine plan"]),
    Plan(id="beauty-plan", title="Comprehensive Beauty Plan", duration="60 min", price=79.0,
         features=["Full assessment", "Customized plan", "Follow-up session"]),
]

TIME_SLOTS = [
    "09:00 AM", "10:00 AM", "11:00 AM", "12:00 PM",
    "02:00 PM", "03:00 PM", "04:00 PM", "05:00 PM",
]

class BookingRequest(BaseModel):
    plan_id: str
    date: str = Field(..., description="ISO date, e.g. 2026-11-02")
    time: str
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=7, max_length=20)
    consultation_type: Literal["virtual", "in-person"] = "virtual"
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def iso_date(cls, v: str) -> str:
        day = date_type.fromisoformat(v)
        if day < date_type.today():
            raise ValueError("date is in the past")
        return day.isoformat()

    @field_validator("time")
    @classmethod
    def known_slot(cls, v: str) -> str:
        if v not in TIME_SLOTS:
            raise ValueError("unknown time slot")
        return v

class Booking(BaseModel):
    user_id: str
    name: str
    email: EmailStr
    phone: str
    consultation_type: str
    notes: Optional[str] = None
    plan: str
    price: float
    duration: str
    date: str
    time: str
    status: BookingStatus = "pending_payment"
    payment_status: PaymentStatus = "pending"
    payment_reference: Optional[str] = None

class BookingPayment(BaseModel):
    reference: str = Field(..., min_length=1)
