"""
Database Schemas for PawMart (pets and pet supplies marketplace)

Each Pydantic model maps to a MongoDB collection (lowercased class name).
Orders move forward only: pending -> confirmed -> shipped -> delivered,
with cancelled reachable from any state before delivered.
"""

from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

Role = Literal["buyer", "seller", "admin"]
Category = Literal["Pets", "Pet Food", "Accessories", "Pet Care Products"]
ListingStatus = Literal["active", "inactive"]
OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]

ROLES = ("buyer", "seller", "admin")
CATEGORIES = ("Pets", "Pet Food", "Accessories", "Pet Care Products")
ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")

PHONE_PATTERN = r"^[0-9]{10,15}$"


def lower_email(value: str) -> str:
    return value.strip().lower()


# Registered accounts (buyers, sellers and admins)
class User(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr = Field(..., description="Unique, stored lower-cased")
    password_hash: str = Field(..., description="bcrypt hash of password")
    role: Role = Field("buyer")
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(None, max_length=200)
    is_verified: bool = Field(False)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return lower_email(value)


# Pets and products offered by sellers
class Listing(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    category: Category
    price: float = Field(..., gt=0)
    location: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    image: str = Field(..., description="Image URL")
    email: EmailStr = Field(..., description="Owner email")
    user_id: str = Field(..., description="Owner user id")
    breed: Optional[str] = Field(None, max_length=50)
    age: Optional[str] = Field(None, max_length=20)
    gender: Optional[Literal["Male", "Female"]] = None
    vaccinated: Optional[bool] = None
    trained: Optional[bool] = None
    status: ListingStatus = Field("active")
    views: int = Field(0, ge=0)


# Purchases; product fields are a snapshot of the listing at order time
class Order(BaseModel):
    buyer_email: EmailStr
    buyer_name: str = Field(..., min_length=2, max_length=50)
    listing_id: str
    seller_id: str = Field(..., description="Seller email")
    product_name: str
    price: float = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    total: float = Field(..., gt=0)
    address: str = Field(..., min_length=10, max_length=200)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    status: OrderStatus = Field("pending")


# One review per (listing, reviewer)
class Review(BaseModel):
    listing_id: str
    buyer_email: EmailStr
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=5, max_length=500)


ORDER_PROGRESSION = ("pending", "confirmed", "shipped", "delivered")
TERMINAL_ORDER_STATUSES = ("delivered", "cancelled")


def can_transition(current: str, new: str) -> bool:
    if current in TERMINAL_ORDER_STATUSES or current not in ORDER_PROGRESSION:
        return False
    if new == "cancelled":
        return True
    if new not in ORDER_PROGRESSION:
        return False
    return ORDER_PROGRESSION.index(new) > ORDER_PROGRESSION.index(current)
