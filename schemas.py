"""
Database Schemas

MongoDB collection schemas and API request bodies, as Pydantic models.
Document models are dumped straight into their collection:
- User -> "users" collection
- Product -> "products" collection
- Order -> "orders" collection
"""

from datetime import datetime, timezone
from typing import Annotated, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# Documents

class CartEntry(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    productId: ObjectId
    quantity: int = Field(1, ge=1)


class User(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    username: str = Field(..., min_length=3, description="Unique login name")
    password: str = Field(..., description="BCrypt hashed password")
    cart: List[CartEntry] = Field(default_factory=list)


class Product(BaseModel):
    name: NonEmptyStr = Field(..., description="Unique product name")
    description: NonEmptyStr
    category: NonEmptyStr
    price: float = Field(..., ge=0, allow_inf_nan=False)

    @field_validator("price", mode="before")
    @classmethod
    def price_is_numeric(cls, v):
        # Numbers and numeric strings only; lax float parsing would take true as 1.0.
        if isinstance(v, bool):
            raise ValueError("price must be a number")
        return v


class Order(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    userId: ObjectId
    products: List[CartEntry] = Field(default_factory=list, description="Cart snapshot at placement time")
    createdAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# Request bodies

class RegisterInput(BaseModel):
    username: Annotated[str, StringConstraints(strip_whitespace=True, min_length=3)]
    password: str = Field(..., min_length=6)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > 72:
            raise ValueError("password must be at most 72 bytes")
        return v


class LoginInput(BaseModel):
    username: str
    password: str


class ProductInput(Product):
    pass


class CartItemInput(BaseModel):
    productId: str
    quantity: Optional[int] = Field(None, ge=1)


# Responses

class TokenResponse(BaseModel):
    token: str
