"""
Database Schemas

Each Pydantic model describes a document stored in MongoDB.
- User -> "user" collection
- Product -> "products" collection
- Cart -> "carts" collection (CartLine embedded)
- WishlistEntry is embedded in User.wishlist
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class Role(str, Enum):
    buyer = "buyer"
    seller = "seller"
    admin = "admin"


class WishlistEntry(BaseModel):
    product_id: str = Field(..., description="Product _id as string")
    name: str
    category: Optional[str] = None
    price: float = Field(..., ge=0)
    image: Optional[str] = None


class User(BaseModel):
    email: EmailStr = Field(..., description="Unique email address")
    name: Optional[str] = Field(None, description="Display name")
    photo: Optional[str] = Field(None, description="Avatar URL")
    role: Role = Field(Role.buyer, description="Role: buyer | seller | admin")
    password_hash: Optional[str] = Field(None, description="BCrypt hashed password")
    wishlist: List[WishlistEntry] = Field(default_factory=list)


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    category: str = Field(..., description="Product category")
    price: float = Field(..., ge=0, description="Price in dollars")
    quantity: int = Field(..., ge=0, description="Units in stock")
    image: Optional[str] = Field(None, description="Image URL")
    description: Optional[str] = None
    seller: Optional[str] = Field(None, description="Email of the seller who listed it")


class CartLine(BaseModel):
    product_id: str = Field(..., description="Product _id as string")
    name: str
    quantity: int = Field(1, ge=1, description="Units reserved into this cart")
    price: float = Field(..., ge=0, description="Price snapshot taken at add time")
    image: Optional[str] = None


class Cart(BaseModel):
    email: EmailStr = Field(..., description="Owning buyer's email")
    products: List[CartLine] = Field(default_factory=list)
    version: int = Field(0, description="Incremented on every write")


# Request payloads
class UserCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    photo: Optional[str] = None
    password: Optional[str] = None


class RoleUpdate(BaseModel):
    role: Role


class ProductCreate(BaseModel):
    name: str
    category: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=0)
    image: Optional[str] = None
    description: Optional[str] = None


class TokenRequest(BaseModel):
    email: EmailStr
