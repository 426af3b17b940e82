"""
Database Schemas for the content platform

Each Pydantic model represents a collection in MongoDB.
Class name lowercased = collection name (e.g., User -> "user").
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

CATEGORIES = (
    "Technology", "Business", "Science", "Environment",
    "Health", "Entertainment", "Sports", "Education",
    "Stories", "Information", "Updates", "Insights",
)

Category = Literal[
    "Technology", "Business", "Science", "Environment",
    "Health", "Entertainment", "Sports", "Education",
    "Stories", "Information", "Updates", "Insights",
]


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lowercase")
    mobile: Optional[str] = Field(None, description="10-digit mobile number")
    password_hash: Optional[str] = Field(None, description="Password hash (bcrypt); absent for Google-only accounts")
    avatar_url: Optional[str] = Field(None, description="Avatar image URL")
    google_id: Optional[str] = Field(None, description="Google account subject id")
    is_verified: bool = Field(False, description="Whether the email is verified")
    reset_token: Optional[str] = Field(None, description="Password reset token (single use)")
    reset_expires: Optional[datetime] = Field(None, description="Expiry of the reset token")


class Article(BaseModel):
    """
    Articles collection schema
    Collection name: "article"
    """
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    category: Category
    image_url: Optional[str] = None
    likes: int = Field(0, ge=0, description="Denormalized count of like rows")


class Comment(BaseModel):
    """
    Comments collection schema
    Collection name: "comment"
    """
    article_id: str
    category: Category
    content: str = Field(..., max_length=1000)
    author: str
    email: EmailStr
    mobile: str = ""


class Like(BaseModel):
    """
    Likes collection schema
    Collection name: "like"
    Unique on (article_id, liker).
    """
    article_id: str
    liker: str = Field(..., description="user:<id> or ip:<normalized address>")


class CityPrice(BaseModel):
    city: str
    petrol: float
    diesel: float
    cng: Optional[float] = None
    last_updated: datetime


class FuelPrice(BaseModel):
    """
    Daily fuel price snapshot per state
    Collection name: "fuel_price"
    Unique on (date, state).
    """
    date: str = Field(..., description="YYYY-MM-DD")
    state: str
    cities: List[CityPrice] = Field(default_factory=list)
