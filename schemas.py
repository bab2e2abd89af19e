"""
Database Schemas for the TryOn Collective storefront

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
Cross-collection references are stored as the referenced _id string.
"""
from datetime import datetime
from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, EmailStr, Field

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
PaymentMethod = Literal["credit_card", "debit_card", "upi", "cod", "wallet"]
DeliveryStatus = Literal["picked_up", "in_transit", "out_for_delivery", "delivered", "exception"]
SummaryStatus = Literal[
    "pending", "confirmed", "processing", "packed", "shipped", "out_for_delivery", "delivered", "cancelled"
]
NotificationType = Literal["info", "success", "warning", "error", "promotion", "order_update"]
TargetAudience = Literal["all", "specific_users", "category_based"]

ORDER_STATUSES = list(get_args(OrderStatus))
PAYMENT_STATUSES = list(get_args(PaymentStatus))
ACTIVE_DELIVERY_STATUSES = ["picked_up", "in_transit", "out_for_delivery"]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class Image(BaseModel):
    url: str
    alt: Optional[str] = None


class PriceRange(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class Preferences(BaseModel):
    categories: List[str] = []
    price_range: Optional[PriceRange] = None
    sizes: List[str] = []
    colors: List[str] = []


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt hash")
    phone: Optional[str] = None
    address: Optional[Address] = None
    browsing_history: List[dict] = []
    purchase_history: List[dict] = []
    preferences: Preferences = Preferences()
    language: Literal["en", "hi"] = "en"
    is_active: bool = True
    is_admin: bool = False
    is_blocked: bool = False


class Category(BaseModel):
    name: str
    slug: str = Field(..., description="URL-friendly identifier derived from name")
    description: Optional[str] = None
    image: Optional[Image] = None
    parent_category: Optional[str] = Field(None, description="Parent category _id, null for roots")
    is_active: bool = True
    display_order: int = 0


class Rating(BaseModel):
    average: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


class Product(BaseModel):
    name: str
    description: str
    description_hi: Optional[str] = None
    category: str = Field(..., description="Category _id")
    category_name: str
    subcategory: Optional[str] = None
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discount: float = Field(0, ge=0, le=100)
    images: List[Image] = []
    sizes: List[str] = []
    colors: List[str] = []
    stock: int = Field(0, ge=0)
    tags: List[str] = []
    embedding: Optional[List[float]] = None
    rating: Rating = Rating()
    is_active: bool = True
    is_featured: bool = False


class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    image: Optional[str] = None


class Order(BaseModel):
    order_number: str
    user_id: str
    items: List[OrderItem] = Field(..., min_length=1)
    subtotal: float = Field(..., ge=0)
    discount: float = Field(0, ge=0)
    coupon_code: Optional[str] = None
    coupon_id: Optional[str] = None
    reward_points_used: int = Field(0, ge=0)
    shipping: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    total: float = Field(..., ge=0)
    shipping_address: Optional[Address] = None
    payment_method: PaymentMethod
    payment_status: PaymentStatus = "pending"
    status: OrderStatus = "pending"
    delivery_tracking: Optional[str] = None
    invoice_url: Optional[str] = None
    notes: Optional[str] = None


class OrderSummary(BaseModel):
    order_id: str
    product_images: List[str] = []
    order_date: datetime
    status: SummaryStatus = "pending"
    total: Optional[float] = None


class WishlistItem(BaseModel):
    product_id: str
    product_image: Optional[str] = None
    product_name: Optional[str] = None
    price: Optional[str] = None
    added_at: datetime


class CartItem(WishlistItem):
    quantity: int = Field(1, ge=1)


class UserDetails(BaseModel):
    user_id: str
    username: str
    email: EmailStr
    orders: List[OrderSummary] = []
    wishlist: List[WishlistItem] = []
    cart: List[CartItem] = []


class Location(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None


class TrackingLog(BaseModel):
    status: str
    location: Optional[Location] = None
    timestamp: datetime
    description: Optional[str] = None


class DeliveryAgent(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class DeliveryTracking(BaseModel):
    order_id: str
    courier_name: str
    tracking_number: str
    current_location: Optional[Location] = None
    status: DeliveryStatus = "picked_up"
    logs: List[TrackingLog] = []
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    delivery_agent: Optional[DeliveryAgent] = None


class Coupon(BaseModel):
    code: str
    description: Optional[str] = None
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(..., ge=0)
    min_purchase_amount: float = Field(0, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)
    valid_from: datetime
    valid_until: datetime
    usage_limit: Optional[int] = Field(None, ge=1, description="None means unlimited")
    used_count: int = Field(0, ge=0)
    usage_limit_per_user: int = Field(1, ge=1)
    applicable_categories: List[str] = []
    is_active: bool = True
    created_by: Optional[str] = None


class PointsTransaction(BaseModel):
    type: Literal["earned", "redeemed", "expired"]
    amount: int
    order_id: Optional[str] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime


class RewardPoint(BaseModel):
    user_id: str
    points: int = 0
    transactions: List[PointsTransaction] = []
    total_earned: int = 0
    total_redeemed: int = 0


class Notification(BaseModel):
    title: str
    message: str
    type: NotificationType = "info"
    target_audience: TargetAudience = "all"
    target_users: List[str] = []
    target_categories: List[str] = []
    link: Optional[str] = None
    image: Optional[Image] = None
    read_by: List[dict] = []
    scheduled_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool = True
    created_by: Optional[str] = None


class RecommendedProduct(BaseModel):
    product_id: str
    similarity_score: float
    reason: Optional[str] = None


class Recommendation(BaseModel):
    user_id: Optional[str] = None
    product_id: str
    recommended_products: List[RecommendedProduct] = []
    type: Literal["similarity", "category", "collaborative", "personalized"]
    expires_at: datetime
