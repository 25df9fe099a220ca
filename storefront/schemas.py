"""
Database schemas for the storefront.

Each Pydantic model mirrors a MongoDB collection (snake_case of the class name)
or the request body that writes one. Collections:

- user, admin, customer, customer_address
- badge, brand, category, subcategory, cutting_style
- online_product (variants embedded), cart, wishlist_item
- coupon, coupon_usage, online_order
- supplier, purchase_order (items embedded), company_settings
- counter (atomic sequences)
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

# -----------------------------
# Accounts
# -----------------------------


class UserCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=80)
    email: EmailStr
    password: Optional[str] = Field(None, min_length=6)
    provider: Literal["local", "google"] = "local"
    google_id: Optional[str] = None
    phone: Optional[str] = None

    @model_validator(mode="after")
    def local_needs_password(self):
        if self.provider == "local" and not self.password:
            raise ValueError("password is required for local accounts")
        return self


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AdminCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=80)
    email: EmailStr
    is_active: bool = True


class FcmTokenIn(BaseModel):
    user_id: str
    fcm_token: str = Field(..., min_length=1)
    user_type: Literal["user", "admin"]


class FcmTokenRemove(BaseModel):
    user_id: str
    user_type: Literal["user", "admin"]
    fcm_token: Optional[str] = None


# -----------------------------
# Addresses
# -----------------------------

AddressType = Literal["home", "work", "other"]


class AddressIn(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    alternate_phone: Optional[str] = None
    address_line1: str = Field(..., min_length=1)
    address_line2: Optional[str] = None
    landmark: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., min_length=1)
    country: str = "India"
    address_type: AddressType = "home"
    is_default: bool = False


class AddressUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    alternate_phone: Optional[str] = None
    address_line1: Optional[str] = Field(None, min_length=1)
    address_line2: Optional[str] = None
    landmark: Optional[str] = None
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    pincode: Optional[str] = Field(None, min_length=1)
    country: Optional[str] = None
    address_type: Optional[AddressType] = None
    is_default: Optional[bool] = None


# -----------------------------
# Catalog reference data
# -----------------------------


class NameIn(BaseModel):
    name: str


class CuttingStyleIn(BaseModel):
    name: str
    description: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


class CuttingStyleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class SeoFields(BaseModel):
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None


class CategoryOnlyIn(SeoFields):
    name: str = Field(..., min_length=1)
    is_active: bool = True


class CategoryPairIn(BaseModel):
    category_name: str = Field(..., min_length=1)
    subcategory_name: str = Field(..., min_length=1)
    category_meta_title: Optional[str] = None
    category_meta_description: Optional[str] = None
    category_meta_keywords: Optional[str] = None
    subcategory_meta_title: Optional[str] = None
    subcategory_meta_description: Optional[str] = None
    subcategory_meta_keywords: Optional[str] = None
    category_is_active: bool = True
    subcategory_is_active: bool = True


class CategoryPairUpdate(BaseModel):
    category_name: Optional[str] = None
    subcategory_name: Optional[str] = None
    category_meta_title: Optional[str] = None
    category_meta_description: Optional[str] = None
    category_meta_keywords: Optional[str] = None
    subcategory_meta_title: Optional[str] = None
    subcategory_meta_description: Optional[str] = None
    subcategory_meta_keywords: Optional[str] = None
    category_is_active: Optional[bool] = None
    subcategory_is_active: Optional[bool] = None


class ToggleStatusIn(BaseModel):
    type: Literal["category", "subcategory"]


class SeoRequest(BaseModel):
    category_name: str = Field(..., min_length=1)
    subcategory_name: Optional[str] = None
    company_name: Optional[str] = None


# -----------------------------
# Online products
# -----------------------------


class Variant(BaseModel):
    name: str = Field(..., min_length=1, description="Variant name, e.g. 500g")
    display_name: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    inventory_product_id: Optional[str] = Field(None, description="Cart key; generated when absent")
    mrp: float = Field(0, ge=0)
    selling_price: float = Field(..., ge=0)
    purchase_price: float = Field(0, ge=0)
    stock_quantity: int = Field(0, ge=0)
    low_stock_alert: Optional[int] = Field(None, ge=0)
    images: list[str] = Field(default_factory=list, description="Object storage keys")
    attributes: dict[str, str] = Field(default_factory=dict, description="size/colour/weight")


class FrequentlyBoughtTogether(BaseModel):
    product_id: str
    variant_index: int = Field(0, ge=0)
    is_default_selected: bool = False


ProductStatus = Literal["draft", "active", "inactive"]


class OnlineProductIn(BaseModel):
    category: str = Field(..., min_length=1)
    sub_category: str = Field(..., min_length=1)
    brand: str = ""
    short_description: str = ""
    enable_variants: bool = False
    variants: list[Variant] = Field(..., min_length=1)

    hsn_code: str = ""
    gst_percentage: float = Field(0, ge=0)
    default_mrp: float = Field(0, ge=0)
    default_selling_price: float = Field(0, ge=0)
    default_purchase_price: float = Field(0, ge=0)
    discount_type: Literal["Percent", "Flat"] = "Percent"
    default_discount_value: float = Field(0, ge=0)
    is_cod_available: bool = True
    shipping_charge: float = Field(0, ge=0)
    free_shipping: bool = False

    product_status: ProductStatus = "draft"
    show_on_homepage: bool = False
    homepage_badge: str = "none"
    show_in_products_page: bool = True
    products_page_badge: str = "none"
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None

    expiry_date: Optional[datetime] = None
    mfg_date: Optional[datetime] = None
    batch_no: Optional[str] = None
    safety_information: Optional[str] = None

    return_policy_applicable: bool = True
    return_window_days: int = Field(7, ge=0)
    warranty_details: Optional[str] = None
    country_of_origin: str = "India"

    cutting_styles: list[str] = Field(default_factory=list)
    frequently_bought_together: list[FrequentlyBoughtTogether] = Field(default_factory=list)


class OnlineProductUpdate(BaseModel):
    category: Optional[str] = None
    sub_category: Optional[str] = None
    brand: Optional[str] = None
    short_description: Optional[str] = None
    enable_variants: Optional[bool] = None
    variants: Optional[list[Variant]] = Field(None, min_length=1)
    hsn_code: Optional[str] = None
    gst_percentage: Optional[float] = None
    default_mrp: Optional[float] = None
    default_selling_price: Optional[float] = None
    default_purchase_price: Optional[float] = None
    discount_type: Optional[Literal["Percent", "Flat"]] = None
    default_discount_value: Optional[float] = None
    is_cod_available: Optional[bool] = None
    shipping_charge: Optional[float] = None
    free_shipping: Optional[bool] = None
    product_status: Optional[ProductStatus] = None
    show_on_homepage: Optional[bool] = None
    homepage_badge: Optional[str] = None
    show_in_products_page: Optional[bool] = None
    products_page_badge: Optional[str] = None
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None
    expiry_date: Optional[datetime] = None
    mfg_date: Optional[datetime] = None
    batch_no: Optional[str] = None
    safety_information: Optional[str] = None
    return_policy_applicable: Optional[bool] = None
    return_window_days: Optional[int] = None
    warranty_details: Optional[str] = None
    country_of_origin: Optional[str] = None
    cutting_styles: Optional[list[str]] = None
    frequently_bought_together: Optional[list[FrequentlyBoughtTogether]] = None


class BarcodeIn(BaseModel):
    barcode: str = Field(..., min_length=1)


# -----------------------------
# Cart / wishlist
# -----------------------------


class CartAddIn(BaseModel):
    user_id: str
    inventory_product_id: str
    quantity: int = Field(1, ge=1)
    selected_cutting_style: Optional[str] = None


class CartUpdateIn(BaseModel):
    user_id: str
    quantity: int = Field(..., ge=0)
    selected_cutting_style: Optional[str] = None


class CartSyncItem(BaseModel):
    inventory_product_id: str
    quantity: int = Field(..., ge=0)
    selected_cutting_style: Optional[str] = None


class CartSyncIn(BaseModel):
    user_id: str
    items: list[CartSyncItem]


class WishlistAddIn(BaseModel):
    user_id: str
    product_id: str
    product_data: dict[str, Any]


# -----------------------------
# Coupons
# -----------------------------

DiscountType = Literal["percentage", "flat"]
UsageType = Literal["single-use", "multi-use", "first-time-user-only"]


class CouponIn(BaseModel):
    code: str = Field(..., min_length=1)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0)
    usage_type: UsageType = "multi-use"
    max_usage_count: Optional[int] = Field(None, ge=1)
    max_usage_per_user: Optional[int] = Field(None, ge=1)
    valid_from: datetime
    valid_until: datetime
    min_order_value: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, gt=0)
    applicable_categories: list[str] = Field(default_factory=list)
    is_active: bool = True

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        return self


class CouponUpdate(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = Field(None, gt=0)
    usage_type: Optional[UsageType] = None
    max_usage_count: Optional[int] = Field(None, ge=1)
    max_usage_per_user: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    min_order_value: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, gt=0)
    applicable_categories: Optional[list[str]] = None
    is_active: Optional[bool] = None


class CouponValidateIn(BaseModel):
    code: str = Field(..., min_length=1)
    user_id: str
    order_value: float = Field(..., gt=0)
    categories: Optional[list[str]] = None


class CouponApplyIn(BaseModel):
    coupon_id: str
    user_id: str
    order_id: Optional[str] = None
    discount_amount: float = Field(..., ge=0)
    order_value: float = Field(..., gt=0)


class CouponUsage(BaseModel):
    coupon_id: str
    coupon_code: str
    user_id: str
    order_id: Optional[str] = None
    discount_amount: float
    order_value: float
    used_at: datetime


# -----------------------------
# Orders
# -----------------------------

OrderStatus = Literal["pending", "confirmed", "packing", "shipped", "delivered", "cancelled"]


class PlaceOrderIn(BaseModel):
    user_id: str
    address_id: str
    payment_method: Literal["cod", "online"]
    coupon_code: Optional[str] = None
    notes: Optional[str] = None


class OrderStatusIn(BaseModel):
    status: OrderStatus
    message: Optional[str] = None


class OrderItem(BaseModel):
    product_id: str
    variant_index: int
    inventory_product_id: str
    product_name: str
    variant_name: str
    brand: str = ""
    category: str = ""
    product_image: Optional[str] = None
    selected_cutting_style: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0)
    mrp: float = Field(0, ge=0)
    total_price: float = Field(..., ge=0)


# -----------------------------
# Purchase orders
# -----------------------------

SupplierStatus = Literal["active", "inactive"]


class SupplierIn(BaseModel):
    name: str = Field(..., min_length=1)
    supplier_type: Optional[str] = None
    contact_person_name: Optional[str] = None
    phone: str = Field(..., min_length=1)
    alternate_phone: Optional[str] = None
    email: EmailStr
    billing_address_line1: Optional[str] = None
    billing_address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    shipping_address_same_as_billing: bool = False
    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    tax_id: Optional[str] = None
    remarks: Optional[str] = None
    status: SupplierStatus = "active"


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    supplier_type: Optional[str] = None
    contact_person_name: Optional[str] = None
    phone: Optional[str] = Field(None, min_length=1)
    alternate_phone: Optional[str] = None
    email: Optional[EmailStr] = None
    billing_address_line1: Optional[str] = None
    billing_address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    shipping_address_same_as_billing: Optional[bool] = None
    shipping_address_line1: Optional[str] = None
    shipping_address_line2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    tax_id: Optional[str] = None
    remarks: Optional[str] = None
    status: Optional[SupplierStatus] = None


POStatus = Literal["draft", "completed"]


class SupplierInfo(BaseModel):
    supplier_id: str = Field(..., min_length=1)
    supplier_name: str = ""
    contact_person_name: Optional[str] = None
    supplier_phone: Optional[str] = None
    supplier_email: Optional[EmailStr] = None
    supplier_gstin: Optional[str] = None


class PurchaseOrderItem(BaseModel):
    item_id: Optional[str] = None
    category: Optional[str] = None
    product_name: str
    sku: Optional[str] = None
    hsn_code: Optional[str] = None
    quantity: float = Field(..., gt=0)
    uom: Optional[str] = None
    price: float = Field(..., ge=0)
    gst_percentage: float = 0
    gst_type: Optional[Literal["intra", "inter"]] = None
    cgst_percentage: float = 0
    sgst_percentage: float = 0
    igst_percentage: float = 0
    cgst_amount: float = 0
    sgst_amount: float = 0
    igst_amount: float = 0
    total_gst_amount: float = 0
    mrp: Optional[float] = None
    item_total: float = 0
    total_price: float = 0


class PurchaseOrderIn(BaseModel):
    supplier_info: SupplierInfo
    billing_address: Optional[dict[str, Any]] = None
    shipping_address: Optional[dict[str, Any]] = None
    warehouse_id: str = Field(..., min_length=1)
    warehouse_name: Optional[str] = None
    po_date: datetime
    expected_delivery_date: Optional[datetime] = None
    po_status: POStatus = "draft"
    po_notes: Optional[str] = None
    currency: str = "INR"
    currency_symbol: str = "₹"
    items: list[PurchaseOrderItem] = Field(..., min_length=1)
    sub_total: float = 0
    total_quantity: float = 0
    discount: float = 0
    discount_type: Optional[str] = None
    total_cgst: float = 0
    total_sgst: float = 0
    total_igst: float = 0
    total_gst: float = 0
    other_charges: float = 0
    rounding_adjustment: float = 0
    grand_total: float = Field(0, ge=0)


# -----------------------------
# Company settings
# -----------------------------


class SocialMedia(BaseModel):
    facebook: str = ""
    twitter: str = ""
    instagram: str = ""
    linkedin: str = ""
    youtube: str = ""


class CompanySettingsIn(BaseModel):
    company_name: str
    tagline: str = ""
    description: str = ""
    email: EmailStr
    phone: str
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    website: str = ""
    logo_url: str = ""
    favicon_url: str = ""
    map_iframe: str = ""
    social_media: SocialMedia = Field(default_factory=SocialMedia)
