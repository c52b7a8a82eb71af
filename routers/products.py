import logging
import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from pydantic import AfterValidator, BaseModel, ConfigDict

from auth import utils as auth_utils
from database import PRODUCTS, SELLERS, get_collection, parse_object_id, serialize
from errors import Forbidden, NotFound

logger = logging.getLogger("CATALOG")

router = APIRouter(prefix="/products", tags=["Products"])

SELLER_FIELDS = ("shopName", "email", "mobileNumber")


class Category(str, Enum):
    electronics = "Electronics"
    fashion = "Fashion"
    home_kitchen = "Home & Kitchen"
    groceries = "Groceries"
    beauty = "Beauty"
    books = "Books"
    sports = "Sports"
    other = "Other"


# --- Field rules shared by create and update ---

def _check_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Product name is required")
    if len(v) > 100:
        raise ValueError("Product name cannot exceed 100 characters")
    return v

def _check_description(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Product description is required")
    if len(v) > 1000:
        raise ValueError("Product description cannot exceed 1000 characters")
    return v

def _check_price(v: float) -> float:
    # JSON bodies may carry NaN/Infinity, which compare False against 0.
    if not math.isfinite(v) or v < 0:
        raise ValueError("Product price is required and must be a non-negative number")
    return v

def _check_stock(v: int) -> int:
    if v < 0:
        raise ValueError("Stock quantity is required and must be a non-negative integer")
    return v


ProductName = Annotated[str, AfterValidator(_check_name)]
Description = Annotated[str, AfterValidator(_check_description)]
Price = Annotated[float, AfterValidator(_check_price)]
Stock = Annotated[int, AfterValidator(_check_stock)]


class ProductCreate(BaseModel):
    name: ProductName
    description: Description
    price: Price
    category: Category
    stock: Stock
    imageUrl: Optional[str] = None


class ProductUpdate(BaseModel):
    # seller, createdAt and updatedAt are never client-writable.
    model_config = ConfigDict(extra="ignore")

    name: Optional[ProductName] = None
    description: Optional[Description] = None
    price: Optional[Price] = None
    category: Optional[Category] = None
    stock: Optional[Stock] = None
    imageUrl: Optional[str] = None


# --- Helpers ---

def with_sellers(products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Embeds the public seller fields into each product, one query for all of them."""
    seller_ids = list({p["seller"] for p in products if p.get("seller")})
    sellers = {}
    if seller_ids:
        projection = {field: 1 for field in SELLER_FIELDS}
        for s in get_collection(SELLERS).find({"_id": {"$in": seller_ids}}, projection):
            sellers[s["_id"]] = serialize(s)

    out = []
    for p in products:
        item = serialize(p)
        item["seller"] = sellers.get(p.get("seller"))
        out.append(item)
    return out


async def get_product_or_404(product_id: str) -> Dict[str, Any]:
    oid = parse_object_id(product_id, "Product")
    product = await run_in_threadpool(get_collection(PRODUCTS).find_one, {"_id": oid})
    if not product:
        raise NotFound("Product not found")
    return product


def ensure_owner_or_admin(product: Dict[str, Any], user: auth_utils.Identity, action: str):
    if not user.is_admin and str(product["seller"]) != user.id:
        raise Forbidden(f"Forbidden: You are not authorized to {action} this product.")


# --- API Endpoints ---

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    current_user: auth_utils.Identity = Depends(auth_utils.require_roles("seller")),
):
    seller_oid = parse_object_id(current_user.id, "Seller")
    seller = await run_in_threadpool(get_collection(SELLERS).find_one, {"_id": seller_oid})
    # Approval is only checked here, at creation time.
    if not seller or not seller.get("isApproved", False):
        raise Forbidden("Forbidden: Only approved sellers can add products.")

    now = datetime.now(timezone.utc)
    doc = product.model_dump(mode="json")
    doc.update({
        "seller": seller_oid,
        "isAvailable": product.stock > 0,
        "createdAt": now,
        "updatedAt": now,
    })
    result = await run_in_threadpool(get_collection(PRODUCTS).insert_one, doc)
    doc["_id"] = result.inserted_id
    logger.info("Product %s created by seller %s", result.inserted_id, current_user.id)

    return {"message": "Product added successfully", "product": serialize(doc)}


@router.get("")
async def list_products(category: Optional[Category] = None, q: Optional[str] = None):
    query: Dict[str, Any] = {}
    if category:
        query["category"] = category.value
    if q:
        query["name"] = {"$regex": re.escape(q), "$options": "i"}

    def load():
        return with_sellers(list(get_collection(PRODUCTS).find(query).sort("createdAt", -1)))

    return await run_in_threadpool(load)


@router.get("/seller/{seller_id}")
async def list_seller_products(
    seller_id: str,
    current_user: auth_utils.Identity = Depends(auth_utils.require_roles("admin", "seller")),
):
    if not current_user.is_admin and seller_id != current_user.id:
        raise Forbidden("Forbidden: You can only view your own products or you are not an admin.")
    oid = parse_object_id(seller_id, "Seller")

    def load():
        return with_sellers(list(get_collection(PRODUCTS).find({"seller": oid}).sort("createdAt", -1)))

    return await run_in_threadpool(load)


@router.get("/{product_id}")
async def get_product(product_id: str):
    product = await get_product_or_404(product_id)
    return (await run_in_threadpool(with_sellers, [product]))[0]


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    current_user: auth_utils.Identity = Depends(auth_utils.require_roles("seller", "admin")),
):
    product = await get_product_or_404(product_id)
    ensure_owner_or_admin(product, current_user, "update")

    # Explicit nulls are treated as "not provided".
    changes = payload.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if "stock" in changes:
        changes["isAvailable"] = changes["stock"] > 0
    changes["updatedAt"] = datetime.now(timezone.utc)

    await run_in_threadpool(get_collection(PRODUCTS).update_one, {"_id": product["_id"]}, {"$set": changes})
    product.update(changes)
    logger.info("Product %s updated by %s (%s)", product_id, current_user.id, current_user.role)

    return {"message": "Product updated successfully", "product": serialize(product)}


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    current_user: auth_utils.Identity = Depends(auth_utils.require_roles("seller", "admin")),
):
    product = await get_product_or_404(product_id)
    ensure_owner_or_admin(product, current_user, "delete")

    await run_in_threadpool(get_collection(PRODUCTS).delete_one, {"_id": product["_id"]})
    logger.info("Product %s deleted by %s (%s)", product_id, current_user.id, current_user.role)
    return {"message": "Product deleted successfully"}
