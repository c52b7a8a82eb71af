import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, status
from fastapi.concurrency import run_in_threadpool
from pymongo.errors import DuplicateKeyError

from database import ADMINS, CUSTOMERS, SELLERS, get_collection
from errors import Conflict, Forbidden, ValidationFailed
from . import schemas, utils

logger = logging.getLogger("AUTH")

router = APIRouter(
    tags=["Authentication"]
)

# Lookup order for login and for cross-variant email checks.
ACCOUNT_COLLECTIONS = (CUSTOMERS, SELLERS, ADMINS)

DUPLICATE_FIELD_MESSAGES = {
    "email": "An account with this email already exists.",
    "mobileNumber": "A seller account with this mobile number already exists.",
    "shopName": "This shop name is already taken.",
    "gstNumber": "This GST number is already registered.",
}

EMAIL_TAKEN_MESSAGES = {
    CUSTOMERS: "An account with this email already exists (as a buyer).",
    SELLERS: "An account with this email already exists (as a seller). Please use a different email or log in.",
    ADMINS: "An account with this email already exists.",
}


def conflict_from_duplicate_key(err: DuplicateKeyError) -> Conflict:
    details = err.details or {}
    fields = list((details.get("keyPattern") or details.get("keyValue") or {}).keys())
    if not fields:
        fields = [f for f in DUPLICATE_FIELD_MESSAGES if f in str(err)]
    field = fields[0] if fields else None
    return Conflict(DUPLICATE_FIELD_MESSAGES.get(field, f"A record with this {field or 'value'} already exists."))


def find_account_by_email(email: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Checks each identity collection in turn. Not atomic across collections."""
    for name in ACCOUNT_COLLECTIONS:
        doc = get_collection(name).find_one({"email": email})
        if doc:
            return doc, name
    return None, None


def account_summary(doc: Dict[str, Any]) -> Dict[str, Any]:
    info = {
        "id": str(doc["_id"]),
        "email": doc["email"],
        "role": doc["role"],
        "firstName": doc.get("firstName", ""),
        "lastName": doc.get("lastName", ""),
    }
    if doc["role"] == "seller":
        info["shopName"] = doc.get("shopName")
        info["isApproved"] = doc.get("isApproved", False)
    return schemas.UserInfo(**info).model_dump(exclude_none=True)


def insert_account(collection: str, doc: Dict[str, Any]) -> Dict[str, Any]:
    try:
        result = get_collection(collection).insert_one(doc)
    except DuplicateKeyError as e:
        raise conflict_from_duplicate_key(e)
    doc["_id"] = result.inserted_id
    return doc


def create_admin_account(data: schemas.AdminCreate, role: str) -> Dict[str, Any]:
    if get_collection(ADMINS).find_one({"email": data.email}):
        raise Conflict("Admin with this email already exists")
    doc = {
        "firstName": data.firstName,
        "lastName": data.lastName,
        "email": data.email,
        "password": utils.get_password_hash(data.password),
        "role": role,
        "createdAt": datetime.now(timezone.utc),
    }
    doc = insert_account(ADMINS, doc)
    logger.info("Admin account %s created with role %s", doc["_id"], role)
    return doc


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_buyer(user: schemas.BuyerCreate):
    _, found_in = await run_in_threadpool(find_account_by_email, user.email)
    if found_in:
        raise Conflict(EMAIL_TAKEN_MESSAGES[found_in])

    doc = {
        "firstName": user.firstName,
        "lastName": user.lastName,
        "email": user.email,
        "password": await run_in_threadpool(utils.get_password_hash, user.password),
        "role": "buyer",
        "createdAt": datetime.now(timezone.utc),
    }
    doc = await run_in_threadpool(insert_account, CUSTOMERS, doc)
    logger.info("Buyer %s registered", doc["_id"])

    token = utils.create_access_token(utils.Identity(id=str(doc["_id"]), role="buyer"))
    return {
        "message": "Buyer registered successfully",
        "token": token,
        "user": account_summary(doc),
    }


@router.post("/seller/register", status_code=status.HTTP_201_CREATED)
async def register_seller(seller: schemas.SellerCreate):
    sellers = get_collection(SELLERS)

    _, found_in = await run_in_threadpool(find_account_by_email, seller.email)
    if found_in:
        raise Conflict(DUPLICATE_FIELD_MESSAGES["email"])
    if await run_in_threadpool(sellers.find_one, {"mobileNumber": seller.mobileNumber}):
        raise Conflict(DUPLICATE_FIELD_MESSAGES["mobileNumber"])
    if await run_in_threadpool(sellers.find_one, {"shopName": seller.shopName}):
        raise Conflict("This shop name is already taken. Please choose another.")
    if seller.gstNumber and await run_in_threadpool(sellers.find_one, {"gstNumber": seller.gstNumber}):
        raise Conflict(DUPLICATE_FIELD_MESSAGES["gstNumber"])

    doc = {
        "firstName": seller.firstName,
        "lastName": seller.lastName,
        "email": seller.email,
        "mobileNumber": seller.mobileNumber,
        "password": await run_in_threadpool(utils.get_password_hash, seller.password),
        "shopName": seller.shopName,
        "shopAddress": seller.shopAddress,
        "role": "seller",
        "isApproved": False,
        "createdAt": datetime.now(timezone.utc),
    }
    if seller.gstNumber:
        doc["gstNumber"] = seller.gstNumber
    doc = await run_in_threadpool(insert_account, SELLERS, doc)
    logger.info("Seller %s registered, pending approval", doc["_id"])

    return {
        "message": "Seller registered successfully. Your account is pending admin approval.",
        "seller": {
            "id": str(doc["_id"]),
            "shopName": doc["shopName"],
            "email": doc["email"],
            "isApproved": doc["isApproved"],
            "role": doc["role"],
        },
    }


@router.post("/login")
async def login_for_access_token(form_data: schemas.LoginRequest):
    user, _ = await run_in_threadpool(find_account_by_email, form_data.email)
    if not user:
        raise ValidationFailed("Invalid Credentials (email not found).")

    if not await run_in_threadpool(utils.verify_password, form_data.password, user["password"]):
        raise ValidationFailed("Invalid Credentials (password incorrect).")

    if user["role"] == "seller" and not user.get("isApproved", False):
        raise Forbidden("Your seller account is pending admin approval.")

    access_token = utils.create_access_token(utils.Identity(id=str(user["_id"]), role=user["role"]))
    logger.info("Login succeeded for %s (%s)", user["_id"], user["role"])

    return {
        "message": "Login successful",
        "token": access_token,
        "user": account_summary(user),
    }
