import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool

from auth import schemas as auth_schemas, utils as auth_utils
from auth.router import create_admin_account
from database import ADMINS, CUSTOMERS, SELLERS, get_collection, parse_object_id, serialize
from errors import NotFound, ValidationFailed

logger = logging.getLogger("ADMIN")

router = APIRouter(prefix="/admin", tags=["Admin"])

admin_only = auth_utils.require_roles("admin")
superadmin_only = auth_utils.require_roles("superadmin")


# --- Reusable lookup ---
async def get_seller_or_404(seller_id: str) -> Dict[str, Any]:
    oid = parse_object_id(seller_id, "Seller")
    seller = await run_in_threadpool(get_collection(SELLERS).find_one, {"_id": oid})
    if not seller:
        raise NotFound("Seller not found")
    return seller


async def get_admin_or_404(admin_id: str) -> Dict[str, Any]:
    oid = parse_object_id(admin_id, "Admin")
    admin = await run_in_threadpool(get_collection(ADMINS).find_one, {"_id": oid})
    if not admin:
        raise NotFound("Admin user not found")
    return admin


def list_all(collection: str, query: Dict[str, Any] = None):
    return [serialize(doc) for doc in get_collection(collection).find(query or {})]


# --- Bootstrap ---

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_admin(data: auth_schemas.AdminCreate):
    # Public bootstrap route; it can only ever create the lower admin rank.
    admin = await run_in_threadpool(create_admin_account, data, "admin")
    return {"message": "Admin registered successfully", "admin": {"id": str(admin["_id"]), "email": admin["email"]}}


# --- Seller approval ---

@router.get("/sellers/pending")
async def list_pending_sellers(current_user=Depends(admin_only)):
    return await run_in_threadpool(list_all, SELLERS, {"isApproved": False})


@router.get("/sellers")
async def list_sellers(current_user=Depends(admin_only)):
    return await run_in_threadpool(list_all, SELLERS)


async def set_seller_approval(seller_id: str, approved: bool) -> Dict[str, Any]:
    seller = await get_seller_or_404(seller_id)
    if bool(seller.get("isApproved", False)) == approved:
        raise ValidationFailed("Seller is already approved" if approved else "Seller is already not approved")

    await run_in_threadpool(
        get_collection(SELLERS).update_one,
        {"_id": seller["_id"]},
        {"$set": {"isApproved": approved}},
    )
    seller["isApproved"] = approved
    return seller


@router.put("/sellers/{seller_id}/approve")
async def approve_seller(seller_id: str, current_user: auth_utils.Identity = Depends(admin_only)):
    seller = await set_seller_approval(seller_id, True)
    logger.info("Seller %s approved by %s", seller_id, current_user.id)
    return {"message": f"Seller {seller.get('shopName')} approved successfully", "seller": serialize(seller)}


@router.put("/sellers/{seller_id}/reject")
async def reject_seller(seller_id: str, current_user: auth_utils.Identity = Depends(admin_only)):
    # Existing listings of a rejected seller stay visible.
    seller = await set_seller_approval(seller_id, False)
    logger.info("Seller %s rejected by %s", seller_id, current_user.id)
    return {"message": f"Seller {seller.get('shopName')} rejected/deactivated", "seller": serialize(seller)}


# --- Users ---

@router.get("/customers")
async def list_customers(current_user=Depends(admin_only)):
    return await run_in_threadpool(list_all, CUSTOMERS)


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, current_user: auth_utils.Identity = Depends(admin_only)):
    oid = parse_object_id(user_id, "User")
    user = await run_in_threadpool(get_collection(CUSTOMERS).find_one_and_delete, {"_id": oid})
    if not user:
        user = await run_in_threadpool(get_collection(SELLERS).find_one_and_delete, {"_id": oid})
    if not user:
        raise NotFound("User not found")

    logger.info("User %s (%s) deleted by %s", user_id, user.get("role"), current_user.id)
    return {"message": f"User with ID {user_id} ({user.get('role')}) deleted successfully"}


@router.get("/users/total-count")
async def total_user_count(current_user=Depends(admin_only)):
    def count():
        return sum(get_collection(name).count_documents({}) for name in (CUSTOMERS, SELLERS, ADMINS))

    return {"totalUsers": await run_in_threadpool(count)}


# --- Admin management (superadmin only) ---

@router.post("/admin-management/create-admin", status_code=status.HTTP_201_CREATED)
async def create_admin(data: auth_schemas.AdminCreate, current_user=Depends(superadmin_only)):
    admin = await run_in_threadpool(create_admin_account, data, data.role)
    return {
        "message": f"Admin ({admin['role']}) registered successfully",
        "admin": {"id": str(admin["_id"]), "email": admin["email"], "role": admin["role"]},
    }


@router.get("/admin-management/all-admins")
async def list_admins(current_user=Depends(superadmin_only)):
    return await run_in_threadpool(list_all, ADMINS)


@router.put("/admin-management/{admin_id}/change-role")
async def change_admin_role(
    admin_id: str,
    payload: auth_schemas.RoleChange,
    current_user: auth_utils.Identity = Depends(superadmin_only),
):
    admin = await get_admin_or_404(admin_id)
    if str(admin["_id"]) == current_user.id and payload.role == "admin":
        raise ValidationFailed("Super Admin cannot demote themselves. Ask another Super Admin.")

    await run_in_threadpool(
        get_collection(ADMINS).update_one,
        {"_id": admin["_id"]},
        {"$set": {"role": payload.role}},
    )
    admin["role"] = payload.role
    logger.info("Admin %s role changed to %s by %s", admin_id, payload.role, current_user.id)
    return {"message": f"Admin {admin['email']} role updated to {payload.role}", "admin": serialize(admin)}


@router.delete("/admin-management/{admin_id}")
async def delete_admin(admin_id: str, current_user: auth_utils.Identity = Depends(superadmin_only)):
    admin = await get_admin_or_404(admin_id)
    if str(admin["_id"]) == current_user.id:
        raise ValidationFailed("Super Admin cannot delete themselves. Ask another Super Admin.")

    admins = get_collection(ADMINS)
    if admin["role"] == "superadmin":
        superadmin_count = await run_in_threadpool(admins.count_documents, {"role": "superadmin"})
        if superadmin_count <= 1:
            raise ValidationFailed("Cannot delete the last Super Admin. Create another Super Admin first.")

    await run_in_threadpool(admins.delete_one, {"_id": admin["_id"]})
    logger.info("Admin %s deleted by %s", admin_id, current_user.id)
    return {"message": f"Admin user {admin['email']} deleted successfully"}
