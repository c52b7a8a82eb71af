# routers/users.py

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from auth import utils as auth_utils
from database import collection_for_role, parse_object_id, serialize
from errors import NotFound

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)

@router.get("/me")
async def read_users_me(current_user: auth_utils.Identity = Depends(auth_utils.get_current_user)):
    # The token only carries id + role, so the profile is read from that role's collection.
    doc = await run_in_threadpool(
        collection_for_role(current_user.role).find_one,
        {"_id": parse_object_id(current_user.id, "User")},
    )
    if not doc:
        raise NotFound("User not found")
    return {"message": "Profile retrieved", "user": serialize(doc)}
