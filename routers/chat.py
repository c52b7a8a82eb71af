from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, field_validator

from auth import utils as auth_utils
from services import chat_service
from services.chat_service import Participant

router = APIRouter(prefix="/chat", tags=["Chat"])

chat_member = auth_utils.require_roles("buyer", "seller")


class ChatInitiate(BaseModel):
    participantId: str
    productId: Optional[str] = None

    @field_validator("participantId")
    @classmethod
    def check_participant(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Participant ID is required")
        return v


@router.post("/initiate")
async def initiate_chat(
    payload: ChatInitiate,
    response: Response,
    current_user: auth_utils.Identity = Depends(chat_member),
):
    me = Participant.from_identity(current_user)
    if me.role == "buyer":
        buyer_id, seller_id = me.id, payload.participantId
    else:
        buyer_id, seller_id = payload.participantId, me.id

    room, created = await run_in_threadpool(chat_service.resolve_room, buyer_id, seller_id, payload.productId)

    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return {
        "message": "Chat initiated successfully." if created else "Existing chat retrieved.",
        "chatId": str(room["_id"]),
        "participants": {
            "buyerId": room["participantRoles"]["buyerId"],
            "sellerId": room["participantRoles"]["sellerId"],
            "productId": str(room["productId"]) if room.get("productId") else None,
        },
    }


@router.get("/list")
async def list_chats(current_user: auth_utils.Identity = Depends(chat_member)):
    return await run_in_threadpool(chat_service.list_rooms, Participant.from_identity(current_user))


@router.get("/messages/{chat_id}")
async def get_messages(chat_id: str, current_user: auth_utils.Identity = Depends(chat_member)):
    me = Participant.from_identity(current_user)

    def load():
        room = chat_service.get_room_for_participant(chat_id, me)
        return chat_service.list_messages(room)

    return await run_in_threadpool(load)


@router.post("/{chat_id}/mark-read")
async def mark_chat_read(chat_id: str, current_user: auth_utils.Identity = Depends(chat_member)):
    me = Participant.from_identity(current_user)

    def clear():
        room = chat_service.get_room_for_participant(chat_id, me)
        return chat_service.mark_read(room, me)

    cleared = await run_in_threadpool(clear)
    return {"message": "Chat marked as read." if cleared else "No unread messages to mark."}
