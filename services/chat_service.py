"""
Chat rooms and messages between one buyer and one seller.

Everything here is blocking pymongo work; async callers run these
functions through ``run_in_threadpool``. The REST routes and the
Socket.IO handlers both go through this module, so the store is always
written before anything is broadcast.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from database import CHATROOMS, CUSTOMERS, MESSAGES, PRODUCTS, SELLERS, get_collection, parse_object_id, serialize
from errors import Conflict, Forbidden, NotFound, ValidationFailed

logger = logging.getLogger("CHAT_CORE")

CHAT_ROLES = ("buyer", "seller")


class Participant(BaseModel):
    """A chat participant: an id tagged with the collection it lives in."""
    id: str
    role: Literal["buyer", "seller"]

    @classmethod
    def from_identity(cls, identity) -> "Participant":
        if identity.role not in CHAT_ROLES:
            raise Forbidden("Forbidden: Only buyers and sellers can take part in chats.")
        return cls(id=identity.id, role=identity.role)

    @property
    def collection(self) -> str:
        return CUSTOMERS if self.role == "buyer" else SELLERS

    @property
    def model_name(self) -> str:
        # Tag stored on messages, since senders live in different collections.
        return "Customer" if self.role == "buyer" else "Seller"

    @property
    def unread_field(self) -> str:
        return f"{self.role}UnreadCount"

    @property
    def room_key(self) -> str:
        return f"{self.role}Id"

    def exists(self) -> bool:
        oid = parse_object_id(self.id, "Participant")
        return get_collection(self.collection).find_one({"_id": oid}, {"_id": 1}) is not None

    def display_name(self) -> str:
        doc = get_collection(self.collection).find_one(
            {"_id": parse_object_id(self.id, "Participant")},
            {"firstName": 1, "lastName": 1, "shopName": 1},
        )
        if not doc:
            return "Deleted Buyer" if self.role == "buyer" else "Deleted Seller"
        full_name = f"{doc.get('firstName', '')} {doc.get('lastName', '')}".strip()
        if self.role == "seller":
            return doc.get("shopName") or full_name
        return full_name

    def counterpart(self, room: Dict[str, Any]) -> "Participant":
        other_role = "seller" if self.role == "buyer" else "buyer"
        return Participant(id=str(room["participantRoles"][f"{other_role}Id"]), role=other_role)

    def belongs_to(self, room: Dict[str, Any]) -> bool:
        return self.id in room.get("participants", []) and room["participantRoles"].get(self.room_key) == self.id


def canonical_pair(first_id: str, second_id: str) -> List[str]:
    """Both ids sorted as raw strings; the sorted pair identifies the room."""
    return sorted([str(first_id), str(second_id)])


def pair_key(first_id: str, second_id: str) -> str:
    return ":".join(canonical_pair(first_id, second_id))


# --- Rooms ---

def resolve_room(buyer_id: str, seller_id: str, product_id: Optional[str] = None) -> Tuple[Dict[str, Any], bool]:
    """Returns ``(room, created)``. Repeated calls for the same pair return the same room.

    The lookup and the insert are not atomic; the unique index on
    ``pairKey`` turns a lost race into a Conflict.
    """
    buyer = Participant(id=buyer_id, role="buyer")
    seller = Participant(id=seller_id, role="seller")
    product_oid = parse_object_id(product_id, "Product") if product_id else None

    # Seller approval is not consulted; it gates listings and login only.
    if not buyer.exists() or not seller.exists():
        raise NotFound("One or both participants not found.")

    rooms = get_collection(CHATROOMS)
    key = pair_key(buyer.id, seller.id)
    room = rooms.find_one({"pairKey": key})
    if room:
        return room, False

    now = datetime.now(timezone.utc)
    room = {
        "participants": canonical_pair(buyer.id, seller.id),
        "pairKey": key,
        "participantRoles": {"buyerId": buyer.id, "sellerId": seller.id},
        "productId": product_oid,
        "lastMessageText": None,
        "lastMessageSenderId": None,
        "lastMessageTimestamp": None,
        "buyerUnreadCount": 0,
        "sellerUnreadCount": 0,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = rooms.insert_one(room)
    except DuplicateKeyError:
        raise Conflict("Chat already exists for these participants.", status_code=409)
    room["_id"] = result.inserted_id
    logger.info("Chat room %s created for buyer %s and seller %s", result.inserted_id, buyer.id, seller.id)
    return room, True


def get_room_for_participant(chat_id: str, participant: Participant) -> Dict[str, Any]:
    oid = parse_object_id(chat_id, "Chat")
    room = get_collection(CHATROOMS).find_one({"_id": oid})
    if not room:
        raise NotFound("Chat room not found.")
    if not participant.belongs_to(room):
        raise Forbidden("Forbidden: You are not a participant in this chat.")
    return room


def list_rooms(participant: Participant) -> List[Dict[str, Any]]:
    rooms = list(
        get_collection(CHATROOMS)
        .find({"participants": participant.id, f"participantRoles.{participant.room_key}": participant.id})
        .sort("updatedAt", DESCENDING)
    )

    product_ids = list({r["productId"] for r in rooms if r.get("productId")})
    product_names = {}
    if product_ids:
        for p in get_collection(PRODUCTS).find({"_id": {"$in": product_ids}}, {"name": 1}):
            product_names[p["_id"]] = p.get("name")

    chat_list = []
    for room in rooms:
        other = participant.counterpart(room)
        product_id = room.get("productId")
        chat_list.append(serialize({
            "chatId": room["_id"],
            "otherParticipantId": other.id,
            "otherParticipantName": other.display_name(),
            "otherParticipantType": other.model_name,
            "lastMessageText": room.get("lastMessageText"),
            "lastMessageSenderId": room.get("lastMessageSenderId"),
            "lastMessageTimestamp": room.get("lastMessageTimestamp"),
            "unreadCount": room.get(participant.unread_field, 0),
            "productName": product_names.get(product_id),
            "productId": product_id if product_id in product_names else None,
        }))
    return chat_list


# --- Messages ---

def list_messages(room: Dict[str, Any]) -> List[Dict[str, Any]]:
    cursor = get_collection(MESSAGES).find({"chatRoom": room["_id"]}).sort(
        [("timestamp", ASCENDING), ("_id", ASCENDING)]
    )
    return [serialize(m) for m in cursor]


def record_message(chat_id: str, sender_id: str, sender_role: str, text: str) -> Dict[str, Any]:
    """Persists a message and updates the room preview and the recipient's unread counter.

    Raises before writing anything when the message is not acceptable.
    """
    text = (text or "").strip() if isinstance(text, str) else ""
    if not text:
        raise ValidationFailed("Message text is required")
    if sender_role not in CHAT_ROLES or not sender_id:
        raise Forbidden("Forbidden: Only buyers and sellers can send messages.")

    sender = Participant(id=str(sender_id), role=sender_role)
    room = get_room_for_participant(chat_id, sender)
    recipient = sender.counterpart(room)

    now = datetime.now(timezone.utc)
    message = {
        "chatRoom": room["_id"],
        "sender": parse_object_id(sender.id, "Sender"),
        "senderModel": sender.model_name,
        "text": text,
        "timestamp": now,
    }
    result = get_collection(MESSAGES).insert_one(message)
    message["_id"] = result.inserted_id

    # Only the recipient's counter moves; the sender's own is never touched.
    get_collection(CHATROOMS).update_one(
        {"_id": room["_id"]},
        {
            "$set": {
                "lastMessageText": text,
                "lastMessageSenderId": sender.id,
                "lastMessageTimestamp": now,
                "updatedAt": now,
            },
            "$inc": {recipient.unread_field: 1},
        },
    )
    logger.info("Message %s stored in chat %s from %s %s", result.inserted_id, room["_id"], sender.role, sender.id)
    return serialize(message)


def mark_read(room: Dict[str, Any], participant: Participant) -> bool:
    """Zeroes the caller's own unread counter. False when it was already zero."""
    result = get_collection(CHATROOMS).update_one(
        {"_id": room["_id"], participant.unread_field: {"$gt": 0}},
        {"$set": {participant.unread_field: 0}},
    )
    return result.modified_count > 0
