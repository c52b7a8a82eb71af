import pytest
from bson import ObjectId

import database
from errors import ValidationFailed
from services import chat_service


def start_chat(client, starter, other, **extra):
    return client.post("/api/chat/initiate", json={"participantId": other["id"], **extra}, headers=starter["headers"])


def test_same_pair_resolves_to_one_room_from_either_side(client, account):
    buyer = account("buyer")
    seller = account("seller")

    first = start_chat(client, buyer, seller)
    assert first.status_code == 201
    assert first.json()["message"] == "Chat initiated successfully."

    second = start_chat(client, seller, buyer)
    assert second.status_code == 200
    assert second.json()["message"] == "Existing chat retrieved."
    assert second.json()["chatId"] == first.json()["chatId"]

    third = start_chat(client, buyer, seller)
    assert third.json()["chatId"] == first.json()["chatId"]
    assert database.get_collection(database.CHATROOMS).count_documents({}) == 1


def test_room_stores_sorted_pair_and_roles(client, account):
    buyer = account("buyer")
    seller = account("seller")
    chat_id = start_chat(client, seller, buyer).json()["chatId"]

    room = database.get_collection(database.CHATROOMS).find_one({"_id": ObjectId(chat_id)})
    assert room["participants"] == sorted([buyer["id"], seller["id"]])
    assert room["participantRoles"] == {"buyerId": buyer["id"], "sellerId": seller["id"]}
    assert room["buyerUnreadCount"] == 0
    assert room["sellerUnreadCount"] == 0


def test_unapproved_seller_can_chat(client, account):
    buyer = account("buyer")
    seller = account("seller", isApproved=False)
    assert start_chat(client, buyer, seller).status_code == 201


def test_initiate_errors(client, account):
    buyer = account("buyer")
    admin = account("admin")
    seller = account("seller")

    assert start_chat(client, admin, seller).status_code == 403
    response = client.post("/api/chat/initiate", json={"participantId": str(ObjectId())}, headers=buyer["headers"])
    assert response.status_code == 404
    response = client.post("/api/chat/initiate", json={"participantId": "nope"}, headers=buyer["headers"])
    assert response.status_code == 400
    response = client.post("/api/chat/initiate", json={}, headers=buyer["headers"])
    assert response.status_code == 400
    assert "participantId is required" in response.json()["errors"]


def test_initiate_with_product_context(client, account, mongo):
    buyer = account("buyer")
    seller = account("seller")
    product_id = mongo[database.PRODUCTS].insert_one({"name": "Kettle", "seller": ObjectId(seller["id"])}).inserted_id

    response = start_chat(client, buyer, seller, productId=str(product_id))
    assert response.json()["participants"]["productId"] == str(product_id)

    chats = client.get("/api/chat/list", headers=buyer["headers"]).json()
    assert chats[0]["productName"] == "Kettle"
    assert chats[0]["productId"] == str(product_id)


def test_unread_counters_move_for_the_recipient_only(client, account):
    buyer = account("buyer")
    seller = account("seller")
    chat_id = start_chat(client, buyer, seller).json()["chatId"]

    chat_service.record_message(chat_id, buyer["id"], "buyer", "Is this in stock?")
    chat_service.record_message(chat_id, buyer["id"], "buyer", "Hello?")

    room = database.get_collection(database.CHATROOMS).find_one({"_id": ObjectId(chat_id)})
    assert room["sellerUnreadCount"] == 2
    assert room["buyerUnreadCount"] == 0
    assert room["lastMessageText"] == "Hello?"
    assert room["lastMessageSenderId"] == buyer["id"]

    response = client.post(f"/api/chat/{chat_id}/mark-read", headers=seller["headers"])
    assert response.json()["message"] == "Chat marked as read."
    response = client.post(f"/api/chat/{chat_id}/mark-read", headers=seller["headers"])
    assert response.json()["message"] == "No unread messages to mark."

    room = database.get_collection(database.CHATROOMS).find_one({"_id": ObjectId(chat_id)})
    assert room["sellerUnreadCount"] == 0
    assert room["buyerUnreadCount"] == 0


def test_history_is_ordered_and_private(client, account):
    buyer = account("buyer")
    seller = account("seller")
    stranger = account("buyer")
    chat_id = start_chat(client, buyer, seller).json()["chatId"]

    chat_service.record_message(chat_id, buyer["id"], "buyer", "one")
    chat_service.record_message(chat_id, seller["id"], "seller", "two")
    chat_service.record_message(chat_id, buyer["id"], "buyer", "three")

    messages = client.get(f"/api/chat/messages/{chat_id}", headers=seller["headers"]).json()
    assert [m["text"] for m in messages] == ["one", "two", "three"]
    assert [m["senderModel"] for m in messages] == ["Customer", "Seller", "Customer"]
    assert all(m["chatRoom"] == chat_id for m in messages)

    assert client.get(f"/api/chat/messages/{chat_id}", headers=stranger["headers"]).status_code == 403
    assert client.post(f"/api/chat/{chat_id}/mark-read", headers=stranger["headers"]).status_code == 403
    assert client.get(f"/api/chat/messages/{ObjectId()}", headers=buyer["headers"]).status_code == 404


def test_chat_list_newest_first_with_names(client, account):
    buyer = account("buyer", firstName="Asha", lastName="Rao")
    shop_a = account("seller", shopName="Shop A")
    shop_b = account("seller", shopName="Shop B")
    chat_a = start_chat(client, buyer, shop_a).json()["chatId"]
    start_chat(client, buyer, shop_b)

    chat_service.record_message(chat_a, shop_a["id"], "seller", "We ship tomorrow")

    chats = client.get("/api/chat/list", headers=buyer["headers"]).json()
    assert [c["otherParticipantName"] for c in chats] == ["Shop A", "Shop B"]
    assert chats[0]["unreadCount"] == 1
    assert chats[0]["otherParticipantType"] == "Seller"

    seller_view = client.get("/api/chat/list", headers=shop_a["headers"]).json()
    assert seller_view[0]["otherParticipantName"] == "Asha Rao"
    assert seller_view[0]["unreadCount"] == 0


def test_deleted_counterpart_gets_placeholder_name(client, account, mongo):
    buyer = account("buyer")
    seller = account("seller")
    start_chat(client, buyer, seller)
    mongo[database.SELLERS].delete_one({"_id": seller["_id"]})

    chats = client.get("/api/chat/list", headers=buyer["headers"]).json()
    assert chats[0]["otherParticipantName"] == "Deleted Seller"


def test_record_message_rejects_blank_text(client, account):
    buyer = account("buyer")
    seller = account("seller")
    chat_id = start_chat(client, buyer, seller).json()["chatId"]

    with pytest.raises(ValidationFailed, match="Message text is required"):
        chat_service.record_message(chat_id, buyer["id"], "buyer", "   ")
    assert database.get_collection(database.MESSAGES).count_documents({}) == 0


def test_mark_read_leaves_the_other_counter_alone(client, account):
    buyer = account("buyer")
    seller = account("seller")
    chat_id = start_chat(client, buyer, seller).json()["chatId"]

    chat_service.record_message(chat_id, buyer["id"], "buyer", "a")
    chat_service.record_message(chat_id, seller["id"], "seller", "b")
    chat_service.record_message(chat_id, seller["id"], "seller", "c")

    response = client.post(f"/api/chat/{chat_id}/mark-read", headers=seller["headers"])
    assert response.json()["message"] == "Chat marked as read."

    room = database.get_collection(database.CHATROOMS).find_one({"_id": ObjectId(chat_id)})
    assert room["sellerUnreadCount"] == 0
    assert room["buyerUnreadCount"] == 2
