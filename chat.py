import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import crud
from errors import Conflict, NotFound, Unauthorized, ValidationError
from models import ChatMessage, SenderType, ShopChat, TicketMessage
from roles import Principal, acting_shop_ids, has_admin_access
from tickets import can_read_ticket

logger = logging.getLogger(__name__)

CHAT_GREETING = "Чат создан. Вы можете начать общение с магазином."


def _require_body(body: str) -> str:
    body = (body or "").strip()
    if not body:
        raise ValidationError("Отсутствует текст сообщения")
    return body


# СООБЩЕНИЯ В ОБРАЩЕНИЯХ

def _readable_ticket(db: Session, ticket_id: int, principal: Principal):
    ticket = crud.get_ticket(db, ticket_id)
    if ticket is None:
        raise NotFound("Обращение не найдено")
    if not can_read_ticket(ticket, principal):
        raise Unauthorized("Доступ запрещен")
    return ticket


def append_ticket_message(db: Session, ticket_id: int, principal: Principal, body: str) -> TicketMessage:
    ticket = _readable_ticket(db, ticket_id, principal)
    body = _require_body(body)
    # Закрытое обращение принимает только чтение
    if ticket.is_terminal:
        raise Conflict("Обращение закрыто")

    message = crud.add_ticket_message(db, ticket.id, body, author_id=principal.user_id)
    crud.commit(db)
    db.refresh(message)
    return message


def list_ticket_messages(db: Session, ticket_id: int, principal: Principal) -> List[TicketMessage]:
    _readable_ticket(db, ticket_id, principal)
    return crud.get_ticket_messages(db, ticket_id)


# ЧАТЫ С МАГАЗИНАМИ

def _is_shop_side(chat: ShopChat, principal: Principal) -> bool:
    return has_admin_access(principal.role) or chat.shop_id in acting_shop_ids(principal.role, principal.shop_ids)


def _sender_type(chat: ShopChat, principal: Principal) -> str:
    if chat.user_id == principal.user_id:
        return SenderType.USER
    if _is_shop_side(chat, principal):
        return SenderType.SHOP
    raise Unauthorized("Доступ запрещен")


def _load_chat(db: Session, chat_id: int) -> ShopChat:
    chat = crud.get_chat(db, chat_id)
    if chat is None:
        raise NotFound("Чат не найден")
    return chat


def get_or_create_chat(db: Session, shop_id: int, principal: Principal) -> ShopChat:
    """Возвращает чат покупателя с магазином, создавая его при первом обращении."""
    if crud.get_shop(db, shop_id) is None:
        raise NotFound("Магазин не найден")

    chat = crud.get_chat_by_pair(db, shop_id, principal.user_id)
    if chat is not None:
        return chat

    chat = ShopChat(shop_id=shop_id, user_id=principal.user_id)
    db.add(chat)
    try:
        db.flush()
    except IntegrityError:
        # Параллельный запрос уже создал чат для этой пары
        db.rollback()
        return crud.get_chat_by_pair(db, shop_id, principal.user_id)

    crud.add_chat_message(db, chat, SenderType.SYSTEM, CHAT_GREETING, is_read=True)
    crud.commit(db)
    db.refresh(chat)
    logger.info(f"Shop chat {chat.id} created for shop {shop_id} and user {principal.user_id}")
    return chat


def get_chat(db: Session, chat_id: int, principal: Principal) -> ShopChat:
    chat = _load_chat(db, chat_id)
    _sender_type(chat, principal)
    return chat


def append_chat_message(db: Session, chat_id: int, principal: Principal, body: str) -> ChatMessage:
    chat = _load_chat(db, chat_id)
    sender_type = _sender_type(chat, principal)
    body = _require_body(body)

    message = crud.add_chat_message(db, chat, sender_type, body, author_id=principal.user_id)
    crud.commit(db)
    db.refresh(message)
    return message


def list_chat_messages(db: Session, chat_id: int, principal: Principal, mark_read: bool = True) -> List[ChatMessage]:
    chat = _load_chat(db, chat_id)
    sender_type = _sender_type(chat, principal)

    messages = crud.get_chat_messages(db, chat.id)
    if mark_read:
        # Читатель отмечает прочитанными сообщения другой стороны
        counterpart = SenderType.SHOP if sender_type == SenderType.USER else SenderType.USER
        if crud.mark_chat_messages_read(db, chat.id, counterpart):
            crud.commit(db)
    return messages


def list_user_chats(db: Session, principal: Principal) -> List[ShopChat]:
    return crud.get_chats_by_user(db, principal.user_id)


def list_shop_chats(db: Session, shop_id: int, principal: Principal) -> List[ShopChat]:
    if crud.get_shop(db, shop_id) is None:
        raise NotFound("Магазин не найден")
    if not has_admin_access(principal.role) and shop_id not in acting_shop_ids(principal.role, principal.shop_ids):
        raise Unauthorized("Доступ запрещен")
    return crud.get_chats_by_shops(db, {shop_id})
