import logging
from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy import update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import Internal
from models import (
    BlockLogEntry, ChatMessage, Shop, ShopChat, ShopStaff,
    Ticket, TicketMessage, User,
)

logger = logging.getLogger(__name__)


def commit(db: Session):
    # Все изменения одной операции уходят одной транзакцией, либо не уходят вовсе
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Store commit failed: {exc}")
        raise Internal("Ошибка хранилища") from exc


# ПОЛЬЗОВАТЕЛИ
def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()

def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


# МАГАЗИНЫ
def get_shop(db: Session, shop_id: int) -> Optional[Shop]:
    return db.query(Shop).filter(Shop.id == shop_id).first()

def get_staff_shop_ids(db: Session, user_id: int) -> Set[int]:
    # Магазины, где пользователь владелец или числится в штате
    owned = db.query(Shop.id).filter(Shop.owner_id == user_id).all()
    staffed = db.query(ShopStaff.shop_id).filter(ShopStaff.user_id == user_id).all()
    return {row[0] for row in owned} | {row[0] for row in staffed}


# ОБРАЩЕНИЯ
def get_ticket(db: Session, ticket_id: int) -> Optional[Ticket]:
    return db.query(Ticket).filter(Ticket.id == ticket_id).first()

def add_ticket(
    db: Session,
    reporter_id: int,
    title: str,
    description: str,
    shop_id: Optional[int] = None,
    target_user_id: Optional[int] = None
) -> Ticket:
    # Добавляет обращение в сессию без коммита, чтобы вместе с ним ушло системное сообщение
    db_ticket = Ticket(
        reporter_id=reporter_id,
        title=title,
        description=description,
        shop_id=shop_id,
        target_user_id=target_user_id
    )
    db.add(db_ticket)
    db.flush()
    return db_ticket

def query_tickets(
    db: Session,
    platform: bool = True,
    shop_ids: Optional[Set[int]] = None,
    status: Optional[str] = None
) -> List[Ticket]:
    """Обращения площадки (platform=True) и/или магазинов из shop_ids.

    shop_ids=None означает все магазины, пустое множество - ни одного.
    """
    conditions = []
    if platform:
        conditions.append(Ticket.shop_id.is_(None))
    if shop_ids is None:
        conditions.append(Ticket.shop_id.isnot(None))
    elif shop_ids:
        conditions.append(Ticket.shop_id.in_(list(shop_ids)))
    if not conditions:
        return []

    query = db.query(Ticket).filter(or_(*conditions))
    if status is not None:
        query = query.filter(Ticket.status == status)
    return query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()

def get_tickets_by_reporter(db: Session, reporter_id: int) -> List[Ticket]:
    return db.query(Ticket)\
        .filter(Ticket.reporter_id == reporter_id)\
        .order_by(Ticket.created_at.desc(), Ticket.id.desc())\
        .all()

def update_ticket_if_status(db: Session, ticket_id: int, expected_status: str, **values) -> bool:
    # Сравнение-с-обменом: строка меняется, только если статус в БД все еще expected_status
    result = db.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# СООБЩЕНИЯ ОБРАЩЕНИЙ
def add_ticket_message(db: Session, ticket_id: int, body: str,
                       author_id: Optional[int] = None, is_system: bool = False) -> TicketMessage:
    message = TicketMessage(
        ticket_id=ticket_id,
        author_id=author_id,
        body=body,
        is_system=is_system,
        created_at=datetime.utcnow()
    )
    db.add(message)
    return message

def get_ticket_messages(db: Session, ticket_id: int) -> List[TicketMessage]:
    return db.query(TicketMessage)\
        .filter(TicketMessage.ticket_id == ticket_id)\
        .order_by(TicketMessage.created_at, TicketMessage.id)\
        .all()


# ЧАТЫ МАГАЗИНОВ
def get_chat(db: Session, chat_id: int) -> Optional[ShopChat]:
    return db.query(ShopChat).filter(ShopChat.id == chat_id).first()

def get_chat_by_pair(db: Session, shop_id: int, user_id: int) -> Optional[ShopChat]:
    return db.query(ShopChat)\
        .filter(ShopChat.shop_id == shop_id, ShopChat.user_id == user_id)\
        .first()

def get_chats_by_user(db: Session, user_id: int) -> List[ShopChat]:
    return db.query(ShopChat)\
        .filter(ShopChat.user_id == user_id)\
        .order_by(ShopChat.last_message_at.desc())\
        .all()

def get_chats_by_shops(db: Session, shop_ids: Set[int]) -> List[ShopChat]:
    if not shop_ids:
        return []
    return db.query(ShopChat)\
        .filter(ShopChat.shop_id.in_(list(shop_ids)))\
        .order_by(ShopChat.last_message_at.desc())\
        .all()

def add_chat_message(db: Session, chat: ShopChat, sender_type: str, body: str,
                     author_id: Optional[int] = None, is_read: bool = False) -> ChatMessage:
    # Сообщение и сдвиг last_message_at коммитятся вместе
    message = ChatMessage(
        chat_id=chat.id,
        author_id=author_id,
        sender_type=sender_type,
        body=body,
        is_read=is_read,
        created_at=datetime.utcnow()
    )
    db.add(message)
    chat.last_message_at = message.created_at
    return message

def get_chat_messages(db: Session, chat_id: int) -> List[ChatMessage]:
    return db.query(ChatMessage)\
        .filter(ChatMessage.chat_id == chat_id)\
        .order_by(ChatMessage.created_at, ChatMessage.id)\
        .all()

def mark_chat_messages_read(db: Session, chat_id: int, sender_type: str) -> int:
    # Прочитанными отмечаются сообщения противоположной стороны
    return db.query(ChatMessage)\
        .filter(
            ChatMessage.chat_id == chat_id,
            ChatMessage.sender_type == sender_type,
            ChatMessage.is_read.is_(False)
        )\
        .update({ChatMessage.is_read: True}, synchronize_session=False)

def count_chats_with_unread(db: Session, sender_type: str, *chat_conditions) -> int:
    # Количество чатов (не сообщений), где есть непрочитанные сообщения от sender_type
    return db.query(ShopChat.id)\
        .join(ChatMessage, ChatMessage.chat_id == ShopChat.id)\
        .filter(
            *chat_conditions,
            ChatMessage.is_read.is_(False),
            ChatMessage.sender_type == sender_type
        )\
        .distinct()\
        .count()


# ЖУРНАЛ БЛОКИРОВОК
def add_block_log(db: Session, user_id: int, action: str, actor_id: Optional[int],
                  reason: Optional[str] = None, duration: Optional[str] = None) -> BlockLogEntry:
    entry = BlockLogEntry(
        user_id=user_id,
        action=action,
        actor_id=actor_id,
        reason=reason,
        duration=duration,
        created_at=datetime.utcnow()
    )
    db.add(entry)
    return entry

def get_block_log(db: Session, user_id: int) -> List[BlockLogEntry]:
    return db.query(BlockLogEntry)\
        .filter(BlockLogEntry.user_id == user_id)\
        .order_by(BlockLogEntry.created_at, BlockLogEntry.id)\
        .all()

