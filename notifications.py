"""Счетчики уведомлений пользователя.

Пересчитываются на каждый запрос, ничего не кэшируется. Все пять полей
независимы: сложение для бейджей (complaints + chats и т.п.) делает клиент.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Protocol

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

import crud
from errors import NotFound
from models import SenderType, ShopChat, Ticket, TicketStatus
from roles import Principal, acting_shop_ids, has_admin_access
from security import resolve_principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationCounts:
    chats: int = 0
    notifications: int = 0
    complaints: int = 0
    shop_complaints: int = 0
    shop_chats: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class NotificationSource(Protocol):
    # Внешний сервис системных уведомлений: ядро только берет готовое число
    def count_for(self, user_id: int) -> int:
        ...


class NullNotificationSource:
    def count_for(self, user_id: int) -> int:
        return 0


def get_notification_source() -> NotificationSource:
    return NullNotificationSource()


def _actionable(user_id: int):
    # В ожидании или в работе у самого пользователя
    return or_(
        Ticket.status == TicketStatus.PENDING,
        and_(Ticket.status == TicketStatus.IN_PROGRESS, Ticket.assigned_to_id == user_id)
    )


def count_platform_complaints(db: Session, principal: Principal) -> int:
    if not has_admin_access(principal.role):
        return 0
    return db.query(Ticket)\
        .filter(Ticket.shop_id.is_(None), _actionable(principal.user_id))\
        .count()


def count_shop_complaints(db: Session, principal: Principal) -> int:
    shop_ids = list(acting_shop_ids(principal.role, principal.shop_ids))
    if not shop_ids:
        return 0
    return db.query(Ticket)\
        .filter(Ticket.shop_id.in_(shop_ids), _actionable(principal.user_id))\
        .count()


def count_customer_chats(db: Session, principal: Principal) -> int:
    # Непрочитанные ответы магазина в чатах, где пользователь - покупатель
    return crud.count_chats_with_unread(db, SenderType.SHOP, ShopChat.user_id == principal.user_id)


def count_staff_chats(db: Session, principal: Principal) -> int:
    # Те же магазины, что и для shop_complaints
    shop_ids = list(acting_shop_ids(principal.role, principal.shop_ids))
    if not shop_ids:
        return 0
    return crud.count_chats_with_unread(
        db, SenderType.USER,
        ShopChat.shop_id.in_(shop_ids),
        ShopChat.user_id != principal.user_id
    )


def counts_for_principal(db: Session, principal: Principal, source: NotificationSource) -> NotificationCounts:
    return NotificationCounts(
        chats=count_customer_chats(db, principal),
        notifications=max(0, int(source.count_for(principal.user_id))),
        complaints=count_platform_complaints(db, principal),
        shop_complaints=count_shop_complaints(db, principal),
        shop_chats=count_staff_chats(db, principal),
    )


def get_counts(db: Session, user_id: int, source: NotificationSource = None) -> NotificationCounts:
    user = crud.get_user(db, user_id)
    if user is None:
        raise NotFound("Пользователь не найден")
    principal = resolve_principal(db, user)
    counts = counts_for_principal(db, principal, source or NullNotificationSource())
    logger.debug(f"Notification counts for user {user_id}: {counts}")
    return counts
