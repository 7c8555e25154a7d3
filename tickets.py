"""Жизненный цикл обращений.

PENDING -> IN_PROGRESS -> RESOLVED | REJECTED. Переходы выполняются как
сравнение-с-обменом по полю status: если статус в БД успел измениться с
момента чтения, операция завершается Conflict, и вызывающему нужно
перечитать обращение, а не повторять запрос вслепую.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

import crud
from errors import Conflict, NotFound, Unauthorized, ValidationError
from models import Ticket, TicketStatus
from roles import (
    PLATFORM, PlatformScope, Principal, Scope, ShopScope,
    acting_shop_ids, can_act_on_ticket, has_admin_access, role_label,
)

logger = logging.getLogger(__name__)

MSG_CREATED = "Обращение создано!"


def _staff_name(db: Session, principal: Principal) -> str:
    user = crud.get_user(db, principal.user_id)
    name = (user.display_name or user.username) if user else str(principal.user_id)
    return f"{role_label(principal.role)} {name}"


def _load(db: Session, ticket_id: int) -> Ticket:
    ticket = crud.get_ticket(db, ticket_id)
    if ticket is None:
        raise NotFound("Обращение не найдено")
    return ticket


def can_read_ticket(ticket: Ticket, principal: Principal) -> bool:
    # Автор, пользователь, на которого жалуются, и сотрудники с доступом к области
    if principal.user_id in (ticket.reporter_id, ticket.target_user_id):
        return True
    return can_act_on_ticket(principal.role, principal.shop_ids, ticket.scope)


def create_ticket(
    db: Session,
    principal: Principal,
    title: str,
    body: str,
    scope: Scope = PLATFORM,
    target_user_id: Optional[int] = None
) -> Ticket:
    title = (title or "").strip()
    body = (body or "").strip()
    if not title:
        raise ValidationError("Тема обращения обязательна")
    if not body:
        raise ValidationError("Текст обращения обязателен")

    shop_id = None
    if isinstance(scope, ShopScope):
        if crud.get_shop(db, scope.shop_id) is None:
            raise NotFound("Магазин не найден")
        shop_id = scope.shop_id
    if target_user_id is not None and crud.get_user(db, target_user_id) is None:
        raise NotFound("Пользователь не найден")

    ticket = crud.add_ticket(
        db,
        reporter_id=principal.user_id,
        title=title,
        description=body,
        shop_id=shop_id,
        target_user_id=target_user_id
    )
    crud.add_ticket_message(db, ticket.id, MSG_CREATED, author_id=principal.user_id, is_system=True)
    crud.commit(db)
    db.refresh(ticket)

    logger.info(f"Ticket {ticket.id} created by user {principal.user_id} in {ticket.scope}")
    return ticket


def get_ticket(db: Session, ticket_id: int, principal: Principal) -> Ticket:
    ticket = _load(db, ticket_id)
    if not can_read_ticket(ticket, principal):
        raise Unauthorized("Доступ запрещен")
    return ticket


def assign_ticket(db: Session, ticket_id: int, principal: Principal) -> Ticket:
    ticket = _load(db, ticket_id)
    if not can_act_on_ticket(principal.role, principal.shop_ids, ticket.scope):
        raise Unauthorized("Доступ запрещен")
    if ticket.status != TicketStatus.PENDING:
        raise Conflict("Обращение уже взято в работу или закрыто")

    swapped = crud.update_ticket_if_status(
        db, ticket.id, TicketStatus.PENDING,
        status=TicketStatus.IN_PROGRESS,
        assigned_to_id=principal.user_id
    )
    if not swapped:
        db.rollback()
        logger.warning(f"Assign conflict on ticket {ticket_id} for user {principal.user_id}")
        raise Conflict("Обращение уже взято в работу другим сотрудником")

    crud.add_ticket_message(
        db, ticket.id,
        f"{_staff_name(db, principal)} взял обращение в работу.",
        author_id=principal.user_id,
        is_system=True
    )
    crud.commit(db)
    db.refresh(ticket)

    logger.info(f"Ticket {ticket.id} assigned to user {principal.user_id}")
    return ticket


def _close_message(db: Session, principal: Principal, new_status: str, reject_reason: Optional[str]) -> str:
    if new_status == TicketStatus.RESOLVED:
        return f"{_staff_name(db, principal)} закрыл обращение."
    if reject_reason:
        return f"Обращение было отклонено по причине: {reject_reason}"
    return "В обращении отказано."


def _close(db: Session, ticket_id: int, principal: Principal, new_status: str,
           reject_reason: Optional[str] = None) -> Ticket:
    ticket = _load(db, ticket_id)
    if not can_act_on_ticket(principal.role, principal.shop_ids, ticket.scope):
        raise Unauthorized("Доступ запрещен")
    if ticket.status != TicketStatus.IN_PROGRESS:
        raise Conflict("Закрыть можно только обращение в работе")
    if ticket.assigned_to_id != principal.user_id and not has_admin_access(principal.role):
        raise Unauthorized("Обращение закреплено за другим сотрудником")

    swapped = crud.update_ticket_if_status(
        db, ticket.id, TicketStatus.IN_PROGRESS,
        status=new_status,
        resolved_at=datetime.utcnow(),
        reject_reason=reject_reason
    )
    if not swapped:
        db.rollback()
        logger.warning(f"Close conflict on ticket {ticket_id} for user {principal.user_id}")
        raise Conflict("Статус обращения изменился")

    message = _close_message(db, principal, new_status, reject_reason)
    crud.add_ticket_message(db, ticket.id, message, author_id=principal.user_id, is_system=True)
    crud.commit(db)
    db.refresh(ticket)

    logger.info(f"Ticket {ticket.id} -> {new_status} by user {principal.user_id}")
    return ticket


def resolve_ticket(db: Session, ticket_id: int, principal: Principal) -> Ticket:
    return _close(db, ticket_id, principal, TicketStatus.RESOLVED)


def reject_ticket(db: Session, ticket_id: int, principal: Principal, reason: Optional[str] = None) -> Ticket:
    reason = (reason or "").strip() or None
    return _close(db, ticket_id, principal, TicketStatus.REJECTED, reject_reason=reason)


def list_tickets(
    db: Session,
    principal: Principal,
    scope: Optional[Scope] = None,
    status: Optional[str] = None
) -> List[Ticket]:
    """Обращения, видимые вызывающему, новые сверху.

    scope=None - все видимые, PlatformScope - только обращения к площадке,
    ShopScope(id) - только обращения в указанный магазин.
    """
    admin = has_admin_access(principal.role)
    visible_shops = None if admin else set(acting_shop_ids(principal.role, principal.shop_ids))

    if isinstance(scope, PlatformScope):
        if not admin:
            return []
        return crud.query_tickets(db, platform=True, shop_ids=set(), status=status)

    if isinstance(scope, ShopScope):
        if not can_act_on_ticket(principal.role, principal.shop_ids, scope):
            return []
        return crud.query_tickets(db, platform=False, shop_ids={scope.shop_id}, status=status)

    return crud.query_tickets(db, platform=admin, shop_ids=visible_shops, status=status)


def list_reported_tickets(db: Session, principal: Principal) -> List[Ticket]:
    return crud.get_tickets_by_reporter(db, principal.user_id)
