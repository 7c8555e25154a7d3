"""Блокировка и разблокировка пользователей.

Живые поля блокировки хранятся в самой записи User и перезаписываются при
каждой новой блокировке. После разблокировки причина, время и автор
блокировки остаются в записи для отображения в админке, а полная история
(включая того, кто разблокировал) пишется в журнал block_log.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

import crud
from config import settings
from errors import NotFound, Unauthorized, ValidationError
from models import BlockAction, BlockLogEntry, User
from roles import Capability, Principal, has_capability, outranks

logger = logging.getLogger(__name__)

PERMANENT = "permanent"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([mhdw])\s*$")
_UNITS = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def parse_duration(text: Optional[str]) -> Optional[timedelta]:
    """'30m', '12h', '7d', '2w' -> timedelta; None / '' / 'permanent' -> None (бессрочно)."""
    if text is None or not text.strip() or text.strip().lower() == PERMANENT:
        return None
    match = _DURATION_RE.match(text.lower())
    if not match:
        raise ValidationError(f"Некорректный срок блокировки: {text!r}")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValidationError("Срок блокировки должен быть положительным")
    try:
        length = amount * _UNITS[match.group(2)]
    except OverflowError:
        length = None
    # Ограничение сверху держит block_expires_at в пределах datetime
    if length is None or length > timedelta(days=settings.max_block_days):
        raise ValidationError(f"Срок блокировки больше {settings.max_block_days} дней, используйте 'permanent'")
    return length


def is_block_active(user: User, now: Optional[datetime] = None) -> bool:
    if not user.is_blocked:
        return False
    if user.block_expires_at is None:
        return True
    return user.block_expires_at > (now or datetime.utcnow())


def _get_target(db: Session, target_user_id: int) -> User:
    user = crud.get_user(db, target_user_id)
    if user is None:
        raise NotFound("Пользователь не найден")
    return user


def _check_actor(actor: Optional[Principal], target: User):
    # actor=None - системная блокировка, проверки прав не нужны
    if actor is None:
        return
    if actor.user_id == target.id:
        raise Unauthorized("Нельзя изменять статус самому себе")
    if not outranks(actor.role, target.role):
        raise Unauthorized("Недостаточно прав для изменения этого пользователя")


def _require_capability(actor: Optional[Principal]):
    if actor is not None and not has_capability(actor.role, Capability.BLOCK_USERS):
        raise Unauthorized("Доступ запрещен")


def block_user(
    db: Session,
    target_user_id: int,
    actor: Optional[Principal],
    reason: str,
    duration: Optional[str] = None
) -> User:
    _require_capability(actor)
    user = _get_target(db, target_user_id)
    _check_actor(actor, user)

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Причина блокировки обязательна")
    length = parse_duration(duration)
    if length is None:
        duration = None

    now = datetime.utcnow()
    actor_id = actor.user_id if actor is not None else None

    # Повторная блокировка перезаписывает запись новой причиной, автором и временем
    user.is_blocked = True
    user.block_reason = reason
    user.blocked_at = now
    user.block_duration = duration
    user.block_expires_at = now + length if length is not None else None
    user.blocked_by_id = actor_id
    crud.add_block_log(db, user.id, BlockAction.BLOCK, actor_id, reason=reason, duration=duration)

    crud.commit(db)
    db.refresh(user)
    logger.info(f"User {user.id} blocked by {actor_id or 'system'} for {duration or PERMANENT}")
    return user


def unblock_user(db: Session, target_user_id: int, actor: Optional[Principal]) -> User:
    _require_capability(actor)
    user = _get_target(db, target_user_id)
    _check_actor(actor, user)

    if not user.is_blocked:
        return user

    actor_id = actor.user_id if actor is not None else None
    user.is_blocked = False
    crud.add_block_log(db, user.id, BlockAction.UNBLOCK, actor_id)

    crud.commit(db)
    db.refresh(user)
    logger.info(f"User {user.id} unblocked by {actor_id or 'system'}")
    return user


def get_block_log(db: Session, target_user_id: int, actor: Principal) -> List[BlockLogEntry]:
    _require_capability(actor)
    _get_target(db, target_user_id)
    return crud.get_block_log(db, target_user_id)
