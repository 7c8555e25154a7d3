from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, UniqueConstraint
from datetime import datetime
from database import Base
from roles import Role, PLATFORM, ShopScope


class TicketStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"

    TERMINAL = frozenset({RESOLVED, REJECTED})


class ShopStatus:
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    BLOCKED = "BLOCKED"


class SenderType:
    USER = "USER"
    SHOP = "SHOP"
    SYSTEM = "SYSTEM"


class BlockAction:
    BLOCK = "BLOCK"
    UNBLOCK = "UNBLOCK"


# ПОЛЬЗОВАТЕЛЬ
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.USER.value)

    is_premium = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    # Блок блокировки. Поля перезаписываются при каждой новой блокировке,
    # история хранится в block_log.
    is_blocked = Column(Boolean, default=False, nullable=False)
    block_reason = Column(Text, nullable=True)
    blocked_at = Column(DateTime, nullable=True)
    block_duration = Column(String, nullable=True)
    block_expires_at = Column(DateTime, nullable=True)
    # Кто заблокировал. NULL означает автоматическую (системную) блокировку.
    blocked_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"


# МАГАЗИН
class Shop(Base):
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String, nullable=False, default=ShopStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)


class ShopStaff(Base):
    __tablename__ = "shop_staff"
    __table_args__ = (UniqueConstraint("shop_id", "user_id"),)

    id = Column(Integer, primary_key=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String, nullable=False, default=Role.SHOP_STAFF.value)


# ОБРАЩЕНИЕ (ЖАЛОБА)
class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=TicketStatus.PENDING, index=True)

    reporter_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    target_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    # NULL - обращение к площадке, иначе - в конкретный магазин. Снаружи читать через scope.
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=True, index=True)
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    reject_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    @property
    def scope(self):
        if self.shop_id is None:
            return PLATFORM
        return ShopScope(self.shop_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TicketStatus.TERMINAL

    def __repr__(self):
        return f"<Ticket(id={self.id}, status={self.status}, scope={self.scope})>"


class TicketMessage(Base):
    __tablename__ = "ticket_messages"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    body = Column(Text, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


# ЧАТЫ МАГАЗИНОВ
class ShopChat(Base):
    __tablename__ = "shop_chats"
    __table_args__ = (UniqueConstraint("shop_id", "user_id"),)

    id = Column(Integer, primary_key=True, index=True)
    shop_id = Column(Integer, ForeignKey("shops.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    last_message_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("shop_chats.id"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    sender_type = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


# ЖУРНАЛ БЛОКИРОВОК (только добавление)
class BlockLogEntry(Base):
    __tablename__ = "block_log"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String, nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reason = Column(Text, nullable=True)
    duration = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
