from pydantic import BaseModel
from datetime import datetime
from typing import Optional

# Авторизация
class Token(BaseModel):
    access_token: str
    token_type: str
    role: str
    username: str

class UserResponse(BaseModel):
    id: int
    username: str
    display_name: Optional[str] = None
    role: str
    is_premium: bool
    is_verified: bool
    is_blocked: bool
    block_reason: Optional[str] = None
    blocked_at: Optional[datetime] = None
    block_duration: Optional[str] = None
    block_expires_at: Optional[datetime] = None
    blocked_by_id: Optional[int] = None

    class Config:
        from_attributes = True

# Обращения
class TicketCreate(BaseModel):
    title: str
    body: str
    # Без shop_id обращение адресовано площадке
    shop_id: Optional[int] = None
    target_user_id: Optional[int] = None

class TicketReject(BaseModel):
    reason: Optional[str] = None

class TicketResponse(BaseModel):
    id: int
    title: str
    description: str
    status: str
    reporter_id: int
    target_user_id: Optional[int] = None
    shop_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    reject_reason: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MessageCreate(BaseModel):
    body: str

class TicketMessageResponse(BaseModel):
    id: int
    ticket_id: int
    author_id: Optional[int] = None
    body: str
    is_system: bool
    created_at: datetime

    class Config:
        from_attributes = True

# Чаты магазинов
class ShopChatResponse(BaseModel):
    id: int
    shop_id: int
    user_id: int
    last_message_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True

class ChatMessageResponse(BaseModel):
    id: int
    chat_id: int
    author_id: Optional[int] = None
    sender_type: str
    body: str
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True

# Блокировки
class BlockRequest(BaseModel):
    reason: str
    # '30m', '12h', '7d', '2w' или 'permanent'; пусто - бессрочно
    duration: Optional[str] = None

class BlockLogResponse(BaseModel):
    id: int
    user_id: int
    action: str
    actor_id: Optional[int] = None
    reason: Optional[str] = None
    duration: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

# Уведомления
class NotificationCountsResponse(BaseModel):
    chats: int
    notifications: int
    complaints: int
    shop_complaints: int
    shop_chats: int
