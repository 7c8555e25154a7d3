import logging
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

import blocking
import chat
import tickets
from config import settings
from database import get_db, init_db
from errors import CoreError, ValidationError
from notifications import NotificationSource, counts_for_principal, get_notification_source
from roles import PLATFORM, Principal, ShopScope
from schemas import (
    BlockLogResponse, BlockRequest, ChatMessageResponse, MessageCreate,
    NotificationCountsResponse, ShopChatResponse, TicketCreate,
    TicketMessageResponse, TicketReject, TicketResponse, Token, UserResponse,
)
from security import authenticate_user, create_access_token, get_current_principal

logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_title,
    version=settings.app_version
)


@app.on_event("startup")
def startup_event():
    init_db()


@app.exception_handler(CoreError)
def core_error_handler(request: Request, exc: CoreError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.post("/token", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = authenticate_user(db, form_data.username, form_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверный логин или пароль",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = create_access_token(data={"sub": user.username, "role": user.role})
    return {"access_token": token, "token_type": "bearer", "role": user.role, "username": user.username}


# ОБРАЩЕНИЯ

@app.post("/tickets", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_ticket(
    body: TicketCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    scope = ShopScope(body.shop_id) if body.shop_id is not None else PLATFORM
    return tickets.create_ticket(
        db, principal, body.title, body.body,
        scope=scope, target_user_id=body.target_user_id
    )


@app.get("/tickets", response_model=List[TicketResponse])
def list_tickets(
    scope: Optional[str] = None,
    shop_id: Optional[int] = None,
    ticket_status: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    if shop_id is not None:
        scope_filter = ShopScope(shop_id)
    elif scope is None:
        scope_filter = None
    elif scope == "platform":
        scope_filter = PLATFORM
    else:
        raise ValidationError("scope: ожидается 'platform' или shop_id")
    return tickets.list_tickets(db, principal, scope=scope_filter, status=ticket_status)


@app.get("/tickets/mine", response_model=List[TicketResponse])
def list_my_tickets(db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return tickets.list_reported_tickets(db, principal)


@app.get("/tickets/{ticket_id}", response_model=TicketResponse)
def get_ticket(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return tickets.get_ticket(db, ticket_id, principal)


@app.patch("/tickets/{ticket_id}/assign", response_model=TicketResponse)
def assign_ticket(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return tickets.assign_ticket(db, ticket_id, principal)


@app.patch("/tickets/{ticket_id}/resolve", response_model=TicketResponse)
def resolve_ticket(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return tickets.resolve_ticket(db, ticket_id, principal)


@app.patch("/tickets/{ticket_id}/reject", response_model=TicketResponse)
def reject_ticket(
    ticket_id: int,
    body: Optional[TicketReject] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    reason = body.reason if body is not None else None
    return tickets.reject_ticket(db, ticket_id, principal, reason=reason)


@app.get("/tickets/{ticket_id}/messages", response_model=List[TicketMessageResponse])
def list_ticket_messages(ticket_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return chat.list_ticket_messages(db, ticket_id, principal)


@app.post("/tickets/{ticket_id}/messages", response_model=TicketMessageResponse, status_code=status.HTTP_201_CREATED)
def append_ticket_message(
    ticket_id: int,
    body: MessageCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return chat.append_ticket_message(db, ticket_id, principal, body.body)


# ЧАТЫ С МАГАЗИНАМИ

@app.post("/shops/{shop_id}/chat", response_model=ShopChatResponse)
def get_or_create_shop_chat(shop_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return chat.get_or_create_chat(db, shop_id, principal)


@app.get("/shops/{shop_id}/chats", response_model=List[ShopChatResponse])
def list_shop_chats(shop_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return chat.list_shop_chats(db, shop_id, principal)


@app.get("/users/me/shop-chats", response_model=List[ShopChatResponse])
def list_my_shop_chats(db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return chat.list_user_chats(db, principal)


@app.get("/shop-chats/{chat_id}/messages", response_model=List[ChatMessageResponse])
def list_chat_messages(chat_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return chat.list_chat_messages(db, chat_id, principal)


@app.post("/shop-chats/{chat_id}/messages", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
def append_chat_message(
    chat_id: int,
    body: MessageCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return chat.append_chat_message(db, chat_id, principal, body.body)


# БЛОКИРОВКИ

@app.patch("/users/{user_id}/block", response_model=UserResponse)
def block_user(
    user_id: int,
    body: BlockRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    return blocking.block_user(db, user_id, principal, body.reason, body.duration)


@app.patch("/users/{user_id}/unblock", response_model=UserResponse)
def unblock_user(user_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return blocking.unblock_user(db, user_id, principal)


@app.get("/users/{user_id}/block-log", response_model=List[BlockLogResponse])
def get_block_log(user_id: int, db: Session = Depends(get_db), principal: Principal = Depends(get_current_principal)):
    return blocking.get_block_log(db, user_id, principal)


# УВЕДОМЛЕНИЯ

@app.get("/notifications/counts", response_model=NotificationCountsResponse)
def get_notification_counts(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    source: NotificationSource = Depends(get_notification_source)
):
    return counts_for_principal(db, principal, source).as_dict()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
