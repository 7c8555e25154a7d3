import pytest
from fastapi import status

from roles import Role
from security import get_password_hash


@pytest.fixture
def shop_setup(make_user, make_shop):
    reporter = make_user("reporter", Role.USER, id=10)
    staff_5 = make_user("staff_5", Role.SHOP_STAFF, id=77)
    staff_6 = make_user("staff_6", Role.SHOP_STAFF, id=88)
    make_shop("Shop 5", staff=[staff_5], id=5)
    make_shop("Shop 6", staff=[staff_6], id=6)
    return reporter, staff_5, staff_6


class TestHealthCheck:

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ok"}


class TestAuth:

    def test_login_unknown_user(self, client):
        response = client.post("/token", data={"username": "nobody", "password": "x"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_login_success(self, client, test_db):
        from models import User
        test_db.add(User(username="real_user", hashed_password=get_password_hash("secret"), role="ADMIN"))
        test_db.commit()

        response = client.post("/token", data={"username": "real_user", "password": "secret"})
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["role"] == "ADMIN"
        assert data["access_token"]

    def test_wrong_password(self, client, test_db):
        from models import User
        test_db.add(User(username="real_user", hashed_password=get_password_hash("secret"), role="USER"))
        test_db.commit()

        response = client.post("/token", data={"username": "real_user", "password": "wrong"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_no_token(self, client):
        response = client.get("/tickets")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_bad_token(self, client):
        response = client.get("/tickets", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_blocked_user_rejected(self, client, admin, customer, headers_for):
        response = client.patch(
            f"/users/{customer.id}/block",
            json={"reason": "Спам", "duration": "7d"},
            headers=headers_for(admin)
        )
        assert response.status_code == status.HTTP_200_OK

        response = client.get("/notifications/counts", headers=headers_for(customer))
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["detail"] == "Аккаунт заблокирован"


class TestTicketEndpoints:

    def test_end_to_end(self, client, shop_setup, headers_for):
        reporter, staff_5, staff_6 = shop_setup

        response = client.post(
            "/tickets",
            json={"title": "Late delivery", "body": "Заказ не пришел", "shop_id": 5},
            headers=headers_for(reporter)
        )
        assert response.status_code == status.HTTP_201_CREATED
        ticket = response.json()
        assert ticket["status"] == "PENDING"
        assert ticket["assigned_to_id"] is None
        assert ticket["shop_id"] == 5
        ticket_id = ticket["id"]

        response = client.patch(f"/tickets/{ticket_id}/assign", headers=headers_for(staff_5))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "IN_PROGRESS"
        assert response.json()["assigned_to_id"] == 77

        response = client.patch(f"/tickets/{ticket_id}/resolve", headers=headers_for(staff_5))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "RESOLVED"

        response = client.get("/tickets", params={"shop_id": 5}, headers=headers_for(staff_5))
        assert [t["id"] for t in response.json()] == [ticket_id]

        response = client.get("/tickets", headers=headers_for(staff_6))
        assert response.json() == []

    def test_create_validation(self, client, customer, headers_for):
        response = client.post("/tickets", json={"title": "  ", "body": "text"}, headers=headers_for(customer))
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_create_missing_field(self, client, customer, headers_for):
        response = client.post("/tickets", json={"title": "t"}, headers=headers_for(customer))
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_create_unknown_shop(self, client, customer, headers_for):
        response = client.post(
            "/tickets", json={"title": "t", "body": "b", "shop_id": 404}, headers=headers_for(customer)
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_error_mapping(self, client, customer, admin, headers_for):
        created = client.post("/tickets", json={"title": "t", "body": "b"}, headers=headers_for(customer)).json()

        response = client.patch(f"/tickets/{created['id']}/assign", headers=headers_for(customer))
        assert response.status_code == status.HTTP_403_FORBIDDEN

        response = client.patch(f"/tickets/{created['id']}/resolve", headers=headers_for(admin))
        assert response.status_code == status.HTTP_409_CONFLICT

        response = client.patch("/tickets/99999/assign", headers=headers_for(admin))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_reject_with_reason(self, client, customer, admin, headers_for):
        created = client.post("/tickets", json={"title": "t", "body": "b"}, headers=headers_for(customer)).json()
        client.patch(f"/tickets/{created['id']}/assign", headers=headers_for(admin))

        response = client.patch(
            f"/tickets/{created['id']}/reject", json={"reason": "Дубликат"}, headers=headers_for(admin)
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "REJECTED"
        assert response.json()["reject_reason"] == "Дубликат"

    def test_reject_without_body(self, client, customer, admin, headers_for):
        created = client.post("/tickets", json={"title": "t", "body": "b"}, headers=headers_for(customer)).json()
        client.patch(f"/tickets/{created['id']}/assign", headers=headers_for(admin))

        response = client.patch(f"/tickets/{created['id']}/reject", headers=headers_for(admin))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["reject_reason"] is None

    def test_list_filters(self, client, customer, admin, headers_for):
        client.post("/tickets", json={"title": "a", "body": "b"}, headers=headers_for(customer))

        response = client.get("/tickets", params={"scope": "platform", "status": "PENDING"}, headers=headers_for(admin))
        assert len(response.json()) == 1

        response = client.get("/tickets", params={"status": "RESOLVED"}, headers=headers_for(admin))
        assert response.json() == []

        response = client.get("/tickets", params={"scope": "galaxy"}, headers=headers_for(admin))
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_my_tickets(self, client, customer, headers_for):
        client.post("/tickets", json={"title": "a", "body": "b"}, headers=headers_for(customer))
        response = client.get("/tickets/mine", headers=headers_for(customer))
        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()) == 1

    def test_ticket_messages(self, client, customer, admin, headers_for):
        created = client.post("/tickets", json={"title": "t", "body": "b"}, headers=headers_for(customer)).json()
        url = f"/tickets/{created['id']}/messages"

        response = client.post(url, json={"body": "Есть новости?"}, headers=headers_for(customer))
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["is_system"] is False

        client.patch(f"/tickets/{created['id']}/assign", headers=headers_for(admin))
        client.patch(f"/tickets/{created['id']}/resolve", headers=headers_for(admin))

        response = client.post(url, json={"body": "Еще вопрос"}, headers=headers_for(customer))
        assert response.status_code == status.HTTP_409_CONFLICT

        messages = client.get(url, headers=headers_for(customer)).json()
        assert "Еще вопрос" not in [m["body"] for m in messages]


class TestShopChatEndpoints:

    def test_chat_flow(self, client, customer, make_user, make_shop, headers_for):
        staff = make_user("staff", Role.SHOP_STAFF)
        shop = make_shop("Лавка", staff=[staff])

        first = client.post(f"/shops/{shop.id}/chat", headers=headers_for(customer)).json()
        second = client.post(f"/shops/{shop.id}/chat", headers=headers_for(customer)).json()
        assert first["id"] == second["id"]

        response = client.post(
            f"/shop-chats/{first['id']}/messages", json={"body": "Вопрос"}, headers=headers_for(customer)
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["sender_type"] == "USER"

        counts = client.get("/notifications/counts", headers=headers_for(staff)).json()
        assert counts["shop_chats"] == 1

        response = client.get(f"/shop-chats/{first['id']}/messages", headers=headers_for(staff))
        assert response.status_code == status.HTTP_200_OK
        assert len(response.json()) == 2

        counts = client.get("/notifications/counts", headers=headers_for(staff)).json()
        assert counts["shop_chats"] == 0

        chats = client.get(f"/shops/{shop.id}/chats", headers=headers_for(staff)).json()
        assert [c["user_id"] for c in chats] == [customer.id]
        mine = client.get("/users/me/shop-chats", headers=headers_for(customer)).json()
        assert [c["id"] for c in mine] == [first["id"]]

    def test_foreign_shop_chats(self, client, customer, make_shop, headers_for):
        shop = make_shop("Лавка")
        response = client.get(f"/shops/{shop.id}/chats", headers=headers_for(customer))
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestBlockEndpoints:

    def test_block_and_log(self, client, admin, customer, headers_for):
        response = client.patch(
            f"/users/{customer.id}/block", json={"reason": "Спам"}, headers=headers_for(admin)
        )
        assert response.json()["is_blocked"] is True

        response = client.patch(f"/users/{customer.id}/unblock", headers=headers_for(admin))
        data = response.json()
        assert data["is_blocked"] is False
        assert data["block_reason"] == "Спам"

        log = client.get(f"/users/{customer.id}/block-log", headers=headers_for(admin)).json()
        assert [entry["action"] for entry in log] == ["BLOCK", "UNBLOCK"]

    @pytest.mark.parametrize("duration", ["soon", "600000w", "99999999999w"])
    def test_bad_duration(self, client, admin, customer, headers_for, duration):
        response = client.patch(
            f"/users/{customer.id}/block", json={"reason": "Спам", "duration": duration}, headers=headers_for(admin)
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_regular_user_cannot_block(self, client, customer, make_user, headers_for):
        victim = make_user("victim", Role.USER)
        response = client.patch(
            f"/users/{victim.id}/block", json={"reason": "Спам"}, headers=headers_for(customer)
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestNotificationEndpoint:

    def test_counts_shape(self, client, admin, customer, headers_for):
        client.post("/tickets", json={"title": "t", "body": "b"}, headers=headers_for(customer))

        response = client.get("/notifications/counts", headers=headers_for(admin))
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "chats": 0, "notifications": 0, "complaints": 1, "shop_complaints": 0, "shop_chats": 0,
        }
