import os

# тестам не нужна рабочая база, приложение при старте создаст таблицы в памяти
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from database import Base, get_db
from main import app
import models
from roles import Role
from security import create_access_token, resolve_principal

TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def test_db():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(test_db):
    def override_get_db():
        try:
            yield test_db
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def file_session_factory(tmp_path):
    # отдельная файловая база: у каждого потока свое соединение
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30}
    )
    Base.metadata.create_all(bind=file_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    file_engine.dispose()


# ФАБРИКИ

@pytest.fixture
def make_user(test_db):
    def _make(username, role=Role.USER, **fields):
        user = models.User(username=username, hashed_password="fake", role=Role(role).value, **fields)
        test_db.add(user)
        test_db.commit()
        test_db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_shop(test_db):
    def _make(name, owner=None, staff=(), **fields):
        shop = models.Shop(
            name=name,
            owner_id=owner.id if owner is not None else None,
            status=models.ShopStatus.ACTIVE,
            **fields
        )
        test_db.add(shop)
        test_db.flush()
        for user in staff:
            test_db.add(models.ShopStaff(shop_id=shop.id, user_id=user.id, role=user.role))
        test_db.commit()
        test_db.refresh(shop)
        return shop
    return _make


@pytest.fixture
def principal_of(test_db):
    def _principal(user):
        return resolve_principal(test_db, user)
    return _principal


@pytest.fixture
def headers_for():
    def _headers(user):
        token = create_access_token(data={"sub": user.username, "role": user.role})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user("admin_test", Role.ADMIN)


@pytest.fixture
def customer(make_user):
    return make_user("customer_test", Role.USER)
