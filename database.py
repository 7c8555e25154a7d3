from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from config import settings

# Для SQLite разрешаем использование соединения из разных потоков (FastAPI threadpool)
connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(settings.database_url, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


# Зависимость FastAPI: новая сессия на каждый запрос, после ответа закрывается.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    import models  # noqa: F401  регистрируем таблицы в Base.metadata
    Base.metadata.create_all(bind=engine)
