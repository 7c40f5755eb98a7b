import os

# Configure the app for an in-memory database before anything imports it
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["MQTT_ENABLED"] = "false"

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from circulation.database import Base, engine, SessionLocal, get_db
from circulation.main import app
from circulation.models import Book, BookEdition, BookCopy, LibraryCard, User
from circulation.services.auth import create_access_token
from circulation.services.system_settings import LibrarySettings
from circulation.utils.timezone import today_local


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def library_settings():
    return LibrarySettings(
        fine_rate_percent=Decimal("5"),
        max_borrow_days=14,
        max_books_per_user=5,
        min_deposit_amount=Decimal("200000"),
    )


def make_user(db, role="reader", email=None):
    user = User(
        user_fname=role.capitalize(),
        user_lname="Tester",
        user_email=email or f"{role}@example.com",
        user_password_hash="not-a-real-hash",
        user_role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_card(db, user, deposit=200000, expiry=None, status="active", number=None):
    card = LibraryCard(
        card_number=number or f"TV{user.user_id:05d}",
        user_id=user.user_id,
        issue_date=date(2023, 1, 1),
        expiry_date=expiry or today_local() + timedelta(days=365),
        status=status,
        deposit_amount=deposit,
    )
    db.add(card)
    db.commit()
    db.refresh(card)
    return card


def make_copy(db, code, price=100000, status="available", copy_number=1):
    book = db.query(Book).filter(Book.code == code).first()
    if book is None:
        book = Book(code=code, title=f"Book {code}", author="Author")
        book.editions = [BookEdition(publisher="NXB Tre", publish_year=2020)]
        db.add(book)
        db.flush()
    copy = BookCopy(
        edition_id=book.editions[0].edition_id,
        copy_number=copy_number,
        price=price,
        status=status,
    )
    db.add(copy)
    db.commit()
    db.refresh(copy)
    return copy


def auth_headers(user):
    token = create_access_token({"sub": str(user.user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reader(db):
    return make_user(db, "reader")


@pytest.fixture
def librarian(db):
    return make_user(db, "librarian")


@pytest.fixture
def admin(db):
    return make_user(db, "admin")


@pytest.fixture
def card(db, reader):
    return make_card(db, reader)


@pytest.fixture
def copies(db):
    return [
        make_copy(db, "B001", price=100000),
        make_copy(db, "B002", price=80000),
        make_copy(db, "B003", price=50000),
    ]
