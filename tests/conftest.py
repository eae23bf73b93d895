import io
import os
import tempfile

# Configure before any application module reads the settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="club-docs-")

import pytest
from reportlab.pdfgen import canvas

from database import Base, SessionLocal, engine
from modules.documents.models import User


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_user(session, code, name=None, is_admin=False, is_active=True):
    user = User(
        email=f"member{code}@club.org",
        employee_code=code,
        full_name=name or f"Member {code}",
        password_hash="not-a-real-hash",
        is_admin=is_admin,
        is_active=is_active,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def creator(db):
    return create_user(db, "1001", "Juan Perez")


@pytest.fixture
def admins(db):
    return [
        create_user(db, "0001", "Ana Garcia", is_admin=True),
        create_user(db, "0002", "Carlos Lopez", is_admin=True),
        create_user(db, "0003", "Lucia Diaz", is_admin=True),
    ]


@pytest.fixture(scope="session")
def example_pdf():
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer)
    c.drawString(100, 750, "Club budget approval request")
    c.save()
    buffer.seek(0)
    return buffer.read()


@pytest.fixture
def make_user(db):
    def _make(code, name=None, is_admin=False, is_active=True):
        return create_user(db, code, name=name, is_admin=is_admin, is_active=is_active)
    return _make
