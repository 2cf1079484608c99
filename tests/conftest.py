import pytest
from fastapi.testclient import TestClient

from auth import TokenService
from databases_sql import CLASSES, USERS, DocumentStore
from dependencies import get_gateway, get_store, get_token_service
from errors import UpstreamFailure
from main import app
from models import ClassStatus, Role

TEST_SECRET = "test-secret"
STUDENT = "student@example.com"
INSTRUCTOR = "coach@example.com"
ADMIN = "admin@example.com"


class FakeGateway:
    def __init__(self):
        self.calls = []
        self.fail = False

    async def create_intent(self, amount, currency, methods):
        if self.fail:
            raise UpstreamFailure("payment gateway rejected the request")
        self.calls.append((amount, currency, list(methods)))
        return f"pi_{len(self.calls)}_secret_test"


@pytest.fixture
def store(tmp_path):
    store = DocumentStore(tmp_path / "test.db")
    store.init_db()
    return store


@pytest.fixture
def tokens():
    return TokenService(TEST_SECRET)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(store, tokens, gateway):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_token_service] = lambda: tokens
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(tokens):
    def _headers(email):
        return {"Authorization": f"Bearer {tokens.issue({'email': email})}"}

    return _headers


@pytest.fixture
def add_user(store):
    def _add(email, role=Role.STUDENT):
        doc = {"email": email, "name": email.split("@")[0]}
        if role is not None:
            doc["role"] = role.value
        return store.insert(USERS, doc, None)

    return _add


@pytest.fixture
def add_class(store):
    def _add(seats=5, student=0, price=30.0, status=ClassStatus.APPROVED, email=INSTRUCTOR, **extra):
        doc = {
            "name": "Tennis",
            "price": price,
            "seats": seats,
            "student": student,
            "status": status.value,
            "email": email,
        }
        doc.update(extra)
        return store.insert(CLASSES, doc, None)

    return _add


@pytest.fixture
def people(add_user):
    """One user per role; returns their ids keyed by role."""
    return {
        Role.STUDENT: add_user(STUDENT, Role.STUDENT),
        Role.INSTRUCTOR: add_user(INSTRUCTOR, Role.INSTRUCTOR),
        Role.ADMIN: add_user(ADMIN, Role.ADMIN),
    }
