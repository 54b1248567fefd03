from datetime import timedelta

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import Database, DatabaseUnavailable, create_document, utcnow
from mailer import MailDeliveryError
from main import app, get_database, get_mailer
from schemas import Coach, User
from security import SessionUser, create_token, hash_password


class RecordingMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    @property
    def configured(self):
        return True

    def send_verification_email(self, email, first_name, token):
        if self.fail:
            raise MailDeliveryError("smtp down")
        self.sent.append({"email": email, "firstName": first_name, "token": token})


class DownDatabase:
    """Stands in for a store that cannot be reached."""

    name = "careercoach"
    configured = True

    def get(self):
        raise DatabaseUnavailable("Database connection failed: no servers")

    def close(self):
        pass


@pytest.fixture
def database():
    return Database("mongodb://localhost:27017", "careercoach_test", client_factory=mongomock.MongoClient)


@pytest.fixture
def db(database):
    return database.get()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def client(database, mailer):
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def down_client(mailer):
    app.dependency_overrides[get_database] = lambda: DownDatabase()
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id=None, email="client@careercoach.io", name="Casey Client", role="client"):
    session = SessionUser(id=user_id or str(ObjectId()), email=email, name=name, role=role)
    return {"Authorization": f"Bearer {create_token(session)}"}


def make_user(db, email="client@careercoach.io", password="secret123", name="Casey Client", role="client", **extra):
    user = User(email=email, passwordHash=hash_password(password), name=name, role=role, **extra)
    return create_document(db, "user", user)


def make_coach(db, name="Sarah Johnson", hourlyRate=150, rating=4.9, **extra):
    data = dict(
        name=name,
        expertise=["Technology", "Leadership"],
        hourlyRate=hourlyRate,
        rating=rating,
        bio="Former tech director helping engineers grow into leaders.",
        image="https://images.pexels.com/photos/774909/pexels-photo-774909.jpeg",
        experience=15,
    )
    data.update(extra)
    return create_document(db, "coach", Coach(**data))


def make_booking(db, coach_id, user_email="client@careercoach.io", status="pending", starts_in=timedelta(days=2),
                 duration=60, totalAmount=15000):
    return create_document(db, "booking", {
        "userId": user_email,
        "coachId": coach_id,
        "dateTime": utcnow().replace(microsecond=0) + starts_in,
        "duration": duration,
        "status": status,
        "totalAmount": totalAmount,
    })
