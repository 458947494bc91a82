import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_DIR", os.path.join(os.path.dirname(__file__), ".uploads"))

import mongomock
import pytest
from fastapi.testclient import TestClient

import mailer
import storage
from database import ensure_indexes, get_db
from main import app
from ratelimit import limiter
from schemas import User, new_document
from security import hash_password, issue_session_token

PASSWORD = "secret-pass-1"


@pytest.fixture
def db():
    database = mongomock.MongoClient()["blog_test"]
    ensure_indexes(database)
    app.dependency_overrides[get_db] = lambda: database
    yield database
    app.dependency_overrides.clear()


@pytest.fixture
def client(db):
    limiter.reset()
    return TestClient(app)


@pytest.fixture(autouse=True)
def uploads(monkeypatch):
    """Replace Cloudinary with an in-memory record of uploads and deletions."""
    state = {"uploaded": [], "destroyed": [], "staged": []}

    def fake_upload(path, folder, resource_type="auto", **options):
        assert os.path.exists(path)
        state["staged"].append(path)
        resource_id = f"{folder}/asset{len(state['uploaded']) + 1}"
        state["uploaded"].append(resource_id)
        return {"resource_id": resource_id, "resource_url": f"https://cdn.test/{resource_id}"}

    def fake_destroy(resource_id):
        if resource_id:
            state["destroyed"].append(resource_id)

    monkeypatch.setattr(storage, "upload_file", fake_upload)
    monkeypatch.setattr(storage, "destroy", fake_destroy)
    return state


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []

    def fake_send(to, subject, html):
        sent.append({"to": to, "subject": subject, "html": html})

    monkeypatch.setattr(mailer, "send_email", fake_send)
    return sent


@pytest.fixture
def make_user(db):
    """Insert an account directly and return it with a bearer header."""
    def factory(username, role="user", verified=True, **flags):
        user = new_document(
            User,
            username=username,
            email=f"{username}@mail.com",
            password=hash_password(PASSWORD),
            firstName=username.capitalize(),
            lastName="Tester",
            role=role,
            isVerified=verified,
            **flags,
        )
        db["users"].insert_one(user)
        token = issue_session_token(user)
        user["headers"] = {"Authorization": f"Bearer {token}"}
        user["id"] = str(user["_id"])
        return user

    return factory


@pytest.fixture
def make_post(client):
    def factory(author, title="Hello world", tags='["python", "web"]', published="true", **extra):
        form = {
            "title": title,
            "content": '{"blocks": [{"data": {"text": "Some body text"}}]}',
            "tags": tags,
            "seoKeywords": "k",
            "metaDescription": "d",
            "isPublished": published,
            **extra,
        }
        response = client.post("/blogs/create", data=form, headers=author["headers"])
        assert response.status_code == 201, response.text
        return response.json()["newBlog"]

    return factory
