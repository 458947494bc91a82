import pytest
from bson import ObjectId

import security
from errors import Unauthenticated


def test_password_hash_round_trip():
    hashed = security.hash_password("correct horse")
    assert hashed != "correct horse"
    assert security.verify_password("correct horse", hashed)
    assert not security.verify_password("wrong horse", hashed)


def test_password_hashes_are_salted():
    assert security.hash_password("same") != security.hash_password("same")


def test_verify_password_rejects_garbage_hash():
    assert not security.verify_password("anything", "not-a-hash")
    assert not security.verify_password("", security.hash_password("x"))


def test_argon2_hashes_are_accepted():
    hashed = security.pwd_context.hash("pw123456", scheme="argon2")
    assert security.verify_password("pw123456", hashed)


def test_single_use_token_stores_only_digest():
    token, digest, expiry = security.generate_single_use_token(minutes=15)
    assert token not in digest
    assert security.hash_single_use_token(token) == digest
    assert expiry > security.now_ms()
    assert expiry <= security.now_ms() + 15 * 60 * 1000


def test_session_token_embeds_identity_and_flags():
    user = {"_id": ObjectId(), "username": "alice01", "role": "admin",
            "isBlocked": False, "isVerified": True, "isClosed": False}
    claims = security.decode_session_token(security.issue_session_token(user))
    assert claims["id"] == str(user["_id"])
    assert claims["username"] == "alice01"
    assert claims["role"] == "admin"
    assert claims["isVerified"] is True
    assert "exp" in claims


def test_expired_session_token_is_rejected():
    token = security.create_jwt({"id": "x"}, minutes=-1)
    with pytest.raises(Unauthenticated):
        security.decode_jwt(token)


def test_tampered_session_token_is_rejected():
    user = {"_id": ObjectId(), "username": "alice01"}
    token = security.issue_session_token(user)
    with pytest.raises(Unauthenticated):
        security.decode_session_token(token[:-3] + ("aaa" if not token.endswith("aaa") else "bbb"))


def test_token_missing_claims_is_rejected():
    with pytest.raises(Unauthenticated):
        security.decode_session_token(security.create_jwt({"id": "x"}))
