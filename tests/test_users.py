import hashlib

import pytest
from bson import ObjectId

import users
from auth import decode_token, hash_password, verify_password
from errors import AuthorizationError, ConflictError, NotFoundError, ValidationError


def test_register_and_login(db):
    created = users.register_user(db, "Alice", "Alice@Example.com", "secret123")
    assert created["email"] == "alice@example.com"
    assert created["karma_points"] == 0
    assert created["role"] == "user"
    assert "password_hash" not in created
    assert decode_token(created["token"]) == created["id"]

    logged_in = users.authenticate(db, "alice@example.com", "secret123")
    assert logged_in["id"] == created["id"]


def test_register_rejects_duplicates_and_bad_email(db):
    users.register_user(db, "Alice", "alice@example.com", "secret123")
    with pytest.raises(ConflictError):
        users.register_user(db, "Other", "ALICE@example.com", "secret123")
    with pytest.raises(ValidationError):
        users.register_user(db, "Bob", "not-an-email", "secret123")


def test_login_with_wrong_password(db):
    users.register_user(db, "Alice", "alice@example.com", "secret123")
    with pytest.raises(AuthorizationError):
        users.authenticate(db, "alice@example.com", "wrong")
    with pytest.raises(AuthorizationError):
        users.authenticate(db, "nobody@example.com", "secret123")


def test_update_profile(db, make_user):
    alice, bob = make_user("Alice"), make_user("Bob")
    updated = users.update_profile(db, alice["id"], name="Alice B", password="newsecret")
    assert updated["name"] == "Alice B"
    users.authenticate(db, "alice@example.com", "newsecret")
    with pytest.raises(ConflictError):
        users.update_profile(db, alice["id"], email=bob["email"])


def test_profile_picture_and_lookup(db, make_user):
    alice = make_user("Alice")
    profile = users.set_profile_picture(db, alice["id"], "https://images.example.com/a.png")
    assert profile["profile_picture"] == "https://images.example.com/a.png"
    with pytest.raises(NotFoundError):
        users.get_user(db, "64b7f0c2a1b2c3d4e5f60718")
    with pytest.raises(ValidationError):
        users.get_user(db, "nope")


def test_leaderboard_orders_by_karma(db, make_user):
    alice, bob, carol = make_user("Alice"), make_user("Bob"), make_user("Carol")
    db["user"].update_one({"_id": ObjectId(bob["id"])}, {"$set": {"karma_points": 30}})
    db["user"].update_one({"_id": ObjectId(carol["id"])}, {"$set": {"karma_points": 10}})

    board = users.leaderboard(db, limit=2)
    assert [u["name"] for u in board] == ["Bob", "Carol"]
    assert "email" not in board[0]


def test_password_hashing():
    assert verify_password("pw", hash_password("pw"))
    assert not verify_password("pw", hash_password("other"))
    assert not verify_password("pw", None)

    first, second = hash_password("pw"), hash_password("pw")
    assert first != second
    assert first.startswith("pbkdf2_sha256$")
    assert verify_password("pw", first) and verify_password("pw", second)
    # unsalted digests and garbage never verify
    assert not verify_password("pw", hashlib.sha256(b"pw").hexdigest())
    assert not verify_password("pw", "md5$1$salt$abc")
    assert not verify_password("pw", "pbkdf2_sha256$many$salt$abc")
