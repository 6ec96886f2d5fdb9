from notifications import EVENT_MESSAGE_RECEIVED, EVENT_NEW_POST
from tests.conftest import bearer


def register(client, name):
    resp = client.post("/api/users/register", json={"name": name, "email": f"{name.lower()}@example.com", "password": "secret123"})
    assert resp.status_code == 201
    return resp.json()


POST_BODY = {
    "title": "Need groceries",
    "description": "Can someone pick up rice?",
    "type": "request",
    "category": "Food",
    "latitude": 12.97,
    "longitude": 77.59,
}


def test_health(client):
    assert client.get("/").json() == {"message": "LocalAid API is running"}


def test_auth_required(client):
    assert client.get("/api/chat").status_code == 401
    assert client.get("/api/chat", headers={"Authorization": "Bearer garbage"}).status_code == 401
    assert client.post("/api/posts", json=POST_BODY).status_code == 401


def test_login_and_profile(client):
    alice = register(client, "Alice")
    resp = client.post("/api/users/login", json={"email": "alice@example.com", "password": "secret123"})
    assert resp.status_code == 200
    me = client.get("/api/users/me", headers=bearer(resp.json())).json()
    assert me["id"] == alice["id"]
    bad = client.post("/api/users/login", json={"email": "alice@example.com", "password": "nope"})
    assert bad.status_code == 401
    assert bad.json()["detail"] == "Invalid email or password"


def test_post_lifecycle_over_http(client, notifier):
    alice, bob = register(client, "Alice"), register(client, "Bob")

    created = client.post("/api/posts", json=POST_BODY, headers=bearer(alice))
    assert created.status_code == 201
    post_id = created.json()["id"]
    assert len(notifier.of(EVENT_NEW_POST)) == 1

    nearby = client.get("/api/posts", params={"lat": 12.97, "lng": 77.59, "dist": 10, "excludeId": bob["id"]}).json()
    assert [p["id"] for p in nearby] == [post_id]
    assert nearby[0]["user"]["name"] == "Alice"

    trends = client.get("/api/posts/trends", params={"lat": 12.97, "lng": 77.59, "excludeId": bob["id"]}).json()
    assert trends["mostNeeded"] == "Food"

    mine = client.get("/api/posts/me", headers=bearer(alice)).json()
    assert [p["id"] for p in mine] == [post_id]

    assert client.delete(f"/api/posts/{post_id}", headers=bearer(bob)).status_code == 401
    fulfilled = client.put(f"/api/posts/{post_id}/fulfill", json={"helperId": bob["id"]}, headers=bearer(alice))
    assert fulfilled.status_code == 200
    assert fulfilled.json()["karma_points"] == 10

    again = client.put(f"/api/posts/{post_id}/fulfill", json={"helperId": bob["id"]}, headers=bearer(alice))
    assert again.status_code == 400
    assert again.json()["detail"] == "Post already fulfilled"

    board = client.get("/api/users/leaderboard").json()["items"]
    assert board[0]["id"] == bob["id"]
    assert board[0]["karma_points"] == 10

    assert client.delete(f"/api/posts/{post_id}", headers=bearer(alice)).status_code == 200
    assert client.delete(f"/api/posts/{post_id}", headers=bearer(alice)).status_code == 404
    assert client.get("/api/posts").json() == []


def test_trends_without_activity(client):
    resp = client.get("/api/posts/trends", params={"lat": 0, "lng": 0})
    assert resp.json() == {"summary": "No recent activity in your area. Be the first to post!"}


def test_chat_over_http(client, notifier):
    alice, bob = register(client, "Alice"), register(client, "Bob")

    convo = client.post("/api/chat", json={"userId": bob["id"]}, headers=bearer(alice)).json()
    same = client.post("/api/chat", json={"userId": alice["id"]}, headers=bearer(bob)).json()
    assert convo["id"] == same["id"]
    assert client.post("/api/chat", json={"userId": alice["id"]}, headers=bearer(alice)).status_code == 400

    empty = client.post("/api/chat/message", json={"conversationId": convo["id"]}, headers=bearer(alice))
    assert empty.status_code == 400

    sent = client.post("/api/chat/message", json={"conversationId": convo["id"], "text": "hello"}, headers=bearer(alice))
    assert sent.status_code == 200
    assert [e[1] for e in notifier.of(EVENT_MESSAGE_RECEIVED)] == [bob["id"]]

    history = client.get(f"/api/chat/{convo['id']}", headers=bearer(bob)).json()
    assert [m["text"] for m in history] == ["hello"]
    chats = client.get("/api/chat", headers=bearer(bob)).json()
    assert chats[0]["latest_message"]["text"] == "hello"


def test_uploads(client, image_host):
    alice = register(client, "Alice")
    png = ("a.png", b"\x89PNG fake", "image/png")

    profile = client.post("/api/upload/profile", files={"image": png}, headers=bearer(alice))
    assert profile.status_code == 200
    url = profile.json()["image_url"]
    assert client.get("/api/users/me", headers=bearer(alice)).json()["profile_picture"] == url

    chat_image = client.post("/api/upload/message", files={"image": png}, headers=bearer(alice))
    assert chat_image.json()["image_url"].startswith("https://images.example.com/localaid_chat/")

    many = client.post("/api/upload/post-images", files=[("images", png), ("images", png)], headers=bearer(alice))
    assert len(many.json()["images"]) == 2
    too_many = client.post("/api/upload/post-images", files=[("images", png)] * 5, headers=bearer(alice))
    assert too_many.status_code == 400

    missing = client.post("/api/upload/message", headers=bearer(alice))
    assert missing.status_code == 400
    text_file = client.post("/api/upload/message", files={"image": ("a.txt", b"hi", "text/plain")}, headers=bearer(alice))
    assert text_file.status_code == 400
    assert [u[0] for u in image_host.uploads] == ["localaid_profiles", "localaid_chat", "localaid_posts", "localaid_posts"]
