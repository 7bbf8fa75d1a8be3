from conftest import API

REGISTRATION = {
    "email": "ana@example.com",
    "password": "s3cret-pass",
    "first_name": "Ana",
    "last_name": "Rojas",
}


def register(client, **overrides):
    return client.post(f"{API}/auth/register", json={**REGISTRATION, **overrides})


def test_register_then_login_issues_a_usable_token(client):
    response = register(client)
    assert response.status_code == 201
    assert response.json()["user"]["role"] == "client"
    assert "password_hash" not in response.json()["user"]

    response = client.post(f"{API}/auth/login", json={"email": "ana@example.com", "password": "s3cret-pass"})
    assert response.status_code == 200
    body = response.json()
    assert "documents:create" in body["user"]["permissions"]

    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "ana@example.com"


def test_login_and_register_ignore_authorization_headers(client):
    response = register(client, email="bea@example.com")
    assert response.status_code == 201

    response = client.post(
        f"{API}/auth/login",
        json={"email": "bea@example.com", "password": "s3cret-pass"},
        headers={"Authorization": "Bearer garbage"},
    )
    assert response.status_code == 200


def test_duplicate_registration_is_400(client):
    assert register(client).status_code == 201

    response = register(client)

    assert response.status_code == 400
    assert response.json()["message"] == "Email is already registered"


def test_register_cannot_create_admins(client):
    response = register(client, role="admin")

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "role"


def test_register_validates_every_field(client):
    response = client.post(f"{API}/auth/register", json={"email": "not-an-email", "password": "123"})

    assert response.status_code == 400
    fields = {d["field"] for d in response.json()["details"]}
    assert {"email", "password", "first_name", "last_name"} <= fields


def test_wrong_password_is_401(client):
    register(client)

    response = client.post(f"{API}/auth/login", json={"email": "ana@example.com", "password": "wrong"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


def test_unknown_user_is_401(client):
    response = client.post(f"{API}/auth/login", json={"email": "ghost@example.com", "password": "whatever"})

    assert response.status_code == 401


def test_me_requires_a_token(client):
    assert client.get(f"{API}/auth/me").status_code == 401


def test_logout_is_authenticated(client, auth_headers):
    assert client.post(f"{API}/auth/logout").status_code == 401
    response = client.post(f"{API}/auth/logout", headers=auth_headers("client"))
    assert response.status_code == 201
    assert response.json()["success"] is True
