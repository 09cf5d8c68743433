from tutor_center.security import create_access_token


def test_register_then_login(client):
    response = client.post(
        "/api/auth/register",
        json={
            "name": "New Parent",
            "email": "New.Parent@Example.com",
            "password": "secret123",
            "password_confirmation": "secret123",
            "role": "parent",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "Success"
    assert body["data"]["user"]["email"] == "new.parent@example.com"
    assert body["data"]["token_type"] == "bearer"

    login = client.post("/api/auth/login", json={"email": "new.parent@example.com", "password": "secret123"})
    assert login.status_code == 200
    assert login.json()["data"]["user"]["role"] == "parent"


def test_register_rejects_roles_created_by_admins(client):
    response = client.post(
        "/api/auth/register",
        json={
            "name": "Sneaky",
            "email": "sneaky@example.com",
            "password": "secret123",
            "password_confirmation": "secret123",
            "role": "teacher",
        },
    )

    assert response.status_code == 422
    assert response.json()["status"] == "Error"
    assert "role" in response.json()["errors"]


def test_public_register_cannot_mint_administrators(client):
    for role in ("super_admin", "center_admin"):
        response = client.post(
            "/api/auth/register",
            json={
                "name": "Sneaky",
                "email": f"sneaky.{role}@example.com",
                "password": "secret123",
                "password_confirmation": "secret123",
                "role": role,
            },
        )

        assert response.status_code == 403
        assert response.json()["status"] == "Error"


def test_super_admin_registers_center_admins(client, world, auth):
    payload = {
        "name": "East Admin",
        "email": "east.admin@example.com",
        "password": "secret123",
        "password_confirmation": "secret123",
        "role": "center_admin",
    }

    assert client.post("/api/auth/register", json=payload, headers=auth(world.admin_a)).status_code == 403
    created = client.post("/api/auth/register", json=payload, headers=auth(world.super_admin))
    assert created.status_code == 201
    assert created.json()["data"]["user"]["role"] == "center_admin"


def test_register_duplicate_email_conflicts(client, world):
    response = client.post(
        "/api/auth/register",
        json={
            "name": "Again",
            "email": world.parent_a.email,
            "password": "secret123",
            "password_confirmation": "secret123",
            "role": "parent",
        },
    )

    assert response.status_code == 409


def test_login_with_wrong_password(client, world):
    response = client.post("/api/auth/login", json={"email": world.admin_a.email, "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json() == {"status": "Error", "message": "Invalid credentials"}


def test_missing_and_bad_tokens_are_401(client, world):
    assert client.get("/api/auth/profile").status_code == 401
    bad = client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401
    assert bad.json()["status"] == "Error"


def test_deactivated_user_loses_access(client, world, auth, db):
    headers = auth(world.parent_a)
    assert client.get("/api/auth/profile", headers=headers).status_code == 200

    toggled = client.patch(f"/api/super-admin/users/{world.parent_a.id}/toggle-status", headers=auth(world.super_admin))

    assert toggled.status_code == 200
    assert toggled.json()["data"] == {"id": world.parent_a.id, "is_active": False}
    assert client.get("/api/auth/profile", headers=headers).status_code == 401


def test_super_admin_cannot_toggle_self(client, world, auth):
    response = client.patch(
        f"/api/super-admin/users/{world.super_admin.id}/toggle-status", headers=auth(world.super_admin)
    )

    assert response.status_code == 400


def test_role_gate_is_403(client, world, auth):
    response = client.get("/api/auth/center-admins", headers=auth(world.admin_a))

    assert response.status_code == 403
    assert response.json()["status"] == "Error"


def test_change_password(client, world, auth):
    headers = auth(world.parent_b)
    wrong = client.post(
        "/api/auth/change-password",
        headers=headers,
        json={"current_password": "bad", "new_password": "fresh-pass", "new_password_confirmation": "fresh-pass"},
    )
    assert wrong.status_code == 422
    assert "current_password" in wrong.json()["errors"]

    ok = client.post(
        "/api/auth/change-password",
        headers=headers,
        json={"current_password": "secret123", "new_password": "fresh-pass", "new_password_confirmation": "fresh-pass"},
    )
    assert ok.status_code == 200
    login = client.post("/api/auth/login", json={"email": world.parent_b.email, "password": "fresh-pass"})
    assert login.status_code == 200


def test_token_for_deleted_user_is_rejected(client):
    headers = {"Authorization": f"Bearer {create_access_token(4242, 'parent')}"}

    assert client.get("/api/auth/profile", headers=headers).status_code == 401


def test_super_admin_dashboard_counts(client, world, auth):
    response = client.get("/api/super-admin/dashboard", headers=auth(world.super_admin))

    assert response.status_code == 200
    counts = response.json()["data"]["counts"]
    assert counts["centers"] == 2
    assert counts["students"] == 3
    assert counts["teachers"] == 2
    assert len(response.json()["data"]["monthly_revenue"]) == 6


def test_center_admin_lists_own_and_unlinked_parents(client, world, auth):
    names = [row["name"] for row in client.get("/api/auth/parents", headers=auth(world.admin_a)).json()["data"]]

    assert names == ["Padding One", "Padding Two", "Parent A"]
    everyone = client.get("/api/auth/parents", headers=auth(world.super_admin)).json()["data"]
    assert len(everyone) == 4
