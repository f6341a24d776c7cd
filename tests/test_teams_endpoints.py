from fastapi.testclient import TestClient

from conftest import bearer, token_for
from yamo.main import app

client = TestClient(app)

ADMIN_7 = (7, "Household", "admin")


def _root() -> dict:
    return bearer(token_for(4, "root", superadmin=True))


def test_create_team_makes_creator_admin(fake_db) -> None:
    response = client.post("/api/teams/", json={"name": "  Trip  "}, headers=bearer(token_for(3, "viewer")))

    assert response.status_code == 201
    team = response.json()
    assert team["name"] == "Trip"
    assert team["role"] == "admin"
    assert {"team_id": team["id"], "user_id": 3, "role": "admin"}.items() <= fake_db.tables["team_users"][-1].items()


def test_create_team_requires_name(fake_db) -> None:
    response = client.post("/api/teams/", json={"name": "   "}, headers=bearer(token_for(3, "viewer")))
    assert response.status_code == 400


def test_get_team_needs_matching_claim(fake_db) -> None:
    with_claim = client.get("/api/teams/7", headers=bearer(token_for(3, "viewer", team=(7, "Household", "viewer"))))
    assert with_claim.status_code == 200
    assert with_claim.json()["book_count"] == 2
    assert with_claim.json()["user_count"] == 3

    without_claim = client.get("/api/teams/7", headers=bearer(token_for(3, "viewer")))
    assert without_claim.status_code == 403


def test_rename_team_requires_admin(fake_db) -> None:
    collaborator = bearer(token_for(2, "collab", team=(7, "Household", "collaborator")))
    denied = client.put("/api/teams/7", json={"name": "Home"}, headers=collaborator)
    assert denied.status_code == 403
    assert denied.json() == {"error": "Admin privileges required for this operation"}

    renamed = client.put("/api/teams/7", json={"name": "Home"}, headers=bearer(token_for(1, "admin", team=ADMIN_7)))
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Home"


def test_team_roster(fake_db) -> None:
    response = client.get("/api/teams/7/users", headers=bearer(token_for(1, "admin", team=ADMIN_7)))

    assert [(member["username"], member["role"]) for member in response.json()] == [
        ("admin", "admin"),
        ("collab", "collaborator"),
        ("viewer", "viewer"),
    ]


def test_add_member_and_duplicate(fake_db) -> None:
    headers = bearer(token_for(1, "admin", team=ADMIN_7))

    added = client.post("/api/teams/7/users", json={"userId": 5, "role": "Viewer"}, headers=headers)
    assert added.status_code == 201
    assert ("outsider", "viewer") in [(member["username"], member["role"]) for member in added.json()]

    duplicate = client.post("/api/teams/7/users", json={"userId": 5, "role": "viewer"}, headers=headers)
    assert duplicate.status_code == 409

    unknown = client.post("/api/teams/7/users", json={"userId": 99, "role": "viewer"}, headers=headers)
    assert unknown.status_code == 404


def test_invalid_role_is_rejected(fake_db) -> None:
    response = client.post(
        "/api/teams/7/users",
        json={"userId": 5, "role": "owner"},
        headers=bearer(token_for(1, "admin", team=ADMIN_7)),
    )
    assert response.status_code == 400


def test_last_admin_cannot_be_demoted_or_removed(fake_db) -> None:
    headers = bearer(token_for(1, "admin", team=ADMIN_7))

    demote = client.put("/api/teams/7/users/1", json={"role": "viewer"}, headers=headers)
    assert demote.status_code == 409
    assert demote.json() == {"error": "Cannot remove the last admin from the team"}

    remove = client.delete("/api/teams/7/users/1", headers=headers)
    assert remove.status_code == 409


def test_superadmin_may_demote_last_admin(fake_db) -> None:
    response = client.put("/api/teams/7/users/1", json={"role": "viewer"}, headers=_root())

    assert response.status_code == 200
    assert fake_db.tables["team_users"][0]["role"] == "viewer"


def test_demotion_applies_on_next_request(fake_db) -> None:
    collaborator = bearer(token_for(2, "collab", team=(7, "Household", "collaborator")))
    book = {"teamId": 7, "name": "Scratch"}
    assert client.post("/api/books/", json=book, headers=collaborator).status_code == 201

    client.put("/api/teams/7/users/2", json={"role": "viewer"}, headers=bearer(token_for(1, "admin", team=ADMIN_7)))

    denied = client.post("/api/books/", json=book, headers=collaborator)
    assert denied.status_code == 403
    assert denied.json() == {"error": "Write access required for this operation"}


def test_search_is_superadmin_only_and_ranks_exact_first(fake_db) -> None:
    fake_db.tables["teams"].append({"id": 9, "name": "Business Travel", "deleted_at": None})
    fake_db.tables["teams"].append({"id": 10, "name": "Old Business", "deleted_at": "2023-01-01T00:00:00+00:00"})

    assert client.get("/api/teams/search", params={"q": "bus"}, headers=bearer(token_for(1, "admin"))).status_code == 403

    response = client.get("/api/teams/search", params={"q": "Business"}, headers=_root())
    assert [team["name"] for team in response.json()] == ["Business", "Business Travel"]

    with_deleted = client.get("/api/teams/search", params={"q": "Business", "includeDeleted": True}, headers=_root())
    assert [team["id"] for team in with_deleted.json()] == [8, 10, 9]


def test_soft_delete_restore_cycle(fake_db) -> None:
    headers = bearer(token_for(1, "admin", team=ADMIN_7))
    assert client.delete("/api/teams/7", headers=headers).status_code == 204
    assert fake_db.tables["teams"][0]["deleted_at"] is not None

    recycle_bin = client.get("/api/teams/all", params={"deleted": True}, headers=_root())
    assert [team["id"] for team in recycle_bin.json()] == [7]

    # members of a deleted team are managed by superadmins only
    assert client.post("/api/teams/7/users", json={"userId": 5, "role": "viewer"}, headers=headers).status_code == 403

    restored = client.post("/api/teams/7/restore", headers=_root())
    assert restored.status_code == 200
    assert restored.json()["deleted_at"] is None
    assert client.post("/api/teams/7/restore", headers=_root()).status_code == 400


def test_permanent_delete_cascades(fake_db) -> None:
    assert client.delete("/api/teams/7/permanent", headers=bearer(token_for(1, "admin", team=ADMIN_7))).status_code == 403

    response = client.delete("/api/teams/7/permanent", headers=_root())

    assert response.status_code == 204
    assert [team["id"] for team in fake_db.tables["teams"]] == [8]
    assert [book["id"] for book in fake_db.tables["books"]] == [50]
    assert [account["id"] for account in fake_db.tables["accounts"]] == [500]
    assert fake_db.tables["categories"] == []
    assert [row["id"] for row in fake_db.tables["transactions"]] == [7003]
    assert all(row["team_id"] != 7 for row in fake_db.tables["team_users"])
