"""Team and book lookups shared by the auth gate and the routers.

Membership rows in ``team_users`` are the source of truth for roles; the
team claim inside a token is only a hint about which team is active.
"""
from __future__ import annotations

from typing import Any

from yamo.db import supabase
from yamo.domain.permissions import TeamRole, normalize_role


def get_user_role(team_id: int, user_id: int) -> TeamRole | None:
    """Role of ``user_id`` in an active team, or None without membership."""
    team = get_team_by_id(team_id)
    if not team:
        return None
    result = supabase.table("team_users").select("role").eq(
        "team_id", team_id
    ).eq("user_id", user_id).execute()
    if not result.data:
        return None
    return normalize_role(result.data[0]["role"])


def get_team_by_id(team_id: int, include_deleted: bool = False) -> dict[str, Any] | None:
    query = supabase.table("teams").select("id, name, created_at, deleted_at").eq("id", team_id)
    if not include_deleted:
        query = query.is_("deleted_at", "null")
    result = query.execute()
    if not result.data:
        return None
    return result.data[0]


def get_team_users(team_id: int) -> list[dict[str, Any]]:
    """Roster of a team: ``[{id, username, role, created_at}]`` sorted by username."""
    memberships = supabase.table("team_users").select("user_id, role").eq("team_id", team_id).execute()
    roles = {row["user_id"]: row["role"] for row in memberships.data or []}
    if not roles:
        return []
    users = supabase.table("users").select("id, username, created_at").in_("id", list(roles)).execute()
    roster = [
        {
            "id": user["id"],
            "username": user["username"],
            "role": roles[user["id"]],
            "created_at": user.get("created_at"),
        }
        for user in users.data or []
    ]
    return sorted(roster, key=lambda row: row["username"])


def count_team_admins(team_id: int) -> int:
    result = supabase.table("team_users").select("user_id").eq(
        "team_id", team_id
    ).eq("role", TeamRole.ADMIN.value).execute()
    return len(result.data or [])


def get_book_by_id(book_id: int, include_deleted: bool = False) -> dict[str, Any] | None:
    query = supabase.table("books").select("*").eq("id", book_id)
    if not include_deleted:
        query = query.is_("deleted_at", "null")
    result = query.execute()
    if not result.data:
        return None
    return result.data[0]


def get_team_by_book_id(book_id: int) -> dict[str, Any] | None:
    book = get_book_by_id(book_id)
    if not book:
        return None
    return get_team_by_id(book["team_id"])


def get_team_by_account_id(account_id: int) -> dict[str, Any] | None:
    result = supabase.table("accounts").select("id, book_id").eq("id", account_id).execute()
    if not result.data:
        return None
    return get_team_by_book_id(result.data[0]["book_id"])


def get_team_by_category_id(category_id: int) -> dict[str, Any] | None:
    result = supabase.table("categories").select("id, book_id").eq("id", category_id).execute()
    if not result.data:
        return None
    return get_team_by_book_id(result.data[0]["book_id"])


def get_team_by_transaction_id(transaction_id: int) -> dict[str, Any] | None:
    result = supabase.table("transactions").select("id, account_id").eq("id", transaction_id).execute()
    if not result.data:
        return None
    return get_team_by_account_id(result.data[0]["account_id"])


def list_user_teams(user_id: int) -> list[dict[str, Any]]:
    """Active teams ``user_id`` belongs to, with the role held in each."""
    memberships = supabase.table("team_users").select("team_id, role").eq("user_id", user_id).execute()
    roles = {row["team_id"]: row["role"] for row in memberships.data or []}
    if not roles:
        return []
    teams = supabase.table("teams").select("id, name, created_at, deleted_at").in_(
        "id", list(roles)
    ).is_("deleted_at", "null").execute()
    rows = [{**team, "role": roles[team["id"]]} for team in teams.data or []]
    return sorted(rows, key=lambda row: row["name"])


def purge_book_data(book_id: int) -> None:
    """Hard delete the transactions, accounts and categories of a book."""
    accounts = supabase.table("accounts").select("id").eq("book_id", book_id).execute()
    account_ids = [account["id"] for account in accounts.data or []]
    if account_ids:
        supabase.table("transactions").delete().in_("account_id", account_ids).execute()
    supabase.table("accounts").delete().eq("book_id", book_id).execute()
    supabase.table("categories").delete().eq("book_id", book_id).execute()
