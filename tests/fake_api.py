import asyncio
import json

import httpx

from yamo.auth.jwt import create_access_token, decode_access_token
from yamo.client.api import YamoApiClient
from yamo.domain.claims import NO_TEAM, Principal, TeamContext
from yamo.domain.errors import TokenDecodeError
from yamo.domain.permissions import permissions_for_role

BASE_URL = "http://yamo.test/api"


class FakeApiServer:
    """In-memory stand-in for the REST API, served through ``httpx.MockTransport``.

    ``gates`` holds events a request waits on before it is answered and
    ``failures`` maps a ``(method, path)`` to the ``(status, error)`` it returns.
    """

    def __init__(self):
        self.users = {
            "admin": {"id": 1, "password": "admin-pass", "superadmin": False},
            "collab": {"id": 2, "password": "collab-pass", "superadmin": False},
            "viewer": {"id": 3, "password": "viewer-pass", "superadmin": False},
            "root": {"id": 4, "password": "root-pass", "superadmin": True},
        }
        self.teams = {7: "Household", 8: "Business"}
        self.memberships = {7: {1: "admin", 2: "collaborator", 3: "viewer"}, 8: {1: "viewer"}}
        self.books = {
            7: [{"id": 41, "team_id": 7, "name": "2023"}, {"id": 42, "team_id": 7, "name": "2024"}],
            8: [{"id": 50, "team_id": 8, "name": "Shop"}],
        }
        self.accounts = {
            41: [{"id": 410, "book_id": 41, "name": "Old checking", "type": "debit"}],
            42: [
                {"id": 420, "book_id": 42, "name": "Checking", "type": "debit"},
                {"id": 421, "book_id": 42, "name": "Card", "type": "credit"},
            ],
            50: [{"id": 500, "book_id": 50, "name": "Till", "type": "debit"}],
        }
        self.categories = {
            41: [{"id": 801, "book_id": 41, "name": "Misc", "type": "expense"}],
            42: [{"id": 901, "book_id": 42, "name": "Food", "type": "expense"}],
            50: [],
        }
        self.transactions = {
            42: [
                {"id": 7001, "account_id": 420, "description": "Groceries", "amount": "54.20", "date": "2024-03-02", "exercised": False},
                {"id": 7002, "account_id": 421, "description": "Payroll", "amount": "2500.00", "date": "2024-03-28", "exercised": True},
            ],
        }
        self.requests: list[tuple[str, str]] = []
        self.gates: dict[tuple[str, str], asyncio.Event] = {}
        self.arrived: dict[tuple[str, str], asyncio.Event] = {}
        self.failures: dict[tuple[str, str], tuple[int, str]] = {}

    def client(self) -> YamoApiClient:
        return YamoApiClient(BASE_URL, transport=httpx.MockTransport(self.handler))

    def token(self, username: str, team_id: int | None = None) -> str:
        user = self.users[username]
        principal = Principal(user_id=user["id"], username=username, is_superadmin=user["superadmin"])
        claim = NO_TEAM
        if team_id is not None:
            claim = TeamContext(team_id, self.teams[team_id], self.memberships[team_id][user["id"]])
        return create_access_token(principal, claim)

    def count(self, method: str, path: str) -> int:
        return self.requests.count((method, path))

    def gate(self, method: str, path: str) -> asyncio.Event:
        self.gates[(method, path)] = asyncio.Event()
        self.arrived[(method, path)] = asyncio.Event()
        return self.gates[(method, path)]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path.removeprefix("/api"))
        self.requests.append(key)
        if key in self.gates:
            self.arrived[key].set()
            await self.gates[key].wait()
        if key in self.failures:
            status, message = self.failures[key]
            return httpx.Response(status, json={"error": message})

        method, path = key
        body = json.loads(request.content) if request.content else {}
        params = dict(request.url.params)

        if (method, path) == ("POST", "/users/login"):
            user = self.users.get(body.get("username"))
            if not user or user["password"] != body.get("password"):
                return httpx.Response(401, json={"error": "Invalid credentials"})
            return httpx.Response(200, json={
                "token": self.token(body["username"]),
                "user": {"id": user["id"], "username": body["username"], "superadmin": user["superadmin"]},
            })

        authorization = request.headers.get("Authorization", "")
        if not authorization.startswith("Bearer "):
            return httpx.Response(401, json={"error": "Authentication token required"})
        try:
            decoded = decode_access_token(authorization.removeprefix("Bearer "))
        except TokenDecodeError:
            return httpx.Response(403, json={"error": "Invalid token"})
        user_id = decoded.principal.user_id
        claim = decoded.claim
        claimed_team = claim.team_id if isinstance(claim, TeamContext) else None
        live_role = self.memberships.get(claimed_team, {}).get(user_id)

        if (method, path) == ("GET", "/users/me"):
            team = {"id": claimed_team, "name": self.teams[claimed_team], "role": live_role} if live_role else None
            return httpx.Response(200, json={
                "id": user_id,
                "username": decoded.principal.username,
                "superadmin": decoded.principal.is_superadmin,
                "team": team,
                "permissions": permissions_for_role(live_role).as_dict(),
            })
        if (method, path) == ("GET", "/users/me/teams"):
            return httpx.Response(200, json=[
                {"id": team_id, "name": self.teams[team_id], "role": members[user_id]}
                for team_id, members in self.memberships.items()
                if user_id in members
            ])
        if (method, path) == ("POST", "/users/select-team"):
            team_id = body["teamId"]
            role = self.memberships.get(team_id, {}).get(user_id)
            if role is None:
                return httpx.Response(403, json={"error": "Access denied to this team"})
            token = self.token(decoded.principal.username, team_id)
            return httpx.Response(200, json={"token": token, "team": {"id": team_id, "name": self.teams[team_id], "role": role}})
        if (method, path) == ("POST", "/users/exit-team"):
            return httpx.Response(200, json={"token": self.token(decoded.principal.username)})

        if method == "GET" and path.startswith("/teams/") and path.endswith("/users"):
            team_id = int(path.split("/")[2])
            if team_id != claimed_team or live_role is None:
                return httpx.Response(403, json={"error": "Access denied to this team"})
            names = {user["id"]: name for name, user in self.users.items()}
            return httpx.Response(200, json=[
                {"id": member_id, "username": names[member_id], "role": role}
                for member_id, role in self.memberships[team_id].items()
            ])

        if method == "GET" and path == "/books/":
            team_id = int(params["teamId"])
            if team_id != claimed_team or live_role is None:
                return httpx.Response(403, json={"error": "Access denied to this team"})
            return httpx.Response(200, json=self.books[team_id])

        if method == "GET" and path in ("/accounts/", "/categories/", "/transactions/"):
            book_id = int(params["book_id"])
            if live_role is None or book_id not in [book["id"] for book in self.books.get(claimed_team, [])]:
                return httpx.Response(403, json={"error": "Access denied to this team"})
            source = {"/accounts/": self.accounts, "/categories/": self.categories, "/transactions/": self.transactions}[path]
            rows = source.get(book_id, [])
            if path == "/transactions/":
                rows = [
                    row for row in rows
                    if params.get("start_date", "") <= row["date"] <= params.get("end_date", "9999-12-31")
                ]
            return httpx.Response(200, json=rows)

        if method == "PUT" and path.startswith("/transactions/"):
            if not permissions_for_role(live_role).can_write:
                return httpx.Response(403, json={"error": "Write access required for this operation"})
            transaction_id = int(path.split("/")[2])
            for rows in self.transactions.values():
                for row in rows:
                    if row["id"] == transaction_id:
                        row.update(body)
                        return httpx.Response(200, json=dict(row))
            return httpx.Response(404, json={"error": "Transaction not found"})

        return httpx.Response(404, json={"error": "Not found"})
