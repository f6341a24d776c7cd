from __future__ import annotations

import datetime as dt
from typing import Any

import httpx

from yamo.domain.errors import ErrorKind

_INVALID_CREDENTIAL_MESSAGES = {"Invalid token", "Invalid user"}


class YamoApiError(Exception):
    """Failed call against the YAMO REST API.

    ``status_code`` is None when the request never got a response.
    """

    def __init__(self, status_code: int | None, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message if status_code is None else f"HTTP {status_code}: {message}")

    @property
    def kind(self) -> ErrorKind:
        if self.status_code == 401:
            return ErrorKind.UNAUTHENTICATED
        if self.status_code == 403:
            if self.message in _INVALID_CREDENTIAL_MESSAGES:
                return ErrorKind.INVALID_CREDENTIAL
            return ErrorKind.UNAUTHORIZED
        return ErrorKind.TRANSITION_FAILURE


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase


class YamoApiClient:
    """Async client for the endpoints the session and context layers consume.

    Calls are never retried; a failure surfaces as ``YamoApiError``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> YamoApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, Any] | None = None,
        json_payload: dict[str, Any] | None = None,
    ) -> Any:
        headers: dict[str, str] = {}
        bearer = token or self.token
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        try:
            response = await self._client.request(
                method,
                path,
                headers=headers,
                params=params,
                json=json_payload,
            )
        except httpx.HTTPError as exc:
            raise YamoApiError(None, f"API connectivity error: {exc}") from exc

        if response.status_code >= 400:
            raise YamoApiError(response.status_code, _error_message(response))
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def login(self, username: str, password: str) -> dict[str, Any]:
        return await self._request("POST", "/users/login", json_payload={"username": username, "password": password})

    async def me(self) -> dict[str, Any]:
        return await self._request("GET", "/users/me")

    async def my_teams(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/users/me/teams")

    async def select_team(self, team_id: int) -> dict[str, Any]:
        return await self._request("POST", "/users/select-team", json_payload={"teamId": team_id})

    async def exit_team(self) -> dict[str, Any]:
        return await self._request("POST", "/users/exit-team")

    async def team_users(self, team_id: int, *, token: str | None = None) -> list[dict[str, Any]]:
        return await self._request("GET", f"/teams/{team_id}/users", token=token)

    async def books(self, team_id: int, *, token: str | None = None) -> list[dict[str, Any]]:
        return await self._request("GET", "/books/", token=token, params={"teamId": team_id})

    async def accounts(self, book_id: int) -> list[dict[str, Any]]:
        return await self._request("GET", "/accounts/", params={"book_id": book_id})

    async def categories(self, book_id: int) -> list[dict[str, Any]]:
        return await self._request("GET", "/categories/", params={"book_id": book_id})

    async def transactions(
        self,
        book_id: int,
        start_date: dt.date | None = None,
        end_date: dt.date | None = None,
        account_id: int | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"book_id": book_id}
        if start_date:
            params["start_date"] = start_date.isoformat()
        if end_date:
            params["end_date"] = end_date.isoformat()
        if account_id is not None:
            params["account_id"] = account_id
        return await self._request("GET", "/transactions/", params=params)

    async def update_transaction(self, transaction_id: int, **fields: Any) -> dict[str, Any]:
        return await self._request("PUT", f"/transactions/{transaction_id}", json_payload=fields)
