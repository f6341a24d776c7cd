"""Client-side session: the token, the principal it names and the active team claim."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from jose import JWTError, jwt

from yamo.client.api import YamoApiClient, YamoApiError
from yamo.client.storage import TokenStore
from yamo.domain.claims import NO_TEAM, DecodedToken, Principal, TeamClaim, TeamContext, parse_payload
from yamo.domain.errors import DecodeFailure, TokenDecodeError
from yamo.domain.permissions import EffectivePermission, Surface, TeamRole, evaluate, normalize_role
from yamo.observability import incr_metric, log_event


def read_token(token: str) -> DecodedToken:
    """Decode a token without verifying its signature; the server stays the judge."""
    try:
        payload = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise TokenDecodeError(DecodeFailure.MALFORMED, str(exc)) from exc
    return parse_payload(payload)


class SessionStore:
    def __init__(self, api: YamoApiClient, store: TokenStore):
        self.api = api
        self.store = store
        self.token: str | None = None
        self.principal: Principal | None = None
        self.claim: TeamClaim = NO_TEAM
        self.user: dict[str, Any] | None = None
        self.roster: dict[int, TeamRole] | None = None
        self._init_task: asyncio.Task | None = None
        self._generation = 0

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None and self.principal is not None

    @property
    def is_superadmin(self) -> bool:
        return bool(self.principal and self.principal.is_superadmin)

    @property
    def permission(self) -> EffectivePermission:
        # Without a roster for the claimed team (not fetched yet, or offline)
        # the role in the claim is trusted until the next roster load.
        return evaluate(self.principal, self.claim, self.roster)

    @property
    def admin_permission(self) -> EffectivePermission:
        return evaluate(self.principal, self.claim, surface=Surface.ADMIN)

    @property
    def team_id(self) -> int | None:
        if isinstance(self.claim, TeamContext):
            return self.claim.team_id
        return None

    async def login(self, username: str, password: str) -> Principal:
        data = await self.api.login(username, password)
        self.replace_token(data["token"])
        self.user = data.get("user")
        log_event("session_started", user_id=self.principal.user_id)
        return self.principal

    def replace_token(self, token: str) -> DecodedToken:
        """Persist ``token`` and make it current.

        The old token stays in place if decoding or persisting the new one fails.
        """
        decoded = read_token(token)
        self.store.save(token)

        previous_team = self.team_id
        self.token = token
        self.api.token = token
        self.principal = decoded.principal
        self.claim = decoded.claim
        if self.team_id != previous_team:
            self.roster = None
        return decoded

    def set_roster(self, team_id: int, members: Iterable[Mapping[str, Any]]) -> None:
        """Install the live membership lookup for ``team_id`` if it is still the active team."""
        if team_id != self.team_id:
            return
        self.roster = {int(member["id"]): normalize_role(member["role"]) for member in members}

    async def initialize_from_persisted(self) -> bool:
        """Restore a persisted session, re-validated against the server.

        Concurrent callers share one in-flight validation. Returns False (and
        leaves the session cleared) when there is nothing valid to restore, or
        when a logout lands while the validation is in flight.
        """
        generation = self._generation
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize(generation))
            self._init_task.add_done_callback(self._release_init)
        task = self._init_task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled() and generation != self._generation:
                return False
            raise

    def _release_init(self, task: asyncio.Task) -> None:
        # only a successful restore is remembered; failures may be retried
        if task is not self._init_task:
            return
        if task.cancelled() or task.exception() is not None or not task.result():
            self._init_task = None

    async def _initialize(self, generation: int) -> bool:
        token = self.store.load()
        if not token:
            return False

        try:
            decoded = read_token(token)
        except TokenDecodeError as exc:
            self._discard("persisted_token_unreadable", reason=exc.reason.value)
            return False
        if decoded.expires_at <= datetime.now(timezone.utc):
            self._discard("persisted_token_expired", reason=DecodeFailure.EXPIRED.value)
            return False

        self.api.token = token
        try:
            me = await self.api.me()
        except YamoApiError as exc:
            if generation != self._generation:
                return False
            self._discard("persisted_token_rejected", reason=exc.kind.value, status_code=exc.status_code)
            return False
        if generation != self._generation:
            return False

        self.token = token
        self.principal = Principal(
            user_id=int(me["id"]),
            username=me["username"],
            is_superadmin=bool(me.get("superadmin")),
        )
        self.claim = decoded.claim
        self.user = me
        self.roster = None
        if isinstance(self.claim, TeamContext):
            team = me.get("team")
            # /users/me reports the live role, or no team once membership is gone
            self.roster = {self.principal.user_id: normalize_role(team["role"])} if team else {}
        incr_metric("session.restored")
        log_event("session_restored", user_id=self.principal.user_id, team_id=self.team_id)
        return True

    def _discard(self, event: str, **fields: Any) -> None:
        incr_metric("session.restore_failed", reason=fields.get("reason"))
        log_event(event, level=logging.WARNING, **fields)
        self._clear()

    def _clear(self) -> None:
        self.store.clear()
        self.token = None
        self.api.token = None
        self.principal = None
        self.claim = NO_TEAM
        self.user = None
        self.roster = None

    def logout(self) -> None:
        """Drop the token and all session state, whatever the current state."""
        user_id = self.principal.user_id if self.principal else None
        self._clear()
        self._generation += 1
        if self._init_task is not None:
            self._init_task.cancel()
            self._init_task = None
        log_event("session_ended", user_id=user_id)
