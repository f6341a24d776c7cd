"""Team and book context transitions.

``NO_CONTEXT -> TEAM_SELECTED(team) -> BOOK_LOADED(team, book)``. Every
transition runs under one lock and is tagged with a sequence number taken
when it is requested; a transition whose number is no longer the latest
drops its results instead of publishing them.
"""
from __future__ import annotations

import asyncio
import datetime as dt
import logging
from enum import Enum
from typing import Any

from yamo.client.api import YamoApiError
from yamo.client.session import SessionStore
from yamo.domain.errors import ErrorKind, TokenDecodeError
from yamo.observability import incr_metric, log_event


class ContextState(str, Enum):
    NO_CONTEXT = "no_context"
    TEAM_SELECTED = "team_selected"
    BOOK_LOADED = "book_loaded"


class Phase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"


class TransitionError(Exception):
    def __init__(self, kind: ErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)


class PermissionDeniedError(Exception):
    """Raised before a mutation the current permission does not allow."""

    kind = ErrorKind.UNAUTHORIZED


class ContextSwitcher:
    def __init__(self, session: SessionStore):
        self.session = session
        self.api = session.api
        self._lock = asyncio.Lock()
        self._sequence = 0
        self._transactions_sequence = 0

        self.state = ContextState.NO_CONTEXT
        self.phase = Phase.IDLE
        self.error: str | None = None
        self.team: dict[str, Any] | None = None
        self.book: dict[str, Any] | None = None
        self.books: list[dict[str, Any]] = []
        self.team_users: list[dict[str, Any]] = []
        self.accounts: list[dict[str, Any]] = []
        self.categories: list[dict[str, Any]] = []
        self.transactions: list[dict[str, Any]] = []

    @property
    def permission(self):
        return self.session.permission

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _is_current(self, sequence: int) -> bool:
        return sequence == self._sequence

    def _clear_book_scope(self) -> None:
        self.book = None
        self.accounts = []
        self.categories = []
        self.transactions = []

    def _clear_team_scope(self) -> None:
        self._clear_book_scope()
        self.team = None
        self.books = []
        self.team_users = []

    def _reject(self, transition: str, message: str) -> TransitionError:
        """Refuse a transition up front; the one currently running keeps its phase."""
        error = TransitionError(ErrorKind.TRANSITION_FAILURE, message)
        incr_metric("context.transition", transition=transition, outcome="rejected", kind=error.kind.value)
        log_event("context_transition_rejected", level=logging.WARNING, transition=transition, message=message)
        return error

    def _superseded(self, transition: str) -> bool:
        incr_metric("context.transition", transition=transition, outcome="superseded")
        log_event("context_transition_superseded", level=logging.DEBUG, transition=transition)
        return False

    def _fail(self, transition: str, exc: Exception) -> TransitionError:
        if isinstance(exc, TransitionError):
            error = exc
        elif isinstance(exc, YamoApiError):
            error = TransitionError(exc.kind, exc.message)
        elif isinstance(exc, TokenDecodeError):
            error = TransitionError(exc.kind, str(exc))
        else:
            error = TransitionError(ErrorKind.TRANSITION_FAILURE, str(exc))

        self.phase = Phase.ERROR
        self.error = error.message
        incr_metric("context.transition", transition=transition, outcome="failed", kind=error.kind.value)
        log_event(
            "context_transition_failed",
            level=logging.WARNING,
            transition=transition,
            kind=error.kind.value,
            message=error.message,
        )
        if error.kind in (ErrorKind.UNAUTHENTICATED, ErrorKind.INVALID_CREDENTIAL):
            self.logout()
            self.phase = Phase.ERROR
            self.error = error.message
        return error

    def _succeed(self, transition: str, **fields: Any) -> bool:
        self.phase = Phase.IDLE
        self.error = None
        incr_metric("context.transition", transition=transition, outcome="ok")
        log_event("context_transition", transition=transition, state=self.state.value, **fields)
        return True

    async def select_team(self, team_id: int) -> bool:
        """Switch to ``team_id``. Returns False when a newer transition superseded this one.

        On failure nothing changes: the previous token, team and book stay active.
        """
        sequence = self._next_sequence()
        async with self._lock:
            if not self._is_current(sequence):
                return self._superseded("select_team")
            self.phase = Phase.LOADING
            self.error = None
            try:
                memberships = await self.api.my_teams()
                if not any(team["id"] == team_id for team in memberships):
                    raise TransitionError(ErrorKind.UNAUTHORIZED, "Access denied to this team")
                selected = await self.api.select_team(team_id)
                token = selected["token"]
                team_users, books = await asyncio.gather(
                    self.api.team_users(team_id, token=token),
                    self.api.books(team_id, token=token),
                )
                if not self._is_current(sequence):
                    return self._superseded("select_team")

                self.session.replace_token(token)
                self._clear_team_scope()
            except (TransitionError, YamoApiError, TokenDecodeError, OSError) as exc:
                if not self._is_current(sequence):
                    return self._superseded("select_team")
                raise self._fail("select_team", exc) from exc

            self.team = selected["team"]
            self.books = books
            self.team_users = team_users
            self.session.set_roster(team_id, team_users)
            self.state = ContextState.TEAM_SELECTED
            return self._succeed("select_team", team_id=team_id)

    async def select_book(self, book_id: int) -> bool:
        """Load ``book_id`` of the active team: roster first, then accounts and categories together.

        A failure leaves the team selected with empty book collections.
        """
        if self.state is ContextState.NO_CONTEXT or self.team is None:
            raise self._reject("select_book", "No team selected")
        book = next((book for book in self.books if book["id"] == book_id), None)
        if book is None:
            raise self._reject("select_book", "Book does not belong to the active team")

        sequence = self._next_sequence()
        async with self._lock:
            if not self._is_current(sequence):
                return self._superseded("select_book")
            team_id = self.team["id"]
            self._clear_book_scope()
            self.state = ContextState.TEAM_SELECTED
            self.phase = Phase.LOADING
            self.error = None
            try:
                team_users = await self.api.team_users(team_id)
                if not self._is_current(sequence):
                    return self._superseded("select_book")
                self.team_users = team_users
                self.session.set_roster(team_id, team_users)

                accounts, categories = await asyncio.gather(
                    self.api.accounts(book_id),
                    self.api.categories(book_id),
                )
            except (TransitionError, YamoApiError) as exc:
                if not self._is_current(sequence):
                    return self._superseded("select_book")
                self._clear_book_scope()
                raise self._fail("select_book", exc) from exc

            if not self._is_current(sequence):
                return self._superseded("select_book")
            self.book = book
            self.accounts = accounts
            self.categories = categories
            self.state = ContextState.BOOK_LOADED
            return self._succeed("select_book", team_id=team_id, book_id=book_id)

    async def exit_team_mode(self) -> bool:
        """Drop the team claim and return to ``NO_CONTEXT``."""
        sequence = self._next_sequence()
        async with self._lock:
            if not self._is_current(sequence):
                return self._superseded("exit_team")
            self.phase = Phase.LOADING
            self.error = None
            try:
                result = await self.api.exit_team()
                if not self._is_current(sequence):
                    return self._superseded("exit_team")
                self.session.replace_token(result["token"])
                self._clear_team_scope()
            except (YamoApiError, TokenDecodeError, OSError) as exc:
                if not self._is_current(sequence):
                    return self._superseded("exit_team")
                raise self._fail("exit_team", exc) from exc

            self.state = ContextState.NO_CONTEXT
            return self._succeed("exit_team")

    def logout(self) -> None:
        """Discard the session and every loaded collection, cancelling in-flight transitions."""
        self._next_sequence()
        self._transactions_sequence += 1
        self._clear_team_scope()
        self.state = ContextState.NO_CONTEXT
        self.phase = Phase.IDLE
        self.error = None
        self.session.logout()

    async def load_transactions(
        self,
        start_date: dt.date | None = None,
        end_date: dt.date | None = None,
        account_id: int | None = None,
    ) -> bool:
        """Fetch transactions of the loaded book for a date range.

        Results are dropped if the context or a newer range query moved on meanwhile.
        """
        if self.state is not ContextState.BOOK_LOADED or self.book is None:
            raise TransitionError(ErrorKind.TRANSITION_FAILURE, "No book loaded")
        context_sequence = self._sequence
        self._transactions_sequence += 1
        load_sequence = self._transactions_sequence
        book_id = self.book["id"]

        try:
            rows = await self.api.transactions(book_id, start_date, end_date, account_id)
        except YamoApiError as exc:
            if context_sequence != self._sequence or load_sequence != self._transactions_sequence:
                return False
            self.error = exc.message
            raise TransitionError(exc.kind, exc.message) from exc

        if context_sequence != self._sequence or load_sequence != self._transactions_sequence:
            return False
        self.transactions = rows
        return True

    async def toggle_exercised(self, transaction_id: int) -> dict[str, Any]:
        """Flip ``exercised`` on a loaded transaction. Needs write permission."""
        if not self.permission.can_write:
            incr_metric("context.mutation_denied", action="toggle_exercised")
            log_event(
                "mutation_denied",
                level=logging.WARNING,
                action="toggle_exercised",
                transaction_id=transaction_id,
                team_id=self.session.team_id,
            )
            raise PermissionDeniedError("Write access required for this operation")

        current = next((row for row in self.transactions if row["id"] == transaction_id), None)
        if current is None:
            raise TransitionError(ErrorKind.TRANSITION_FAILURE, "Transaction is not loaded")

        context_sequence = self._sequence
        try:
            updated = await self.api.update_transaction(transaction_id, exercised=not current.get("exercised"))
        except YamoApiError as exc:
            self.error = exc.message
            raise

        if context_sequence == self._sequence:
            self.transactions = [updated if row["id"] == transaction_id else row for row in self.transactions]
        return updated
