"""HTTP client for the users api."""

from __future__ import annotations

import ssl
from datetime import timedelta
from typing import Any, Callable, Iterable

import httpx

from arcade.errors import BadRequestError, ConflictError, HTTPError, InternalError, NotFoundError
from arcade.models import MAX_USER_FILTER_LIMIT, AssociatePlayer, Change, Filter, User, parse_id
from arcade.timestamp import Timestamp, parse_timestamp

DEFAULT_TIMEOUT = 10.0
USER_ROUTE = "/v1/user"

_CLIENT_FAILED = "users client api failed"

_ERRORS_BY_STATUS: dict[int, type[HTTPError]] = {
    400: BadRequestError,
    404: NotFoundError,
    409: ConflictError,
}


class ClientError(Exception):
    """The users client could not complete a request."""


class _InvalidUserError(ClientError, BadRequestError):
    """The server sent a user the client cannot accept."""


Option = Callable[["UsersClient"], None]


def with_timeout(timeout: float | timedelta) -> Option:
    """Set the request timeout in seconds; values that are not positive are ignored."""
    seconds = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)

    def apply(client: UsersClient) -> None:
        if seconds > 0:
            client.timeout = seconds

    return apply


def with_tls_config(context: ssl.SSLContext) -> Option:
    """Use the given SSL context for HTTPS connections."""

    def apply(client: UsersClient) -> None:
        client.tls_context = context

    return apply


def _filter_params(filter: Filter) -> dict[str, str]:
    params: dict[str, str] = {}
    if filter.offset > 0:
        params["offset"] = str(filter.offset)
    if filter.limit > 0:
        params["limit"] = str(min(filter.limit, MAX_USER_FILTER_LIMIT))
    return params


def _change_body(change: Change) -> dict[str, str]:
    return {
        "login": change.login,
        "publicKey": change.public_key.decode("utf-8", errors="replace"),
    }


def _error_from_body(payload: dict[str, Any]) -> HTTPError:
    status = payload.get("status")
    detail = payload.get("detail", "")
    cls = _ERRORS_BY_STATUS.get(status, InternalError) if isinstance(status, int) else InternalError
    return cls(f"{cls.reason}: error from users server '{detail}'")


def _unknown_response(fail_msg: str, response: httpx.Response) -> ClientError:
    return ClientError(
        f"{fail_msg}: unknown response, status: {response.status_code} {response.reason_phrase}"
    )


def _json_body(response: httpx.Response, fail_msg: str) -> dict[str, Any] | None:
    if "json" not in response.headers.get("content-type", ""):
        return None
    try:
        payload = response.json()
    except ValueError as exc:
        raise ClientError(f"{_CLIENT_FAILED}: {fail_msg}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ClientError(f"{_CLIENT_FAILED}: {fail_msg}: unexpected response body")
    return payload


def _timestamp(value: Any, fail_msg: str) -> Timestamp:
    if value is None:
        return Timestamp()
    try:
        return Timestamp(parse_timestamp(str(value)))
    except ValueError as exc:
        raise ClientError(f"{_CLIENT_FAILED}: {fail_msg}: {exc}") from exc


def _convert_user(wire: Any, fail_msg: str) -> User:
    if not isinstance(wire, dict):
        raise ClientError(f"{_CLIENT_FAILED}: {fail_msg}: unexpected user in response")
    created = _timestamp(wire.get("created"), fail_msg)
    updated = _timestamp(wire.get("updated"), fail_msg)

    raw_id = str(wire.get("id", ""))
    try:
        user_id = parse_id(raw_id)
    except ValueError as exc:
        raise _InvalidUserError(
            f"{_CLIENT_FAILED}, {BadRequestError.reason}: received invalid user ID: '{raw_id}': {exc}"
        ) from exc

    raw_player_id = str(wire.get("playerID", ""))
    try:
        player_id = parse_id(raw_player_id)
    except ValueError as exc:
        raise _InvalidUserError(
            f"{_CLIENT_FAILED}, {BadRequestError.reason}: "
            f"received invalid user playerID: '{raw_player_id}': {exc}"
        ) from exc

    return User(
        id=user_id,
        login=str(wire.get("login", "")),
        public_key=str(wire.get("publicKey", "")).encode("utf-8"),
        player_id=player_id,
        created=created,
        updated=updated,
    )


class UsersClient:
    """Client for the users api."""

    def __init__(self, base_url: str, *args: Option) -> None:
        self.base_url = base_url
        self.timeout: float = DEFAULT_TIMEOUT
        self.tls_context: ssl.SSLContext | None = None
        for option in args:
            option(self)
        self._http = httpx.Client(
            base_url=base_url,
            timeout=self.timeout,
            verify=self.tls_context if self.tls_context is not None else True,
        )

    def close(self) -> None:
        """Release the underlying connections."""
        self._http.close()

    def __enter__(self) -> UsersClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _send(self, method: str, path: str, fail_msg: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ClientError(f"{_CLIENT_FAILED}: {fail_msg}: {exc}") from exc

    def _expect(
        self,
        response: httpx.Response,
        fail_msg: str,
        success: int,
        error_statuses: Iterable[int],
    ) -> dict[str, Any]:
        payload = _json_body(response, fail_msg)
        if payload is not None:
            if response.status_code in error_statuses:
                raise _error_from_body(payload)
            if response.status_code == success:
                return payload
        raise _unknown_response(fail_msg, response)

    def _user_call(
        self,
        method: str,
        path: str,
        fail_msg: str,
        success: int,
        error_statuses: Iterable[int],
        body: dict[str, str],
    ) -> User:
        response = self._send(method, path, fail_msg, json=body)
        payload = self._expect(response, fail_msg, success, error_statuses)
        return _convert_user(payload.get("user"), fail_msg)

    def list(self, filter: Filter) -> list[User]:
        """Return the users selected by the filter."""
        fail_msg = "list users failed"
        response = self._send("GET", USER_ROUTE, fail_msg, params=_filter_params(filter))
        payload = self._expect(response, fail_msg, 200, (400, 500))
        users = payload.get("users") or []
        if not isinstance(users, list):
            raise ClientError(f"{_CLIENT_FAILED}: {fail_msg}: unexpected users in response")
        return [_convert_user(wire, fail_msg) for wire in users]

    def get(self, user_id: Any) -> User:
        """Return the user with the given id."""
        fail_msg = "get user failed"
        response = self._send("GET", f"{USER_ROUTE}/{user_id}", fail_msg)
        payload = self._expect(response, fail_msg, 200, (400, 404, 500))
        return _convert_user(payload.get("user"), fail_msg)

    def create(self, change: Change) -> User:
        """Create a new user."""
        return self._user_call(
            "POST", USER_ROUTE, "create user failed", 201, (400, 409, 500), _change_body(change)
        )

    def update(self, user_id: Any, change: Change) -> User:
        """Update an existing user."""
        return self._user_call(
            "PUT",
            f"{USER_ROUTE}/{user_id}",
            "update user failed",
            200,
            (400, 404, 500),
            _change_body(change),
        )

    def associate_player(self, user_id: Any, assoc: AssociatePlayer) -> User:
        """Associate a player with the given user."""
        return self._user_call(
            "PATCH",
            f"{USER_ROUTE}/{user_id}",
            "associate player with user failed",
            200,
            (400, 404, 500),
            {"playerID": str(assoc.player_id)},
        )

    def remove(self, user_id: Any) -> None:
        """Delete the given user."""
        fail_msg = "remove user failed"
        response = self._http.request("DELETE", f"{USER_ROUTE}/{user_id}")
        payload = _json_body(response, fail_msg) if response.status_code == 500 else None
        if payload is not None:
            raise _error_from_body(payload)
        if response.status_code != 200:
            raise _unknown_response(fail_msg, response)