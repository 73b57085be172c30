"""HTTP service for the users api."""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Callable, Iterable, Mapping, Protocol
from urllib.parse import parse_qs

from arcade.errors import BadRequestError, HTTPError, NotFoundError
from arcade.models import (
    DEFAULT_USER_FILTER_LIMIT,
    MAX_LOGIN_LEN,
    MAX_PUBLIC_KEY_LEN,
    MAX_USER_FILTER_LIMIT,
    AssociatePlayer,
    Change,
    Filter,
    User,
    parse_id,
)

V1_USER_ROUTE = "/v1/user"

_ID_ROUTE = re.compile(r"/v1/user/([^/]+)")
_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_BAD = BadRequestError.reason


class UserStorage(Protocol):
    """What the service expects of the user storage layer."""

    def list(self, filter: Filter) -> list[User]: ...

    def get(self, user_id: uuid.UUID) -> User: ...

    def create(self, change: Change) -> User: ...

    def update(self, user_id: uuid.UUID, change: Change) -> User: ...

    def associate_player(self, user_id: uuid.UUID, assoc: AssociatePlayer) -> User: ...

    def remove(self, user_id: uuid.UUID) -> None: ...


@dataclass
class Response:
    """An HTTP response produced by the service."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body)


def _json_response(status: int, payload: Any) -> Response:
    return Response(
        status=status,
        headers={"Content-Type": "application/json", "X-Content-Type-Options": "nosniff"},
        body=json.dumps(payload).encode("utf-8") + b"\n",
    )


def error_response(error: BaseException) -> Response:
    """Build the JSON error response for an error."""
    status = error.status if isinstance(error, HTTPError) else HTTPStatus.INTERNAL_SERVER_ERROR
    return _json_response(int(status), {"status": int(status), "detail": str(error)})


def _method_not_allowed() -> Response:
    status = int(HTTPStatus.METHOD_NOT_ALLOWED)
    return _json_response(status, {"status": status, "detail": "method not allowed"})


def _atoi(text: str) -> int | None:
    if not _INTEGER.fullmatch(text):
        return None
    value = int(text)
    return value if _INT64_MIN <= value <= _INT64_MAX else None


def user_filter(params: Mapping[str, str]) -> Filter:
    """Build a user filter from the query parameters of a list request."""
    offset = 0
    limit = DEFAULT_USER_FILTER_LIMIT

    raw_offset = params.get("offset")
    if raw_offset is not None:
        value = _atoi(raw_offset)
        if value is None or value <= 0:
            raise BadRequestError(f"{_BAD}: invalid offset query parameter: '{raw_offset}'")
        offset = value

    raw_limit = params.get("limit")
    if raw_limit is not None:
        value = _atoi(raw_limit)
        if value is None or value <= 0 or value > MAX_USER_FILTER_LIMIT:
            raise BadRequestError(f"{_BAD}: invalid limit query parameter: '{raw_limit}'")
        limit = value

    return Filter(offset=offset, limit=limit)


def _json_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _string_field(request: Mapping[str, Any], name: str) -> str:
    if name in request:
        value = request[name]
    else:
        folded = name.casefold()
        value = next((v for k, v in request.items() if k.casefold() == folded), None)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise BadRequestError(
            f"{_BAD}: invalid body: json: cannot unmarshal {_json_kind(value)} "
            f"into field {name} of type string"
        )
    return value


def _change(request: Mapping[str, Any]) -> Change:
    login = _string_field(request, "login")
    public_key = _string_field(request, "publicKey")

    if login == "":
        raise BadRequestError(f"{_BAD}: empty user login")
    if len(login.encode("utf-8")) > MAX_LOGIN_LEN:
        raise BadRequestError(f"{_BAD}: user login exceeds maximum length")
    if public_key == "":
        raise BadRequestError(f"{_BAD}: empty user ssh public key")
    encoded_key = public_key.encode("utf-8")
    if len(encoded_key) > MAX_PUBLIC_KEY_LEN:
        raise BadRequestError(f"{_BAD}: user ssh public key exceeds maximum length")

    return Change(login=login, public_key=encoded_key)


def create_change(request: Mapping[str, Any]) -> Change:
    """Validate a user create request and turn it into a change."""
    return _change(request)


def update_change(request: Mapping[str, Any]) -> Change:
    """Validate a user update request and turn it into a change."""
    return _change(request)


def assoc_player(request: Mapping[str, Any]) -> AssociatePlayer:
    """Validate an associate player request."""
    raw = _string_field(request, "playerID")
    try:
        player_id = parse_id(raw)
    except ValueError as exc:
        raise BadRequestError(f"{_BAD}: invalid playerID: '{raw}'") from exc
    return AssociatePlayer(player_id=player_id)


def translate_user(user: User) -> dict[str, str]:
    """Turn a user into its network representation."""
    return {
        "id": str(user.id),
        "login": user.login,
        "publicKey": user.public_key.decode("utf-8", errors="replace"),
        "playerID": str(user.player_id),
        "created": json.loads(user.created.to_json()),
        "updated": json.loads(user.updated.to_json()),
    }


def _read_json(body: bytes | None) -> Mapping[str, Any]:
    if not body:
        raise BadRequestError(f"{_BAD}: invalid json: a json encoded body is required")
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        reason = "unexpected end of JSON input" if exc.pos >= len(exc.doc) else str(exc)
        raise BadRequestError(f"{_BAD}: invalid body: {reason}") from exc
    except ValueError as exc:
        raise BadRequestError(f"{_BAD}: invalid body: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise BadRequestError(
            f"{_BAD}: invalid body: json: cannot unmarshal {_json_kind(payload)} into request object"
        )
    return payload


def _parse_user_id(raw: str) -> uuid.UUID:
    try:
        return parse_id(raw)
    except ValueError as exc:
        raise BadRequestError(f"{_BAD}: invalid user id, not a well formed uuid: '{raw}'") from exc


def _query_params(query: str | Mapping[str, Any] | None) -> dict[str, str]:
    if query is None:
        return {}
    if isinstance(query, str):
        return {key: values[0] for key, values in parse_qs(query, keep_blank_values=True).items()}
    params: dict[str, str] = {}
    for key, value in query.items():
        if isinstance(value, (list, tuple)):
            if value:
                params[key] = str(value[0])
        else:
            params[key] = str(value)
    return params


def _read_body(environ: Mapping[str, Any]) -> bytes:
    raw_length = environ.get("CONTENT_LENGTH") or ""
    length = int(raw_length) if raw_length.strip() else 0
    if length <= 0:
        return b""
    return environ["wsgi.input"].read(length)


class UsersService:
    """Serves the users api over HTTP."""

    name = "users"

    def __init__(self, storage: UserStorage) -> None:
        self.storage = storage

    def handle(
        self,
        method: str,
        path: str,
        query: str | Mapping[str, Any] | None = None,
        body: bytes | None = None,
    ) -> Response:
        """Serve one request and return its response."""
        try:
            return self._dispatch(method.upper(), path, _query_params(query), body)
        except Exception as exc:
            return error_response(exc)

    def __call__(
        self, environ: Mapping[str, Any], start_response: Callable[..., Any]
    ) -> Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("PATH_INFO", "") or "/"
        query = environ.get("QUERY_STRING", "")
        try:
            body = _read_body(environ)
        except (OSError, ValueError) as exc:
            response = error_response(
                BadRequestError(f"{_BAD}: unable to read request body: {exc}")
            )
        else:
            response = self.handle(method, path, query, body)
        status = HTTPStatus(response.status)
        headers = dict(response.headers)
        headers["Content-Length"] = str(len(response.body))
        start_response(f"{status.value} {status.phrase}", list(headers.items()))
        return [response.body]

    def _dispatch(
        self, method: str, path: str, query: Mapping[str, str], body: bytes | None
    ) -> Response:
        if path == V1_USER_ROUTE:
            if method == "GET":
                return self._list(query)
            if method == "POST":
                return self._create(body)
            return _method_not_allowed()

        match = _ID_ROUTE.fullmatch(path)
        if match is None:
            raise NotFoundError(f"{NotFoundError.reason}: no route for '{path}'")
        handlers = {
            "GET": self._get,
            "PUT": self._update,
            "PATCH": self._associate_player,
            "DELETE": self._remove,
        }
        handler = handlers.get(method)
        if handler is None:
            return _method_not_allowed()
        return handler(match.group(1), body)

    def _list(self, query: Mapping[str, str]) -> Response:
        users = self.storage.list(user_filter(query))
        return _json_response(200, {"users": [translate_user(user) for user in users or []]})

    def _get(self, raw_id: str, body: bytes | None) -> Response:
        user = self.storage.get(_parse_user_id(raw_id))
        return _json_response(200, {"user": translate_user(user)})

    def _create(self, body: bytes | None) -> Response:
        change = create_change(_read_json(body))
        user = self.storage.create(change)
        return _json_response(201, {"user": translate_user(user)})

    def _update(self, raw_id: str, body: bytes | None) -> Response:
        user_id = _parse_user_id(raw_id)
        change = update_change(_read_json(body))
        user = self.storage.update(user_id, change)
        return _json_response(200, {"user": translate_user(user)})

    def _associate_player(self, raw_id: str, body: bytes | None) -> Response:
        user_id = _parse_user_id(raw_id)
        assoc = assoc_player(_read_json(body))
        user = self.storage.associate_player(user_id, assoc)
        return _json_response(200, {"user": translate_user(user)})

    def _remove(self, raw_id: str, body: bytes | None) -> Response:
        self.storage.remove(_parse_user_id(raw_id))
        return Response(status=200)