import json
import socket
import ssl
import threading
import uuid
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlsplit

import pytest

from arcade.client import ClientError, UsersClient, with_timeout, with_tls_config
from arcade.errors import BadRequestError, ConflictError, InternalError, NotFoundError
from arcade.models import AssociatePlayer, Change, Filter, User
from arcade.timestamp import Timestamp

USER_ID = uuid.UUID("7d3c1f5e-4b2a-4c8e-9f10-0a1b2c3d4e5f")
PLAYER_ID = uuid.UUID("1a2b3c4d-5e6f-4a7b-8c9d-0e1f2a3b4c5d")
LOGIN = "ajones"
PUBKEY = b"public key goes here"
CREATED = datetime(2023, 9, 25, 20, 10, 0, 123456, tzinfo=timezone.utc)
UPDATED = datetime(2023, 9, 26, 8, 30, 15, 500000, tzinfo=timezone.utc)


class _Handler(BaseHTTPRequestHandler):
    def _serve(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append((self.command, self.path, body))
        status, payload = self.server.reply
        self.send_response(status)
        if payload is None:
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        data = json.dumps(payload).encode()
        self.send_header("Content-Type", "application/json")
        self.send_header("X-Content-Type-Options", "nosniff")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = _serve

    def log_message(self, *args):
        pass


@pytest.fixture
def server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.reply = (200, None)
    httpd.requests = []
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    httpd.url = f"http://127.0.0.1:{httpd.server_address[1]}"
    yield httpd
    httpd.shutdown()
    httpd.server_close()


@pytest.fixture
def client(server):
    with UsersClient(server.url) as users_client:
        yield users_client


def error_reply(status, reason):
    return status, {"status": status, "detail": f"{reason}: error goes here"}


def wire_user(user_id="7d3c1f5e-4b2a-4c8e-9f10-0a1b2c3d4e5f", player_id="1a2b3c4d-5e6f-4a7b-8c9d-0e1f2a3b4c5d"):
    return {
        "id": user_id,
        "login": LOGIN,
        "publicKey": PUBKEY.decode(),
        "playerID": player_id,
        "created": "2023-09-25T20:10:00.123456",
        "updated": "2023-09-26T08:30:15.5",
    }


EXPECTED_USER = User(
    id=USER_ID,
    login=LOGIN,
    public_key=PUBKEY,
    player_id=PLAYER_ID,
    created=Timestamp(CREATED),
    updated=Timestamp(UPDATED),
)

CHANGE = Change(login=LOGIN, public_key=PUBKEY)

OPERATIONS = {
    "get": (lambda c: c.get(USER_ID), "get user failed", 200),
    "create": (lambda c: c.create(CHANGE), "create user failed", 201),
    "update": (lambda c: c.update(USER_ID, CHANGE), "update user failed", 200),
    "associate": (
        lambda c: c.associate_player(USER_ID, AssociatePlayer(player_id=PLAYER_ID)),
        "associate player with user failed",
        200,
    ),
}


# options


def test_with_timeout_invalid_value_keeps_default():
    with UsersClient("", with_timeout(-1)) as c:
        assert c.timeout == 10.0


def test_with_timeout_success():
    with UsersClient("", with_timeout(45)) as c:
        assert c.timeout == 45.0


def test_with_tls_config():
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    with UsersClient("", with_tls_config(context)) as c:
        assert c.tls_context is context
        assert c.tls_context.verify_mode == ssl.CERT_NONE


# list


@pytest.mark.parametrize(
    "reply, error_type, message",
    [
        (error_reply(400, "bad request"), BadRequestError,
         "bad request: error from users server 'bad request: error goes here'"),
        (error_reply(500, "internal server error"), InternalError,
         "internal server error: error from users server 'internal server error: error goes here'"),
        (error_reply(501, "not implemented"), ClientError,
         "list users failed: unknown response, status: 501 Not Implemented"),
    ],
)
def test_list_errors(server, client, reply, error_type, message):
    server.reply = reply
    with pytest.raises(error_type) as info:
        client.list(Filter(offset=20, limit=10))
    assert str(info.value) == message


def test_list_bad_user_id(server, client):
    server.reply = (200, {"users": [wire_user(user_id="bad user id")]})
    with pytest.raises(ClientError) as info:
        client.list(Filter(offset=200, limit=1000))
    assert isinstance(info.value, BadRequestError)
    assert str(info.value) == (
        "users client api failed, bad request: received invalid user ID: 'bad user id': "
        "invalid UUID length: 11"
    )


def test_list_bad_player_id(server, client):
    server.reply = (200, {"users": [wire_user(player_id="bad player id")]})
    with pytest.raises(BadRequestError) as info:
        client.list(Filter(offset=200, limit=1000))
    assert str(info.value) == (
        "users client api failed, bad request: received invalid user playerID: 'bad player id': "
        "invalid UUID length: 13"
    )


def test_list_success_caps_limit(server, client):
    server.reply = (200, {"users": [wire_user()]})
    users = client.list(Filter(offset=200, limit=1000))
    assert users == [EXPECTED_USER]
    method, path, _ = server.requests[0]
    parts = urlsplit(path)
    assert method == "GET"
    assert parts.path == "/v1/user"
    assert parse_qs(parts.query) == {"offset": ["200"], "limit": ["100"]}


def test_list_empty_filter_sends_no_query(server, client):
    server.reply = (200, {"users": []})
    assert client.list(Filter()) == []
    assert urlsplit(server.requests[0][1]).query == ""


def test_list_transport_failure():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    with UsersClient(f"http://127.0.0.1:{port}") as c:
        with pytest.raises(ClientError) as info:
            c.list(Filter())
    assert str(info.value).startswith("users client api failed: list users failed: ")


# get, create, update, associate player


@pytest.mark.parametrize("operation", sorted(OPERATIONS))
@pytest.mark.parametrize(
    "status, reason, error_type",
    [
        (400, "bad request", BadRequestError),
        (500, "internal server error", InternalError),
    ],
)
def test_user_call_common_errors(server, client, operation, status, reason, error_type):
    call, _, _ = OPERATIONS[operation]
    server.reply = error_reply(status, reason)
    with pytest.raises(error_type) as info:
        call(client)
    assert str(info.value) == f"{reason}: error from users server '{reason}: error goes here'"


@pytest.mark.parametrize("operation", ["get", "update", "associate"])
def test_user_call_not_found(server, client, operation):
    call, _, _ = OPERATIONS[operation]
    server.reply = error_reply(404, "not found")
    with pytest.raises(NotFoundError) as info:
        call(client)
    assert str(info.value) == "not found: error from users server 'not found: error goes here'"


def test_create_conflict(server, client):
    server.reply = error_reply(409, "conflict")
    with pytest.raises(ConflictError) as info:
        client.create(CHANGE)
    assert str(info.value) == "conflict: error from users server 'conflict: error goes here'"


@pytest.mark.parametrize("operation", sorted(OPERATIONS))
def test_user_call_not_implemented(server, client, operation):
    call, fail_msg, _ = OPERATIONS[operation]
    server.reply = error_reply(501, "not implemented")
    with pytest.raises(ClientError) as info:
        call(client)
    assert str(info.value) == f"{fail_msg}: unknown response, status: 501 Not Implemented"


@pytest.mark.parametrize("operation", sorted(OPERATIONS))
def test_user_call_success(server, client, operation):
    call, _, success = OPERATIONS[operation]
    server.reply = (success, {"user": wire_user()})
    assert call(client) == EXPECTED_USER


def test_get_request_path(server, client):
    server.reply = (200, {"user": wire_user()})
    client.get(USER_ID)
    assert server.requests[0][:2] == ("GET", f"/v1/user/{USER_ID}")


def test_create_wrong_success_status_is_unknown(server, client):
    server.reply = (200, {"user": wire_user()})
    with pytest.raises(ClientError) as info:
        client.create(CHANGE)
    assert str(info.value) == "create user failed: unknown response, status: 200 OK"


def test_create_sends_change(server, client):
    server.reply = (201, {"user": wire_user()})
    assert client.create(CHANGE) == EXPECTED_USER
    method, path, body = server.requests[0]
    assert (method, path) == ("POST", "/v1/user")
    assert json.loads(body) == {"login": LOGIN, "publicKey": "public key goes here"}


def test_update_sends_change(server, client):
    server.reply = (200, {"user": wire_user()})
    assert client.update(USER_ID, CHANGE) == EXPECTED_USER
    method, path, body = server.requests[0]
    assert (method, path) == ("PUT", f"/v1/user/{USER_ID}")
    assert json.loads(body) == {"login": LOGIN, "publicKey": "public key goes here"}


def test_associate_player_sends_player_id(server, client):
    server.reply = (200, {"user": wire_user()})
    assert client.associate_player(USER_ID, AssociatePlayer(player_id=PLAYER_ID)) == EXPECTED_USER
    method, path, body = server.requests[0]
    assert (method, path) == ("PATCH", f"/v1/user/{USER_ID}")
    assert json.loads(body) == {"playerID": str(PLAYER_ID)}


def test_get_unlisted_status_is_unknown(server, client):
    server.reply = error_reply(409, "conflict")
    with pytest.raises(ClientError) as info:
        client.get(USER_ID)
    assert str(info.value) == "get user failed: unknown response, status: 409 Conflict"


# remove


def test_remove_internal_server_error(server, client):
    server.reply = error_reply(500, "internal server error")
    with pytest.raises(InternalError) as info:
        client.remove(USER_ID)
    assert str(info.value) == (
        "internal server error: error from users server 'internal server error: error goes here'"
    )


def test_remove_not_implemented(server, client):
    server.reply = error_reply(501, "not implemented")
    with pytest.raises(ClientError) as info:
        client.remove(USER_ID)
    assert str(info.value) == "remove user failed: unknown response, status: 501 Not Implemented"


def test_remove_success(server, client):
    server.reply = (200, None)
    assert client.remove(USER_ID) is None
    assert server.requests[0][:2] == ("DELETE", f"/v1/user/{USER_ID}")