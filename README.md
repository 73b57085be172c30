# arcade

User accounts for a multi-user dungeon. The package has three layers that
share one set of models:

- `arcade.storage.UserStorage`: persistence of users over a DB-API
  connection, with `PostgresUserDriver` supplying the SQL.
- `arcade.service.UsersService`: a WSGI application serving the `/v1/user`
  REST API on top of any storage object.
- `arcade.client.UsersClient`: an `httpx`-based client for that API.

## Installing

```
pip install .
pip install ".[test]"   # with the test dependencies
```

## Models

`arcade.models` holds the dataclasses `User`, `Filter`, `Change` and
`AssociatePlayer`, the limits `MAX_LOGIN_LEN` (256), `MAX_PUBLIC_KEY_LEN`
(4096), `DEFAULT_USER_FILTER_LIMIT` (50) and `MAX_USER_FILTER_LIMIT` (100),
and `parse_id`, which parses a UUID in canonical, braced, `urn:uuid:` or bare
hex form and raises `ValueError` otherwise.

```python
from arcade.models import AssociatePlayer, Change, Filter, parse_id

change = Change(login="ajones", public_key=b"placeholder")
page = Filter(offset=0, limit=50)
assoc = AssociatePlayer(player_id=parse_id("00000000-0000-0000-0000-000000000001"))
```

`arcade.timestamp.Timestamp` wraps a `datetime`. `to_json()` writes it as a
UTC JSON string such as `"2023-09-25T20:10:00.123456"` (trailing zeros of
the fraction dropped), `Timestamp.from_json()` reads one back, and
`Timestamp.from_db()` accepts a `datetime` or `None` from a database row.
`format_timestamp` and `parse_timestamp` do the same for bare strings.

## Storage

```python
from arcade.storage import PostgresUserDriver, UserStorage

storage = UserStorage(connection, PostgresUserDriver())
```

`connection` is any DB-API connection whose cursors take named `%(name)s`
parameters. `PostgresUserDriver` reads the `users` table with the columns
`id, login, public_key, player_id, created, updated`. A unique violation
(SQLSTATE `23505`) or foreign key violation (`23503`) is recognised from the
`sqlstate` or `pgcode` attribute of the database error.

`UserStorage` offers `list`, `get`, `create`, `update`, `associate_player`
and `remove`. A missing user raises `NotFoundError`, a duplicate login
`ConflictError`, an unknown player `BadRequestError`, and any other database
failure `InternalError`. A `Filter` limit or offset of 0 leaves that clause
out of the query.

## Serving the API

```python
from wsgiref.simple_server import make_server

from arcade.service import UsersService

app = UsersService(storage)
make_server("localhost", 4220, app).serve_forever()
```

`UsersService.handle(method, path, query, body)` serves a single request
without WSGI and returns an `arcade.service.Response`.

| Method | Path            | Action                                   |
|--------|-----------------|------------------------------------------|
| GET    | `/v1/user`      | list (`offset`, `limit`; limit 1 to 100, default 50) |
| POST   | `/v1/user`      | create (201)                             |
| GET    | `/v1/user/{id}` | get                                      |
| PUT    | `/v1/user/{id}` | update                                   |
| PATCH  | `/v1/user/{id}` | associate a player                       |
| DELETE | `/v1/user/{id}` | remove                                   |

Request bodies are JSON with `login` and `publicKey`, or `playerID` for
PATCH. Errors come back as JSON with `status` and `detail` fields.

## Using the client

```python
from arcade.client import UsersClient, with_timeout
from arcade.models import Change, Filter

with UsersClient("http://localhost:4220", with_timeout(5)) as users:
    created = users.create(Change(login="ajones", public_key=b"placeholder"))
    for user in users.list(Filter(limit=10)):
        print(user.login, user.id)
    users.remove(created.id)
```

Options are `with_timeout(seconds_or_timedelta)` (default 10 seconds;
values that are not positive are ignored) and `with_tls_config(ssl_context)`.
The client caps a filter's limit at 100.

Error replies from the server raise the matching subclass of
`arcade.errors.HTTPError` (`BadRequestError`, `NotFoundError`,
`ConflictError`, `InternalError`). Unexpected statuses, malformed replies
and transport failures raise `arcade.client.ClientError`; `remove` lets
transport failures from `httpx` through unchanged.

## What is not included

- No command-line program: the service is started from your own code, as
  above.
- No database schema or migrations: the `users` table must already exist.
- No player records: a user's `player_id` is only a UUID, and checking that
  it exists is left to the database's foreign key.

## Running the tests

```
pytest
```