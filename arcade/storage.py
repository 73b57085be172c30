"""Persistent storage of users in a SQL database."""

from __future__ import annotations

import abc
import logging
import uuid
from dataclasses import dataclass
from typing import Any

from arcade.errors import BadRequestError, ConflictError, InternalError, NotFoundError
from arcade.models import AssociatePlayer, Change, Filter, User, parse_id
from arcade.timestamp import Timestamp

logger = logging.getLogger(__name__)

_COLUMNS = "id, login, public_key, player_id, created, updated"
_UNIQUE_VIOLATION = "23505"
_FOREIGN_KEY_VIOLATION = "23503"


class UserDriver(abc.ABC):
    """SQL dialect specific queries and error classification for users."""

    @abc.abstractmethod
    def list_query(self, filter: Filter) -> str: ...

    @abc.abstractmethod
    def get_query(self) -> str: ...

    @abc.abstractmethod
    def create_query(self) -> str: ...

    @abc.abstractmethod
    def update_query(self) -> str: ...

    @abc.abstractmethod
    def associate_player_query(self) -> str: ...

    @abc.abstractmethod
    def remove_query(self) -> str: ...

    @abc.abstractmethod
    def is_unique_violation(self, error: BaseException) -> bool: ...

    @abc.abstractmethod
    def is_foreign_key_violation(self, error: BaseException) -> bool: ...


def _sqlstate(error: BaseException) -> str | None:
    return getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)


class PostgresUserDriver(UserDriver):
    """Queries for PostgreSQL using named pyformat parameters."""

    def list_query(self, filter: Filter) -> str:
        query = f"SELECT {_COLUMNS} FROM users"
        if filter.limit > 0:
            query += f" LIMIT {filter.limit}"
        if filter.offset > 0:
            query += f" OFFSET {filter.offset}"
        return query

    def get_query(self) -> str:
        return f"SELECT {_COLUMNS} FROM users WHERE id = %(id)s"

    def create_query(self) -> str:
        return (
            "INSERT INTO users (login, public_key) VALUES (%(login)s, %(public_key)s) "
            f"RETURNING {_COLUMNS}"
        )

    def update_query(self) -> str:
        return (
            "UPDATE users SET login = %(login)s, public_key = %(public_key)s "
            f"WHERE id = %(id)s RETURNING {_COLUMNS}"
        )

    def associate_player_query(self) -> str:
        return f"UPDATE users SET player_id = %(player_id)s WHERE id = %(id)s RETURNING {_COLUMNS}"

    def remove_query(self) -> str:
        return "DELETE FROM users WHERE id = %(id)s"

    def is_unique_violation(self, error: BaseException) -> bool:
        return _sqlstate(error) == _UNIQUE_VIOLATION

    def is_foreign_key_violation(self, error: BaseException) -> bool:
        return _sqlstate(error) == _FOREIGN_KEY_VIOLATION


def _scan_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        return parse_id(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        return uuid.UUID(bytes=raw) if len(raw) == 16 else parse_id(raw.decode("utf-8"))
    raise TypeError(f"Scan: unable to scan type {type(value).__name__} into UUID")


def _scan_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"Scan: unable to scan type {type(value).__name__} into bytes")


def _scan_user(row: Any) -> User:
    user_id, login, public_key, player_id, created, updated = row
    return User(
        id=_scan_uuid(user_id),
        login=str(login),
        public_key=_scan_bytes(public_key),
        player_id=_scan_uuid(player_id),
        created=Timestamp.from_db(created),
        updated=Timestamp.from_db(updated),
    )


def _internal(fail_msg: str, error: BaseException) -> InternalError:
    return InternalError(f"{fail_msg}: {InternalError.reason}: {error}")


@dataclass
class UserStorage:
    """Manages the persistent storage of users over a DB-API connection."""

    db: Any
    driver: UserDriver

    def _close(self, cursor: Any) -> None:
        try:
            cursor.close()
        except Exception:
            logger.exception("failed to close cursor")

    def _query_one(self, query: str, params: dict[str, Any]) -> User | None:
        cursor = self.db.cursor()
        try:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return None if row is None else _scan_user(row)
        finally:
            self._close(cursor)

    def list(self, filter: Filter) -> list[User]:
        """Return the users selected by the filter."""
        fail_msg = "failed to list users"
        logger.info("list users")
        cursor = self.db.cursor()
        try:
            cursor.execute(self.driver.list_query(filter))
            return [_scan_user(row) for row in iter(cursor.fetchone, None)]
        except Exception as exc:
            raise _internal(fail_msg, exc) from exc
        finally:
            self._close(cursor)

    def get(self, user_id: uuid.UUID) -> User:
        """Return the user with the given id."""
        fail_msg = "failed to get user"
        logger.info("get user, id: '%s'", user_id)
        try:
            user = self._query_one(self.driver.get_query(), {"id": str(user_id)})
        except Exception as exc:
            raise _internal(fail_msg, exc) from exc
        if user is None:
            raise NotFoundError(f"{fail_msg}: {NotFoundError.reason}")
        return user

    def create(self, change: Change) -> User:
        """Persist a new user and return it with its new id."""
        fail_msg = "failed to create user"
        logger.info("create user: %s", change.login)
        params = {"login": change.login, "public_key": change.public_key}
        try:
            user = self._query_one(self.driver.create_query(), params)
        except Exception as exc:
            if self.driver.is_unique_violation(exc):
                raise ConflictError(
                    f"{fail_msg}: {ConflictError.reason}: user login '{change.login}' already exists"
                ) from exc
            raise _internal(fail_msg, exc) from exc
        if user is None:
            raise InternalError(f"{fail_msg}: {InternalError.reason}: no rows in result set")
        logger.info("created user, login: '%s' id: '%s'", user.login, user.id)
        return user

    def update(self, user_id: uuid.UUID, change: Change) -> User:
        """Update a user and return the updated record."""
        fail_msg = "failed to update user"
        logger.info("update user, id: '%s'", user_id)
        params = {"id": str(user_id), "login": change.login, "public_key": change.public_key}
        try:
            user = self._query_one(self.driver.update_query(), params)
        except Exception as exc:
            raise _internal(fail_msg, exc) from exc
        if user is None:
            raise NotFoundError(f"{fail_msg}: {NotFoundError.reason}")
        logger.info("updated user, login: '%s' id: '%s'", user.login, user.id)
        return user

    def associate_player(self, user_id: uuid.UUID, assoc: AssociatePlayer) -> User:
        """Associate a player with the user and return the updated record."""
        fail_msg = "failed to associate player with user"
        logger.info(
            "associate player with user, user id: '%s', player id: '%s'", user_id, assoc.player_id
        )
        params = {"id": str(user_id), "player_id": str(assoc.player_id)}
        try:
            user = self._query_one(self.driver.associate_player_query(), params)
        except Exception as exc:
            if self.driver.is_foreign_key_violation(exc):
                raise BadRequestError(
                    f"{fail_msg}: {BadRequestError.reason}: the given playerID does not exist, "
                    f"playerID: '{assoc.player_id}'"
                ) from exc
            raise _internal(fail_msg, exc) from exc
        if user is None:
            raise NotFoundError(f"{fail_msg}: {NotFoundError.reason}")
        logger.info(
            "associated player with user, login: '%s' user id: '%s', player id: '%s'",
            user.login,
            user.id,
            assoc.player_id,
        )
        return user

    def remove(self, user_id: uuid.UUID) -> None:
        """Delete the user."""
        fail_msg = "failed to remove user"
        logger.info("remove user, id: '%s'", user_id)
        cursor = self.db.cursor()
        try:
            cursor.execute(self.driver.remove_query(), {"id": str(user_id)})
        except Exception as exc:
            raise _internal(fail_msg, exc) from exc
        finally:
            self._close(cursor)