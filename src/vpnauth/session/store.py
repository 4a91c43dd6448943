"""
Session Store

Durable storage of the last obtained session, one file per user account
on the machine.

The file holds {session, username, saved_at, expires_at} as JSON and is
only readable by its owner. Writes go to a temporary file in the same
directory which is then renamed over the target.

Known limitation: two concurrent runs against the same file may
interleave their load and save.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional, Tuple

import attrs
import structlog

from vpnauth.core.exceptions import SessionStoreError
from vpnauth.core.types import Clock, PersistedSession, Session, utc_now

logger = structlog.get_logger()

SESSION_FILE_NAME = ".vpnauth-session.json"
SESSION_FILE_MODE = 0o600


def default_session_path() -> Path:
    """~/.vpnauth-session.json, or the working directory if there is no home."""
    try:
        home = Path.home()
    except RuntimeError:
        home = Path(".")
    return home / SESSION_FILE_NAME


@attrs.define
class SessionStore:
    """
    File-backed store for a single persisted session.

    Example:
        store = SessionStore()
        store.save(session, "jdoe", timedelta(hours=24))
        session, remaining = store.load("jdoe")
    """

    _path: Path = attrs.field(factory=default_session_path, converter=Path, alias="path")
    _clock: Clock = attrs.field(default=utc_now, alias="clock")
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def path(self) -> Path:
        return self._path

    def save(
        self,
        session: Session,
        username: str,
        duration: Optional[timedelta] = None,
    ) -> PersistedSession:
        """
        Persist a session for a username.

        Args:
            session: Session to store
            username: Owning account
            duration: Cap on the cache lifetime; None means the server
                lifetime alone decides

        Returns:
            The record that was written

        Raises:
            SessionStoreError: If the file could not be written
        """
        record = PersistedSession.create(session, username, self._clock(), duration)
        data = json.dumps(record.to_dict(), indent=2)

        directory = self._path.parent
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=self._path.name + ".", suffix=".tmp", dir=directory
            )
        except OSError as e:
            raise SessionStoreError(f"failed to write session file: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.chmod(tmp_name, SESSION_FILE_MODE)
            os.replace(tmp_name, self._path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise SessionStoreError(f"failed to write session file: {e}") from e

        self._logger.debug(
            "session_saved",
            username=username,
            path=str(self._path),
            expires_at=record.expires_at.isoformat(),
        )
        return record

    def load(self, username: str) -> Tuple[Optional[Session], timedelta]:
        """
        Load the stored session for a username.

        Returns (None, 0) when there is no file, the file belongs to
        another username, or it cannot be parsed. An expired record is
        deleted and reported as absent.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None, timedelta(0)
        except (OSError, UnicodeDecodeError) as e:
            self._logger.warning("session_read_failed", path=str(self._path), error=str(e))
            return None, timedelta(0)

        try:
            record = PersistedSession.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            self._logger.warning("session_parse_failed", path=str(self._path), error=str(e))
            return None, timedelta(0)

        if record.username != username:
            self._logger.debug("session_owner_mismatch", stored=record.username, requested=username)
            return None, timedelta(0)

        now = self._clock()
        if record.is_expired(now):
            self._logger.info("session_expired", username=username)
            try:
                self.delete()
            except SessionStoreError as e:
                self._logger.warning("session_delete_failed", error=e.message)
            return None, timedelta(0)

        return record.session, record.time_until_expiry(now)

    def delete(self) -> None:
        """Remove the stored session. A missing file is not an error."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise SessionStoreError(f"failed to delete session file: {e}") from e
        self._logger.debug("session_deleted", path=str(self._path))
