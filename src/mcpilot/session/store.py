import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from ..errors import LogParseFailed, SessionSaveError
from ..models import Session, deep_merge, utcnow

logger = logging.getLogger(__name__)

# Fields a log record's metadata block may contribute, last write wins
_REPLAYED_FIELDS = (
    "sessionId",
    "messages",
    "systemPrompt",
    "environment",
    "role",
    "parentId",
    "childSessionIds",
)

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def _is_session_id(value: str) -> bool:
    return bool(_SESSION_ID_PATTERN.match(value or ""))


class SessionStore:
    """Filesystem-backed store for session snapshots.

    Snapshots live at ``<sessions_dir>/<session_id>.json`` and are replaced
    whole on every save. Append-only logs (see SessionLog) default to
    ``<sessions_dir>/logs``.
    """

    def __init__(self, sessions_dir: Union[str, Path], log_dir: Optional[Union[str, Path]] = None):
        self.sessions_dir = Path(sessions_dir)
        self.log_dir = Path(log_dir) if log_dir is not None else self.sessions_dir / "logs"

    def path_for(self, session_id: str) -> Path:
        if not _is_session_id(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.sessions_dir / f"{session_id}.json"

    def log_path_for(self, session_id: str) -> Path:
        if not _is_session_id(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.log_dir / f"{session_id}.log"

    def exists(self, session_id: str) -> bool:
        return _is_session_id(session_id) and self.path_for(session_id).is_file()

    def list_sessions(self) -> List[str]:
        """Return sorted ids of the stored snapshots."""
        if not self.sessions_dir.exists():
            return []
        return sorted(path.stem for path in self.sessions_dir.glob("*.json"))

    def save(self, session: Session) -> Path:
        """Write the full session snapshot, replacing any previous one.

        Raises:
            SessionSaveError: If the snapshot cannot be written.
        """
        path = self.path_for(session.id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.sessions_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(session.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8"
            )
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise SessionSaveError(
                f"Failed to save session {session.id}: {e}", details={"path": str(path)}
            ) from e
        logger.debug(f"Saved session snapshot: {path}")
        return path

    def load(self, session_id: str) -> Session:
        """Load a snapshot by session id.

        Raises:
            LogParseFailed: If no snapshot exists or it cannot be parsed.
        """
        return self._load_snapshot(self.path_for(session_id))

    def resume(self, path_or_id: Union[str, Path]) -> Session:
        """Reconstruct a session from a snapshot or an append-only log.

        ``path_or_id`` is first resolved as a snapshot: a session id with a
        stored snapshot, or a path to an existing ``.json`` file. Anything
        else is a session id with a stored log, or a path to a log file to
        replay.

        Raises:
            LogParseFailed: If the snapshot or log cannot be turned into a session.
        """
        snapshot = self._resolve_snapshot(str(path_or_id))
        if snapshot is not None:
            logger.info(f"Resuming session from snapshot: {snapshot}")
            return self._load_snapshot(snapshot)

        log_path = Path(path_or_id)
        if _is_session_id(str(path_or_id)) and not log_path.exists():
            candidate = self.log_path_for(str(path_or_id))
            if candidate.is_file():
                log_path = candidate
        logger.info(f"Resuming session from log: {log_path}")
        return self.replay_log(log_path)

    def _resolve_snapshot(self, path_or_id: str) -> Optional[Path]:
        if _is_session_id(path_or_id):
            candidate = self.sessions_dir / f"{path_or_id}.json"
            if candidate.is_file():
                return candidate
        path = Path(path_or_id)
        if path.suffix == ".json" and path.is_file():
            return path
        return None

    def _load_snapshot(self, path: Path) -> Session:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise LogParseFailed(f"Snapshot not found: {path}", details={"path": str(path)}) from e
        except (OSError, json.JSONDecodeError) as e:
            raise LogParseFailed(
                f"Failed to read session snapshot: {e}", details={"path": str(path)}
            ) from e

        try:
            return Session.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise LogParseFailed(
                f"Invalid session snapshot: {e}", details={"path": str(path)}
            ) from e

    def replay_log(self, log_path: Union[str, Path]) -> Session:
        """Rebuild a session by replaying an append-only log.

        Each record's ``metadata`` block overwrites earlier values field by
        field, except ``custom`` which accumulates by deep merge. Replaying
        the same file always yields the same session.

        Raises:
            LogParseFailed: If the file is missing or empty, a line is not
                JSON, or no record supplies a session id.
        """
        path = Path(log_path)
        if not path.is_file():
            raise LogParseFailed(f"Log file not found: {path}", details={"path": str(path)})

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise LogParseFailed(f"Failed to read log file: {e}", details={"path": str(path)}) from e

        lines = [
            (number, line)
            for number, line in enumerate(content.splitlines(), start=1)
            if line.strip()
        ]
        if not lines:
            raise LogParseFailed("Log file is empty", details={"path": str(path)})

        state = {}
        custom = {}
        created_at = None
        for line_number, line in lines:
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise LogParseFailed(
                    f"Invalid JSON in log file at line {line_number}: {e.msg}",
                    details={"path": str(path), "line": line_number},
                ) from e

            if not isinstance(record, dict):
                continue
            if created_at is None:
                created_at = record.get("timestamp")

            metadata = record.get("metadata")
            if not isinstance(metadata, dict):
                continue
            for key in _REPLAYED_FIELDS:
                if metadata.get(key) is not None:
                    state[key] = metadata[key]
            if isinstance(metadata.get("custom"), dict):
                custom = deep_merge(custom, metadata["custom"])

        if not state.get("sessionId"):
            raise LogParseFailed(
                "Invalid log file: no session ID found", details={"path": str(path)}
            )

        if created_at is None:
            # No record timestamp; the file mtime keeps replays deterministic
            created_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

        try:
            return Session.from_dict(
                {
                    "id": state["sessionId"],
                    "systemPrompt": state.get("systemPrompt", ""),
                    "messages": state.get("messages", []),
                    "metadata": {
                        "timestamp": created_at,
                        "environment": state.get("environment"),
                        "role": state.get("role"),
                        "custom": custom,
                    },
                    "parentId": state.get("parentId"),
                    "childSessionIds": state.get("childSessionIds", []),
                }
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise LogParseFailed(
                f"Invalid session data in log file: {e}", details={"path": str(path)}
            ) from e


class SessionLog:
    """Append-only JSON-lines log, one file per session."""

    def __init__(self, log_dir: Union[str, Path]):
        self.log_dir = Path(log_dir)

    def path_for(self, session_id: str) -> Path:
        return self.log_dir / f"{session_id}.log"

    def append(self, session: Session, message: str) -> Path:
        """Append a record carrying the session's full replayable state.

        Raises:
            SessionSaveError: If the record cannot be written.
        """
        path = self.path_for(session.id)
        data = session.to_dict()
        record = {
            "timestamp": utcnow().isoformat(),
            "level": "info",
            "message": message,
            "metadata": {
                "sessionId": session.id,
                "messages": data["messages"],
                "systemPrompt": data["systemPrompt"],
                "environment": data["metadata"]["environment"],
                "role": data["metadata"]["role"],
                "custom": data["metadata"]["custom"],
                "parentId": data["parentId"],
                "childSessionIds": data["childSessionIds"],
            },
        }
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except (OSError, TypeError, ValueError) as e:
            raise SessionSaveError(
                f"Failed to append to session log {path}: {e}", details={"path": str(path)}
            ) from e
        return path
