"""
File-backed service implementations.

Used by the console runner for offline exams: violations are counted in a
JSON ledger, submissions are packaged as a ZIP next to the session log and
checkpoints are stored encrypted so they can resume an interrupted attempt.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional
from zipfile import ZipFile, ZIP_DEFLATED

from cryptography.fernet import Fernet, InvalidToken

from .collaborators import CollaboratorError
from .models import Checkpoint


def _safe_name(value: str) -> str:
    return "".join(c if c.isalnum() or c in "-_" else '_' for c in value)


def _write_atomic(path: Path, data: bytes):
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, 'wb') as f:
        f.write(data)
    os.replace(tmp_path, path)


class LocalViolationLedger:
    """Counts violations per session in a JSON file (or in memory)."""

    def __init__(self, ledger_path: Optional[Path] = None):
        self.ledger_path = Path(ledger_path) if ledger_path is not None else None
        self._counts: Dict[str, int] = {}
        if self.ledger_path is not None and self.ledger_path.exists():
            self._counts = self._load()

    def _load(self) -> Dict[str, int]:
        try:
            with open(self.ledger_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CollaboratorError(f"Cannot read violation ledger: {e}")
        if not isinstance(data, dict):
            raise CollaboratorError("Cannot read violation ledger: top level must be a JSON object")
        try:
            return {str(k): int(v) for k, v in data.items()}
        except (TypeError, ValueError) as e:
            raise CollaboratorError(f"Cannot read violation ledger: {e}")

    def count(self, session_id: str) -> int:
        return self._counts.get(session_id, 0)

    async def report_violation(self, session_id: str) -> int:
        counts = dict(self._counts)
        counts[session_id] = counts.get(session_id, 0) + 1

        if self.ledger_path is not None:
            try:
                self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
                _write_atomic(self.ledger_path, json.dumps(counts, indent=2).encode('utf-8'))
            except OSError as e:
                raise CollaboratorError(f"Cannot write violation ledger: {e}")

        self._counts = counts
        return counts[session_id]


class ZipAnswerSubmitter:
    """
    Finalizes answers into `<session>_submission.zip`.

    The archive is rewritten on every call, so a retry with the same
    answers produces the same submission.
    """

    def __init__(self, output_dir: Path, session_log_path: Optional[Path] = None):
        self.output_dir = Path(output_dir)
        self.session_log_path = Path(session_log_path) if session_log_path is not None else None

    def submission_path(self, session_id: str) -> Path:
        return self.output_dir / f"{_safe_name(session_id)}_submission.zip"

    async def finalize(self, session_id: str, answers: Dict[str, str]) -> None:
        payload = {
            "session_id": session_id,
            "answers": dict(sorted(answers.items())),
            "finalized_at": datetime.now().isoformat(timespec='seconds'),
        }
        zip_path = self.submission_path(session_id)

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = zip_path.with_suffix(".zip.tmp")
            with ZipFile(tmp_path, 'w', ZIP_DEFLATED) as zipf:
                zipf.writestr("answers.json", json.dumps(payload, indent=2))
                if self.session_log_path is not None and self.session_log_path.exists():
                    zipf.write(self.session_log_path, arcname="session.log")
            os.replace(tmp_path, zip_path)
        except OSError as e:
            raise CollaboratorError(f"Cannot write submission archive: {e}")


class FileCheckpointStore:
    """Keeps the latest checkpoint per session, Fernet-encrypted on disk."""

    def __init__(self, checkpoint_dir: Path, key: bytes):
        self.checkpoint_dir = Path(checkpoint_dir)
        self._fernet = Fernet(key)

    def checkpoint_path(self, session_id: str) -> Path:
        return self.checkpoint_dir / f"{_safe_name(session_id)}.checkpoint"

    async def save_checkpoint(self, session_id: str, time_left_seconds: int,
                              answers: Dict[str, str]) -> None:
        checkpoint = Checkpoint(
            session_id=session_id,
            time_left_seconds=time_left_seconds,
            answers=answers
        )
        token = self._fernet.encrypt(json.dumps(checkpoint.to_dict()).encode('utf-8'))
        try:
            self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
            _write_atomic(self.checkpoint_path(session_id), token)
        except OSError as e:
            raise CollaboratorError(f"Cannot write checkpoint: {e}")

    def load(self, session_id: str) -> Optional[Checkpoint]:
        """
        Return the saved checkpoint for a session.

        Returns:
            None if there is none or it cannot be decrypted with this store's key.
        """
        path = self.checkpoint_path(session_id)
        if not path.exists():
            return None
        try:
            data = json.loads(self._fernet.decrypt(path.read_bytes()))
            return Checkpoint.from_dict(data)
        except (OSError, InvalidToken, json.JSONDecodeError, KeyError, ValueError):
            return None

    def clear(self, session_id: str):
        path = self.checkpoint_path(session_id)
        if path.exists():
            path.unlink()
