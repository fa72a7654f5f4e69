"""
Exam file loading.

Reads an exam definition (identifier, duration and questions) from a plain
JSON file or from a Fernet-encrypted one. Encrypted files are either
key-file based, or password based with a b'SALT' + 16-byte salt prefix.
"""

import base64
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .models import Question, ProctorError

SALT_PREFIX = b'SALT'
SALT_LENGTH = 16
DEFAULT_DURATION_MINUTES = 60


class ExamFileError(ProctorError):
    """Raised when an exam file cannot be read, decrypted or parsed."""


@dataclass
class ExamDefinition:
    """Initial input of a monitored session."""
    exam_id: str
    duration_seconds: int
    questions: List[Question]

    @staticmethod
    def from_dict(data: dict) -> 'ExamDefinition':
        if 'duration_seconds' in data:
            duration_seconds = int(data['duration_seconds'])
        else:
            duration_seconds = int(float(data.get('duration_minutes', DEFAULT_DURATION_MINUTES)) * 60)

        return ExamDefinition(
            exam_id=str(data.get('exam_id') or data.get('id') or "exam"),
            duration_seconds=duration_seconds,
            questions=[Question.from_dict(q) for q in data.get('questions') or []]
        )


def derive_key_from_password(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=480000,  # OWASP recommendation for 2024
    )
    key_material = kdf.derive(password.encode('utf-8'))
    return base64.urlsafe_b64encode(key_material)


def encrypt_payload(plaintext: bytes, key: Optional[bytes] = None, password: Optional[str] = None) -> bytes:
    """
    Encrypt bytes with a Fernet key or a password.

    Password encryption prefixes the salt so the reader can derive the key.
    """
    if (key is None) == (password is None):
        raise ValueError("Exactly one of key or password is required")

    if password is not None:
        salt = os.urandom(SALT_LENGTH)
        token = Fernet(derive_key_from_password(password, salt)).encrypt(plaintext)
        return SALT_PREFIX + salt + token

    return Fernet(key).encrypt(plaintext)


def decrypt_payload(data: bytes, key_input: Union[str, bytes]) -> bytes:
    """Decrypt bytes produced by encrypt_payload. `key_input` is the key or the password."""
    try:
        if data.startswith(SALT_PREFIX):
            salt = data[len(SALT_PREFIX):len(SALT_PREFIX) + SALT_LENGTH]
            token = data[len(SALT_PREFIX) + SALT_LENGTH:]
            password = key_input.decode('utf-8') if isinstance(key_input, bytes) else key_input
            key = derive_key_from_password(password, salt)
        else:
            token = data
            key = key_input.encode('utf-8') if isinstance(key_input, str) else key_input
        return Fernet(key).decrypt(token)
    except InvalidToken:
        raise ExamFileError("Wrong key or password, or the file is corrupted")
    except ValueError as e:
        raise ExamFileError(f"Invalid encryption key: {e}")


def load_exam(exam_path: Path, key_input: Optional[Union[str, bytes]] = None) -> ExamDefinition:
    """
    Load an exam definition.

    Args:
        exam_path: A .json file, or an encrypted file of any other extension
        key_input: Fernet key or password for encrypted files

    Raises:
        ExamFileError: If the file is missing, cannot be decrypted or is malformed
    """
    exam_path = Path(exam_path)
    try:
        raw = exam_path.read_bytes()
    except OSError as e:
        raise ExamFileError(f"Cannot read exam file '{exam_path}': {e}")

    if exam_path.suffix.lower() != '.json':
        if key_input is None:
            raise ExamFileError(f"Exam file '{exam_path.name}' is encrypted; a key or password is required")
        raw = decrypt_payload(raw, key_input)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ExamFileError(f"Invalid JSON in exam file: {e}")

    try:
        return ExamDefinition.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ExamFileError(f"Malformed exam definition: {e}")
