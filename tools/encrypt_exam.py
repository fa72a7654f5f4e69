#!/usr/bin/env python3
"""
encrypt_exam.py - Encrypt plaintext JSON exam definitions.

Usage with key file:
    python tools/encrypt_exam.py --in midterm.json --out exams/midterm.enc --key-file MIDTERM.key

Usage with password:
    python tools/encrypt_exam.py --in midterm.json --out exams/midterm.enc --password
"""

import argparse
import getpass
import hashlib
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from proctor.exam_loader import ExamDefinition, encrypt_payload


def encrypt_exam(in_file: Path, out_file: Path, key_file: Path = None, use_password: bool = False) -> int:
    """Validate and encrypt an exam file. Returns a process exit code."""
    try:
        plaintext = in_file.read_bytes()
    except OSError as e:
        print(f"[ERROR] Cannot read input: {e}", file=sys.stderr)
        return 1

    try:
        exam = ExamDefinition.from_dict(json.loads(plaintext))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        print(f"[ERROR] Invalid exam definition: {e}", file=sys.stderr)
        return 1

    print(f"[OK] Input validated")
    print(f"  Exam: {exam.exam_id}")
    print(f"  Questions: {len(exam.questions)}")
    print(f"  Duration: {exam.duration_seconds // 60} min")
    if not exam.questions:
        print("[!] Exam has no questions; candidates will see an empty exam notice")

    if use_password:
        password = getpass.getpass("Enter encryption password: ")
        if password != getpass.getpass("Confirm password: "):
            print("[ERROR] Passwords do not match", file=sys.stderr)
            return 1
        if len(password) < 8:
            print("[ERROR] Password must be at least 8 characters", file=sys.stderr)
            return 1
        encrypted = encrypt_payload(plaintext, password=password)
    else:
        encrypted = encrypt_payload(plaintext, key=key_file.read_bytes().strip())

    out_file.parent.mkdir(parents=True, exist_ok=True)
    out_file.write_bytes(encrypted)

    print(f"\n[OK] Exam encrypted")
    print(f"  Output: {out_file} ({len(encrypted)} bytes)")
    print(f"  Method: {'Password-based' if use_password else 'Key file'}")
    print(f"  SHA256: {hashlib.sha256(encrypted).hexdigest()}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Encrypt a plaintext JSON exam definition.")
    parser.add_argument("--in", dest="in_file", type=Path, required=True, help="Input plaintext JSON file")
    parser.add_argument("--out", type=Path, required=True, help="Output encrypted exam file")
    method = parser.add_mutually_exclusive_group(required=True)
    method.add_argument("--key-file", type=Path, help="File containing the Fernet key")
    method.add_argument("--password", action="store_true", help="Use password-based encryption")

    args = parser.parse_args()
    sys.exit(encrypt_exam(args.in_file, args.out, args.key_file, args.password))


if __name__ == "__main__":
    main()
