#!/usr/bin/env python3
"""
keygen.py - Generate Fernet keys for encrypted exams.

Usage:
    python tools/keygen.py --out MIDTERM.key
"""

import argparse
import sys
from pathlib import Path

from cryptography.fernet import Fernet


def generate_key(output_file: Path) -> int:
    if output_file.exists():
        print(f"[ERROR] {output_file} already exists; refusing to overwrite", file=sys.stderr)
        return 1

    key = Fernet.generate_key()
    output_file.write_bytes(key)

    print(f"[OK] Key written to {output_file}")
    print(f"[!] Keep this key out of version control and away from candidate machines.")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Generate a Fernet key for exam encryption.")
    parser.add_argument("--out", type=Path, required=True, help="Output key file (e.g. MIDTERM.key)")
    args = parser.parse_args()
    sys.exit(generate_key(args.out))


if __name__ == "__main__":
    main()
