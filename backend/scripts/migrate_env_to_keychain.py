#!/usr/bin/env python3
"""Move AA secrets from ``.env`` into the OS keychain.

Each non-empty value for a key in ``CREDENTIAL_KEYS`` (API key, signing
key, webhook public key, Finfactor login) is stored with ``keyring``.
``--clean`` then strips the stored keys from ``.env``, leaving
comments and non-secret settings alone.

Usage:
    python -m scripts.migrate_env_to_keychain
    python -m scripts.migrate_env_to_keychain --clean
"""

import argparse
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from services.credential_manager import (
    CREDENTIAL_KEYS,
    CredentialValueError,
    get_credential,
    normalize_credential,
    set_credential,
)


@dataclass
class MigrationReport:
    stored: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    invalid: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def in_keychain(self) -> list[str]:
        return self.stored + self.unchanged


def migrate(env_path: Path) -> MigrationReport:
    """Copy every credential found in ``env_path`` into the keychain.

    Values are compared in their stored form, so a PEM key already migrated
    from a shell-escaped ``.env`` line counts as unchanged.
    """
    values = dotenv_values(env_path)
    report = MigrationReport()
    for key in sorted(CREDENTIAL_KEYS):
        value = values.get(key)
        if not value:
            report.missing.append(key)
            continue
        try:
            stored_form = normalize_credential(key, value)
        except CredentialValueError:
            report.invalid.append(key)
            continue
        if get_credential(key) == stored_form:
            report.unchanged.append(key)
        elif set_credential(key, stored_form):
            report.stored.append(key)
        else:
            report.failed.append(key)
    return report


def strip_env_keys(env_path: Path, keys: list[str]) -> int:
    """Drop ``KEY=`` lines for ``keys`` from the file. Returns lines removed."""
    pattern = re.compile(r"^\s*(?:export\s+)?(" + "|".join(map(re.escape, keys)) + r")\s*=")
    lines = env_path.read_text().splitlines(keepends=True)
    kept = [line for line in lines if not pattern.match(line)]
    env_path.write_text("".join(kept))
    return len(lines) - len(kept)


def print_report(report: MigrationReport) -> None:
    sections = (
        ("Stored in keychain", "+", report.stored),
        ("Already in keychain", "=", report.unchanged),
        ("Not set in .env", "-", report.missing),
        ("Invalid, not stored", "?", report.invalid),
        ("Failed", "!", report.failed),
    )
    for title, marker, keys in sections:
        if keys:
            print(f"\n{title} ({len(keys)}):")
            for key in keys:
                print(f"  {marker} {key}")
    print()


def main():
    parser = argparse.ArgumentParser(description="Move AA credentials from .env to the OS keychain")
    parser.add_argument("--clean", action="store_true", help="Remove migrated keys from .env afterwards")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(__file__).parent.parent / ".env",
        help="Path to .env file (default: backend/.env)",
    )
    args = parser.parse_args()

    if not args.env_file.exists():
        print(f"No .env file found at {args.env_file}")
        sys.exit(1)

    report = migrate(args.env_file)
    print_report(report)

    if args.clean:
        if report.in_keychain:
            removed = strip_env_keys(args.env_file, report.in_keychain)
            print(f"Removed {removed} line(s) from {args.env_file}")
        else:
            print("Nothing to clean from .env.")
    sys.exit(1 if report.failed or report.invalid else 0)


if __name__ == "__main__":
    main()
