#!/usr/bin/env python3
"""System health check: last run, disk, credentials and provider reachability."""

import os
import shutil
import sys
from datetime import datetime, timezone, timedelta
from pathlib import Path

from dotenv import load_dotenv

from article_engine.config import ServiceCredentials
from article_engine.errors import ProviderError

PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")


def check_last_run(max_age_hours: int = 26) -> tuple[bool, str]:
    """Verify the engine produced an article recently."""
    last_run_file = PROJECT_ROOT / "logs" / "last_run.txt"
    if not last_run_file.exists():
        log_file = PROJECT_ROOT / "logs" / "article_engine.log"
        if not log_file.exists():
            return False, "No last_run.txt or log file found"
        last_modified = datetime.fromtimestamp(log_file.stat().st_mtime, tz=timezone.utc)
        age = datetime.now(timezone.utc) - last_modified
        if age > timedelta(hours=max_age_hours):
            return False, f"Last log activity was {age.total_seconds()/3600:.1f} hours ago"
        return True, "OK (from log mtime)"

    lines = last_run_file.read_text().strip().split("\n")
    if len(lines) < 2:
        return False, "last_run.txt is malformed"

    status, timestamp_str = lines[0].strip(), lines[1].strip()
    message = lines[2].strip() if len(lines) > 2 else ""
    try:
        age = datetime.now(timezone.utc) - datetime.fromisoformat(timestamp_str)
    except ValueError:
        return False, f"Cannot parse last_run timestamp: {timestamp_str}"

    if status == "FAILURE":
        return False, f"Last run FAILED {age.total_seconds()/3600:.1f}h ago: {message}"
    if age > timedelta(hours=max_age_hours):
        return False, f"Last successful run was {age.total_seconds()/3600:.1f} hours ago"
    return True, f"OK, last run {age.total_seconds()/3600:.1f}h ago ({message})"


def check_disk_space() -> tuple[bool, str]:
    total, used, free = shutil.disk_usage(PROJECT_ROOT)
    pct_used = used / total * 100
    if pct_used > 80:
        return False, f"Disk {pct_used:.1f}% full ({free // (1024**3)}GB free)"
    return True, f"Disk {pct_used:.1f}% used"


def check_credentials() -> tuple[bool, str]:
    """The LLM key is required; the scorer and SERP keys only degrade the run."""
    creds = ServiceCredentials.from_env()
    if not creds.anthropic_api_key:
        return False, "ANTHROPIC_API_KEY is not set"
    missing = []
    if not creds.serper_api_key:
        missing.append("SERPER_API_KEY")
    if not creds.scorer_configured:
        missing.append("NEURONWRITER_API_KEY/NEURONWRITER_PROJECT_ID")
    if missing:
        return True, f"OK, running degraded without {', '.join(missing)}"
    return True, "OK"


def check_wordpress_api() -> tuple[bool, str]:
    from article_engine.clients import WordPressPublisher

    creds = ServiceCredentials.from_env()
    wp = WordPressPublisher(creds.wp_url, creds.wp_username, creds.wp_app_password)
    try:
        if wp.verify_connection():
            return True, "OK"
        return False, "WordPress API did not accept the request"
    except ProviderError as e:
        return False, f"Cannot reach WordPress: {e}"


def main():
    print(f"Health check: {datetime.now(timezone.utc).isoformat()}")
    failures = []

    checks = [
        ("Last Run", check_last_run),
        ("Disk Space", check_disk_space),
        ("Credentials", check_credentials),
    ]
    if os.getenv("WP_URL"):
        checks.append(("WordPress API", check_wordpress_api))

    for name, check_fn in checks:
        ok, msg = check_fn()
        print(f"  [{'OK' if ok else 'FAIL'}] {name}: {msg}")
        if not ok:
            failures.append(f"{name}: {msg}")

    if failures:
        print("Health check failures:\n  " + "\n  ".join(failures), file=sys.stderr)
        return 1

    print("All checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
