#!/usr/bin/env python3
"""
Dev helper: trigger a mailbox sync on the local backend and print the result.

POSTs to /api/emails/sync with the user's Supabase JWT and Google provider
token, then prints the imported / skipped / failed counters.

Usage
-----
# Tokens from the environment / .env
python scripts/sync_mailbox.py

# Explicit tokens
python scripts/sync_mailbox.py --token <supabase-jwt> --provider-token <google-token>

# Target a different backend URL
python scripts/sync_mailbox.py --url http://staging.example.com

Environment / .env
------------------
MIRROR_JWT              Supabase access token of the user to sync.
GOOGLE_PROVIDER_TOKEN   Google OAuth access token (session.provider_token).
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv


def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


def main() -> int:
    # scripts/ lives one level below the project root
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="sync_mailbox.py",
        description="Trigger a Gmail -> Supabase mailbox sync on the backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/sync_mailbox.py
              python scripts/sync_mailbox.py --url http://localhost:8000
        """),
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--token",
        default=os.getenv("MIRROR_JWT"),
        metavar="JWT",
        help="Supabase access token (default: MIRROR_JWT env var)",
    )
    parser.add_argument(
        "--provider-token",
        default=os.getenv("GOOGLE_PROVIDER_TOKEN"),
        metavar="TOKEN",
        help="Google OAuth access token (default: GOOGLE_PROVIDER_TOKEN env var)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=120.0,
        help="Request timeout in seconds (default: 120)",
    )

    args = parser.parse_args()

    if not args.token:
        print(
            "ERROR: No Supabase token found.\n"
            "Set MIRROR_JWT in your environment or .env file, or pass --token.",
            file=sys.stderr,
        )
        return 1

    headers = {"Authorization": f"Bearer {args.token}"}
    if args.provider_token:
        headers["X-Provider-Token"] = args.provider_token

    endpoint = f"{args.url.rstrip('/')}/api/emails/sync"
    print(f"Endpoint  : {endpoint}")

    try:
        response = httpx.post(endpoint, headers=headers, timeout=args.timeout)
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1
    except httpx.HTTPError as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
