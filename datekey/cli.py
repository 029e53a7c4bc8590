#!/usr/bin/env python3
"""
datekey Command Line Interface

Usage:
    datekey encode --secret <secret> [--scheme phrase|passphrase] [--date YYYYMMDD]
    datekey verify --secret <secret> --credential <value> [--date YYYYMMDD] [--skew N]
    datekey date-token [--date YYYYMMDD] [--timezone Europe/Madrid]
    datekey fetch-keys --url <server> --secret <secret>
"""

import argparse
import json
import sys
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from .dates import date_token, local_date, parse_date_token


def _instant(args) -> Optional[datetime]:
    if not getattr(args, "date", None):
        return None
    d = parse_date_token(args.date)
    return datetime(d.year, d.month, d.day, 12, 0, 0)


def _zone(args):
    name = getattr(args, "timezone", None)
    return ZoneInfo(name) if name else None


def cmd_encode(args):
    """Print a credential for today (or --date)."""
    from . import Scheme, encode

    print(encode(args.secret, _instant(args), Scheme(args.scheme), _zone(args)))
    return 0


def cmd_verify(args):
    """Verify a credential; exit code 0 means admitted."""
    from . import CredentialVerifier, Scheme

    verifier = CredentialVerifier(args.secret, Scheme(args.scheme), args.skew, _zone(args))
    result = verifier.check(args.credential, _instant(args))

    if result.is_valid():
        print(f"✓ VALID (offset {result.offset_days:+d} days)")
        return 0
    print(f"✗ {result.outcome.value}: {result.reason}")
    return 1


def cmd_date_token(args):
    print(date_token(local_date(_instant(args), _zone(args))))
    return 0


def cmd_fetch_keys(args):
    """Fetch disclosed keys from a running gateway."""
    from . import Scheme
    from .client import KeyFetchError, fetch_api_keys

    try:
        keys = fetch_api_keys(args.url, args.secret, Scheme(args.scheme), timeout=args.timeout)
    except KeyFetchError as e:
        print(f"✗ Failed to retrieve API keys: {e}", file=sys.stderr)
        return 1
    print(json.dumps(keys, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Date-keyed credential CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  datekey encode -s BNB_SECURE_ACCESS
  datekey encode -s my-shared-secret --scheme passphrase
  datekey verify -s BNB_SECURE_ACCESS -c '<iv>:<ciphertext>'
  datekey fetch-keys -u http://localhost:3000 -s BNB_SECURE_ACCESS
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    def add_common(p):
        p.add_argument("-s", "--secret", required=True, help="Shared secret or verification phrase")
        p.add_argument("--scheme", choices=["phrase", "passphrase"], default="phrase", help="Credential scheme")

    encode_parser = subparsers.add_parser("encode", help="Encode a credential")
    add_common(encode_parser)
    encode_parser.add_argument("-d", "--date", help="Encode for this date (YYYYMMDD)")
    encode_parser.add_argument("-z", "--timezone", help="IANA time zone for the date")

    verify_parser = subparsers.add_parser("verify", help="Verify a credential")
    add_common(verify_parser)
    verify_parser.add_argument("-c", "--credential", required=True, help="Credential value")
    verify_parser.add_argument("-d", "--date", help="Verifier date (YYYYMMDD)")
    verify_parser.add_argument("-z", "--timezone", help="IANA time zone for the date")
    verify_parser.add_argument("-k", "--skew", type=int, default=1, help="Allowed skew in days")

    token_parser = subparsers.add_parser("date-token", help="Print the date token")
    token_parser.add_argument("-d", "--date", help="Date (YYYYMMDD)")
    token_parser.add_argument("-z", "--timezone", help="IANA time zone for the date")

    fetch_parser = subparsers.add_parser("fetch-keys", help="Fetch keys from a gateway")
    add_common(fetch_parser)
    fetch_parser.add_argument("-u", "--url", required=True, help="Gateway base URL")
    fetch_parser.add_argument("-t", "--timeout", type=float, default=10, help="Request timeout (seconds)")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    handlers = {
        "encode": cmd_encode,
        "verify": cmd_verify,
        "date-token": cmd_date_token,
        "fetch-keys": cmd_fetch_keys,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 2
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
