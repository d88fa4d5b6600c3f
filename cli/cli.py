# cli/cli.py
"""
Operator commands for the lead-magnet Airtable integration.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Optional

# Ensure project root is in path for imports
_cli_dir = Path(__file__).parent
_project_root = _cli_dir.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from leadmagnet.core.config import settings
from leadmagnet.core.exceptions import AirtableConfigError, AirtableError
from leadmagnet.schemas.lead_magnet import DownloadRequest
from leadmagnet.services.airtable import AirtableClient, AirtableConfig
from leadmagnet.services.download import track_download
from leadmagnet.services.normalization import normalize_record_id, normalize_token


def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    print(f"{RED}[✗]{RESET} {message}")


def print_warning(message: str):
    print(f"{YELLOW}[!]{RESET} {message}")


def print_info(message: str):
    print(f"{BLUE}[i]{RESET} {message}")


async def cmd_check_config(args: argparse.Namespace) -> int:
    """Command: Validate the Airtable environment variables."""
    print_info("Checking Airtable configuration...")
    try:
        config = AirtableConfig.from_settings(settings)
    except AirtableConfigError as e:
        print_error(e.message)
        for name in e.missing:
            print_error(f"  missing: {name}")
        return 1

    print_success(f"Airtable base {config.base_id}, table '{config.table_name}'")
    if not config.api_token.startswith("pat"):
        print_warning("AIRTABLE_API_TOKEN does not start with 'pat'")
    return 0


async def cmd_resolve(args: argparse.Namespace) -> int:
    """Command: Look up the lead record behind an outreach token."""
    token = normalize_token(args.token)
    if not token:
        print_error("Invalid token: only letters, digits, '-' and '_' are allowed")
        return 2

    try:
        match = await AirtableClient().find_by_token(token)
    except AirtableError as e:
        print_error(e.message)
        return 1

    if not match.token_matched:
        print_warning(f"No lead record for token {token}")
        return 0

    print_success(f"Token {token} -> {match.record_id}")
    print_info(f"  name: {match.first_name or '-'}")
    print_info(f"  downloads: {match.download_count}")
    return 0


async def cmd_track_download(args: argparse.Namespace) -> int:
    """Command: Record a download manually by record id or token."""
    if args.record_id and not normalize_record_id(args.record_id):
        print_error("Invalid record id: expected rec followed by at least 8 letters or digits")
        return 2

    body = DownloadRequest(leadRecordId=args.record_id, token=args.token, page_path="cli")
    try:
        result = await track_download(store=AirtableClient(), body=body)
    except AirtableError as e:
        print_error(e.message)
        return 1

    print_success(f"{result.status.value}: {result.lead_record_id or '-'}")
    return 0


# Command registry
COMMANDS: Dict[str, Callable] = {
    'check-config': cmd_check_config,
    'resolve': cmd_resolve,
    'track-download': cmd_track_download,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        description='Lead-magnet CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    subparsers.add_parser('check-config', help='Validate Airtable environment variables')

    resolve_parser = subparsers.add_parser('resolve', help='Look up a lead by outreach token')
    resolve_parser.add_argument('token', help='Outreach token')

    download_parser = subparsers.add_parser('track-download', help='Record a download')
    download_parser.add_argument('--record-id', default=None, help='Airtable record id (rec...)')
    download_parser.add_argument('--token', default=None, help='Outreach token')

    return parser


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    try:
        return asyncio.run(command_func(parsed_args))
    except KeyboardInterrupt:
        print_error("\nInterrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
