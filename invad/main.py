#!/usr/bin/env python3
"""
invAD - Active Directory Forest & Domain Inventory Reporter
===========================================================

Command-line interface for producing inventory reports.

Usage:
    # Forest and domain reports as HTML
    invad -u auditor -p Password123 -d corp.local -s 192.168.1.100

    # Workbook and CSV, domain reports only, save the dataset for later
    invad -u auditor -p Password123 -d corp.local -s 192.168.1.100 \\
        -f xlsx,csv --scope domain --save

    # Re-render a saved dataset without touching the directory
    invad --load --dataset-name inventory -f html,xlsx -o ./output

Options:
    --username, -u      Domain username
    --password, -p      Domain password
    --domain, -d        Domain the credentials belong to (e.g., corp.local)
    --server, -s        Domain controller IP address
    --format, -f        html, xlsx, csv, all, or a comma list
    --scope             forest, domain or both
    --output, -o        Output directory (default: ./output)
    --verbose, -v       Verbose output
"""

import argparse
import json
import logging
import sys

from . import __version__
from .config import InvadConfig
from .errors import InventoryError
from .ingestion.ldap_loader import LDAPDirectoryAdapter, LDAP3_AVAILABLE
from .pipeline.runner import run_inventory


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invad",
        description="invAD - Active Directory Forest & Domain Inventory Reporter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full run, HTML only
  %(prog)s -u auditor -p Password123 -d corp.local -s 192.168.1.100

  # Workbook of two domains with topology diagrams
  %(prog)s -u auditor -p Password123 -d corp.local -s dc01 -f xlsx --diagrams \\
      --only-domain corp.local --only-domain emea.corp.local

  # Re-render a saved dataset
  %(prog)s --load --dataset-name inventory -f all
        """
    )

    # LDAP options
    ldap_group = parser.add_argument_group("LDAP Collection")
    ldap_group.add_argument("-u", "--username", help="Domain username for LDAP authentication")
    ldap_group.add_argument("-p", "--password", help="Domain password for LDAP authentication")
    ldap_group.add_argument("-d", "--domain", help="Domain name (e.g., corp.local)")
    ldap_group.add_argument("-s", "--server", help="Domain controller IP address or hostname")
    ldap_group.add_argument("--ssl", action="store_true", help="Use LDAPS (port 636)")
    ldap_group.add_argument("--page-size", type=int, help="LDAP page size (default: 1000)")

    # Dataset options
    data_group = parser.add_argument_group("Dataset")
    data_group.add_argument("--save", action="store_true", help="Save gathered records for later re-rendering")
    data_group.add_argument("--load", action="store_true", help="Render from saved records instead of querying")
    data_group.add_argument(
        "--dataset-name",
        help="Base name of saved dataset files (default: inventory)"
    )

    # Report options
    report_group = parser.add_argument_group("Report Options")
    report_group.add_argument(
        "-f", "--format",
        help="Report formats: html, xlsx, csv, all, or a comma list (default: html)"
    )
    report_group.add_argument(
        "--scope", choices=["forest", "domain", "both"],
        help="Which reports to produce (default: both)"
    )
    report_group.add_argument(
        "--privileged-only", action="store_true",
        help="Omit the full user, group and computer tables from domain reports"
    )
    report_group.add_argument(
        "--diagrams", action="store_true",
        help="Write topology side-cars (DOT and interactive HTML) with the forest report"
    )
    report_group.add_argument(
        "--only-domain", action="append", dest="domains", metavar="DOMAIN",
        help="Restrict domain reports to this domain (repeatable)"
    )
    report_group.add_argument(
        "--privileged-group", action="append", dest="privileged_groups", metavar="NAME",
        help="Privileged seed group (repeatable, replaces the default list)"
    )
    report_group.add_argument("--stale-days", type=int, help="Inactivity threshold in days (default: 90)")
    report_group.add_argument("--max-depth", type=int, help="Nested-group depth cap (default: 10)")
    report_group.add_argument("--timeout", type=float, help="Seconds before a single scope is abandoned")
    report_group.add_argument("--workers", type=int, help="Concurrent scope pipelines (default: 4)")

    # Output options
    output_group = parser.add_argument_group("Output")
    output_group.add_argument(
        "-o", "--output",
        help="Output directory for results (default: ./output)"
    )
    output_group.add_argument("--prefix", help="Artifact name prefix (default: invad)")
    output_group.add_argument("--config", help="JSON configuration file (CLI flags override it)")

    # General options
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version=f"invAD {__version__}")
    return parser


def _override(section: dict, **values) -> dict:
    """Copy of a config section with every non-None value applied."""
    merged = dict(section)
    merged.update({key: value for key, value in values.items() if value is not None})
    return merged


def build_config(args) -> InvadConfig:
    """Merge an optional JSON config file with CLI flags.

    Flags left unset keep the file's value, then the dataclass default.
    """
    base = {}
    if args.config:
        with open(args.config, 'r', encoding='utf-8') as f:
            base = json.load(f)

    return InvadConfig.from_dict({
        "inventory": _override(
            base.get("inventory", {}),
            privileged_groups=args.privileged_groups or None,
            stale_after_days=args.stale_days,
            max_membership_depth=args.max_depth,
        ),
        "ldap": _override(
            base.get("ldap", {}),
            use_ssl=args.ssl or None,
            page_size=args.page_size,
        ),
        "output": _override(
            base.get("output", {}),
            output_dir=args.output,
            name_prefix=args.prefix,
        ),
        "run": _override(
            base.get("run", {}),
            formats=args.format,
            scope=args.scope,
            export_all_accounts=False if args.privileged_only else None,
            diagrams=args.diagrams or None,
            save_dataset=args.save or None,
            load_dataset=args.load or None,
            dataset_name=args.dataset_name,
            domains=args.domains,
            scope_timeout=args.timeout,
            max_workers=args.workers,
        ),
        "verbose": args.verbose or base.get("verbose", False),
    })


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(levelname)s] %(message)s'
    )

    try:
        config = build_config(args)
    except (ValueError, TypeError, OSError) as e:
        parser.error(str(e))

    load = config.run.load_dataset
    has_ldap = args.domain and args.server
    if not load and not has_ldap:
        parser.error("Must provide -d (domain) and -s (server), or --load to render a saved dataset")

    print_banner()

    adapter = None
    if not load:
        if not LDAP3_AVAILABLE:
            print("[!] ldap3 library not available. Install with: pip install ldap3")
            return 1
        adapter = LDAPDirectoryAdapter(
            server_ip=args.server,
            domain=args.domain,
            username=args.username,
            password=args.password,
            config=config.ldap,
        )

    try:
        print(f"\n{'='*60}")
        print("Starting Inventory")
        print(f"{'='*60}\n")

        summary = run_inventory(adapter, config)
    except InventoryError as e:
        print(f"\n[!] Error: {e}")
        return 1
    finally:
        if adapter is not None:
            adapter.close()

    print(f"\n{'='*60}")
    print("Inventory Complete")
    print(f"{'='*60}\n")

    for scope, paths in summary.artifacts.items():
        print(f"{scope}:")
        for path in paths:
            print(f"  - {path}")
    for scope, error in summary.failed.items():
        print(f"[!] {scope} failed: {error}")
    for item in summary.skipped:
        print(f"[*] Skipped ({item.scope}, {item.kind}): {item.detail}")

    return 1 if summary.failed else 0


def print_banner():
    """Print the invAD banner."""
    banner = r"""
  _            _    ____
 (_)_ ____   _/ \  |  _ \
 | | '_ \ \ / / _ \ | | | |
 | | | | \ V / ___ \| |_| |
 |_|_| |_|\_/_/   \_\____/

  Active Directory Forest & Domain Inventory
  Read-only collection and reporting
    """
    print(banner)


if __name__ == "__main__":
    sys.exit(main())
