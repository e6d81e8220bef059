"""Cloudvelous AWS command line entry point."""

import argparse
import asyncio
import sys

from cloudvelous_aws.config import configure_logging, get_settings
from cloudvelous_aws.health import registry_from_settings
from cloudvelous_aws.version import __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloudvelous_aws",
        description="Cloudvelous AWS - async wrappers for SQS, Secrets Manager and RDS",
    )
    subcommands = parser.add_subparsers(dest="command")
    subcommands.add_parser("health", help="Check connectivity to SQS, Secrets Manager and RDS")
    subcommands.add_parser("version", help="Print the package version")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the command line.

    Args:
        argv: Arguments without the program name. Defaults to sys.argv[1:].

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "version":
        print(f"Cloudvelous AWS {__version__}")
        return 0

    if args.command == "health":
        settings = get_settings()
        configure_logging(settings.log_level)
        results = asyncio.run(registry_from_settings(settings).run_all())
        for name, healthy in results.items():
            print(f"{name}: {'healthy' if healthy else 'unhealthy'}")
        return 0 if all(results.values()) else 1

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
