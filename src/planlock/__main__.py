"""CLI entry point for planlock."""

import sys


def main() -> int:
    """Main entry point for planlock CLI."""
    from planlock.cli import run_cli

    return run_cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
