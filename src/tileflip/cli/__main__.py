"""Entry point for `python -m tileflip.cli` and the `tileflip` script."""

import sys


def main(args: list[str] | None = None) -> int:
    """Main entry point for the tileflip CLI."""
    if args is None:
        args = sys.argv[1:]

    if not args or args[0] in ["-h", "--help", "help"]:
        print_help()
        return 0

    command = args[0]

    if command == "version":
        print_version()
        return 0
    elif command == "config":
        return run_config(args[1:])
    elif command == "demo":
        return run_demo(args[1:])
    else:
        print(f"Unknown command: {command}")
        print_help()
        return 1


def print_help() -> None:
    """Print CLI help message."""
    print(
        """tileflip - Automated tile flipping pipeline

Usage:
    tileflip <command> [options]

Commands:
    version     Show version information
    config      Configuration management
    demo        Run the pipeline against an in-memory feed
                Options: --duration SECONDS, --rate EVENTS_PER_SECOND,
                         --seed N, --config FILE, --serve-metrics
    help        Show this help message

Options:
    -h, --help  Show help message
"""
    )


def print_version() -> None:
    from tileflip import __version__

    print(f"tileflip {__version__}")


def run_config(args: list[str]) -> int:
    """Run the config command."""
    from tileflip.cli.config import run_config_command

    return run_config_command(args)


def run_demo(args: list[str]) -> int:
    """Run the demo command."""
    from tileflip.cli.demo import run_demo_command

    return run_demo_command(args)


if __name__ == "__main__":
    sys.exit(main())
