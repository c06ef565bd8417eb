"""infraphase command line entry point."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from infraphase import __version__
from infraphase.config.settings import get_settings
from infraphase.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="infraphase",
        description="Phased, parallel provisioning of cloud resources",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    plan_parser = subparsers.add_parser("plan", help="Validate a plan file and show its phases")
    plan_parser.add_argument("plan_file", nargs="?", help="Path to plan YAML file")
    plan_parser.add_argument(
        "--format", dest="output_format", choices=["table", "json"], default="table",
        help="Output format (default: table)",
    )
    plan_parser.add_argument(
        "--var", dest="variables", action="append", metavar="KEY=VALUE",
        help="Override a plan variable (repeatable)",
    )

    apply_parser = subparsers.add_parser("apply", help="Provision every resource of a plan")
    apply_parser.add_argument("plan_file", nargs="?", help="Path to plan YAML file")
    apply_parser.add_argument(
        "--simulate", action="store_true",
        help="Use the in-memory simulated provider and secret store",
    )
    apply_parser.add_argument(
        "--format", dest="output_format", choices=["table", "json", "junit"], default="table",
        help="Report format (default: table)",
    )
    apply_parser.add_argument("--output", dest="output_file", help="Write the report to a file")
    apply_parser.add_argument("--log-dir", help="Directory for per-task log files")
    apply_parser.add_argument(
        "--var", dest="variables", action="append", metavar="KEY=VALUE",
        help="Override a plan variable (repeatable)",
    )
    apply_parser.add_argument(
        "--poll-interval", type=float, help="Seconds between state queries"
    )
    apply_parser.add_argument(
        "--max-wait", type=float, help="Maximum seconds to wait for each resource"
    )
    apply_parser.add_argument("-v", "--verbose", action="store_true", help="Show more detail")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    verbose = getattr(args, "verbose", False)
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_output=settings.log_json,
    )

    if args.command == "plan":
        from infraphase.cli.plan import plan_command

        sys.exit(
            plan_command(
                args.plan_file,
                variables=args.variables,
                output_format=args.output_format,
            )
        )

    if args.command == "apply":
        from infraphase.cli.apply import apply_command

        sys.exit(
            apply_command(
                args.plan_file,
                simulate=args.simulate,
                output_format=args.output_format,
                output_file=args.output_file,
                log_dir=args.log_dir,
                variables=args.variables,
                poll_interval=args.poll_interval,
                max_wait=args.max_wait,
                verbose=args.verbose,
                settings=settings,
            )
        )

    parser.print_help()
    sys.exit(0)


if __name__ == "__main__":
    main()
