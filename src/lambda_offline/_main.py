import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from lambda_offline.config import HarnessSettings
from lambda_offline.exceptions import LambdaOfflineError
from lambda_offline.runtime.demux import demux
from lambda_offline.runtime.environment import ToolchainEnvironment
from lambda_offline.runtime.go_runner import GoRunner


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="lambda-offline", description="Run Go Lambda handlers locally"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    invoke_parser = subparsers.add_parser("invoke", help="Invoke a Go handler once")
    invoke_parser.add_argument("--handler", required=True, help="Handler path without the .go suffix (e.g. src/hello/main)")
    invoke_parser.add_argument("--event", default="{}", help="Event JSON, or @path to a JSON file")
    invoke_parser.add_argument("--context", default="{}", help="Context JSON, or @path to a JSON file")
    invoke_parser.add_argument("--profile", help="AWS profile used for session credentials")
    invoke_parser.add_argument(
        "--skip-mock-install", action="store_true",
        help="Do not run 'go get' for the mock-lambda module"
    )

    parse_parser = subparsers.add_parser("parse-output", help="Extract the result from captured handler stdout")
    parse_parser.add_argument("file", nargs="?", help="File holding the captured stdout (default: stdin)")

    subparsers.add_parser("go-env", help="Print the parsed Go toolchain environment")

    return parser.parse_args(argv)


def load_json_arg(value: str):
    if value.startswith("@"):
        value = Path(value[1:]).read_text(encoding="utf-8")
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e


def main_logic(args) -> int:
    settings = HarnessSettings.from_env()
    if args.command == "invoke":
        try:
            event = load_json_arg(args.event)
            context = load_json_arg(args.context)
        except (OSError, ValueError) as e:
            print(f"Invalid event/context: {e}", file=sys.stderr)
            return 2
        if args.skip_mock_install:
            settings = replace(settings, skip_mock_install=True)
        provider = {"profile": args.profile} if args.profile else {}
        with GoRunner(args.handler, provider, env=dict(os.environ), settings=settings) as runner:
            result = runner.run(event, context)
        print(json.dumps(result, default=str))
    elif args.command == "parse-output":
        text = Path(args.file).read_text(encoding="utf-8") if args.file else sys.stdin.read()
        result = demux(text, policy=settings.success_policy)
        if result.diagnostics:
            print(result.log_text, file=sys.stderr)
        if not result.found:
            return 1
        print(json.dumps(result.payload, default=str))
    elif args.command == "go-env":
        print(json.dumps(ToolchainEnvironment(settings.go_bin).get(), indent=2, sort_keys=True))
    else:
        print("Unknown command", file=sys.stderr)
        return 1
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return main_logic(args)
    except LambdaOfflineError as e:
        print(f"{e.__class__.__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
