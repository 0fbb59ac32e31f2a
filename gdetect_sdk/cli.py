"""Command line interface: ``gdetect [command] ...``.

Commands:
    submit <path>     submit a file and print its analysis UUID (default)
    get <uuid>        print a result by UUID
    search <sha256>   print a result by file SHA-256
    status            print the profile status
    waitfor <path>    submit a file and print the result once done
    results           list previous submissions
    version           print the server's lite v2 API version

``API_TOKEN`` and ``API_URL`` (environment or ``.env``) pre-fill ``--token``
and ``--url``; without them both flags are mandatory.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Mapping, Sequence

from dotenv import load_dotenv

from gdetect_sdk.client import GDetectClient
from gdetect_sdk.exceptions import GDetectError
from gdetect_sdk.models import Result, SubmitOptions, WaitForOptions

logger = logging.getLogger("gdetect_sdk.cli")

COMMANDS = ("submit", "get", "search", "status", "waitfor", "results", "version")
DEFAULT_COMMAND = "submit"
_VALUE_FLAGS = frozenset(
    {
        "--token",
        "--url",
        "-t",
        "--tag",
        "-d",
        "--description",
        "-p",
        "--password",
        "--timeout",
        "--pull-time",
        "--from",
        "--size",
    }
)


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def _split_tags(values: Sequence[str] | None) -> tuple[str, ...]:
    # -t a -t b and -t a,b are equivalent
    tags: list[str] = []
    for value in values or ():
        tags.extend(t for t in value.split(",") if t)
    return tuple(tags)


def _global_flags(env: Mapping[str, str], suppress: bool) -> argparse.ArgumentParser:
    """Flags accepted before or after the command.

    Sub-command copies default to SUPPRESS so they never overwrite a value
    given before the command.
    """
    parser = argparse.ArgumentParser(add_help=False)

    def default(value: object) -> object:
        return argparse.SUPPRESS if suppress else value

    parser.add_argument(
        "--token",
        default=default(env.get("API_TOKEN", "")),
        help="token to API",
    )
    parser.add_argument(
        "--url",
        default=default(env.get("API_URL", "")),
        help="url to API",
    )
    parser.add_argument("--insecure", action="store_true", default=default(False), help="bypass HTTPS check")
    parser.add_argument(
        "--syndetect",
        action="store_true",
        default=default(False),
        help="use syndetect API (warning: it's subset of detect capabilities)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=default(False), help="debug logging")
    return parser


def _submission_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--no-cache", action="store_true", help="Submit file even if a result already exists")
    parser.add_argument("-t", "--tag", action="append", help="Tags to assign to the file")
    parser.add_argument("-d", "--description", default="", help="Description for the file")
    parser.add_argument("-p", "--password", default="", help="Password used to extract archive")


def _retrieve_urls_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--retrieve-urls", action="store_true", help="Retrieve expert and token view URL")


def build_parser(env: Mapping[str, str] | None = None) -> argparse.ArgumentParser:
    env = os.environ if env is None else env
    common = _global_flags(env, suppress=True)

    parser = argparse.ArgumentParser(
        prog="gdetect",
        description="gdetect - interact with GLIMPS malware detect API",
        parents=[_global_flags(env, suppress=False)],
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_submit = sub.add_parser("submit", parents=[common], help="Submit a file to detect API")
    p_submit.add_argument("path", help="file to submit")
    _submission_flags(p_submit)

    p_get = sub.add_parser("get", parents=[common], help="Get result by its uuid")
    p_get.add_argument("uuid")
    _retrieve_urls_flag(p_get)

    p_search = sub.add_parser("search", parents=[common], help="Search a previous analysis by SHA-256")
    p_search.add_argument("sha256")
    _retrieve_urls_flag(p_search)

    sub.add_parser("status", parents=[common], help="Get profile status")

    p_wait = sub.add_parser(
        "waitfor", parents=[common], help="Submit a file to detect api and wait for results"
    )
    p_wait.add_argument("path", help="file to submit")
    _submission_flags(p_wait)
    p_wait.add_argument("--timeout", type=_non_negative_int, default=180, help="Set a timeout in seconds")
    p_wait.add_argument(
        "--pull-time",
        type=_non_negative_int,
        default=2,
        help="Set time to wait between each request trying get result, in seconds",
    )
    _retrieve_urls_flag(p_wait)

    p_results = sub.add_parser("results", parents=[common], help="List previous submissions")
    p_results.add_argument("--from", dest="from_", type=_non_negative_int, default=0)
    p_results.add_argument("--size", type=_non_negative_int, default=20)
    p_results.add_argument("-t", "--tag", action="append", help="Filter on a tag")

    sub.add_parser("version", parents=[common], help="Get API version")
    return parser


def with_default_command(argv: Sequence[str]) -> list[str]:
    """Prepend ``submit`` when the first positional argument is not a command.

    The whole argument list goes to ``submit`` so that its own flags (``-d``,
    ``-t``, ...) may appear before the file path.
    """
    args = list(argv)
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in _VALUE_FLAGS:
            i += 2
            continue
        if arg.startswith("-"):
            i += 1
            continue
        if arg in COMMANDS:
            return args
        return [DEFAULT_COMMAND] + args
    return args


def _print_json(data: object) -> None:
    print(json.dumps(data))


def _print_urls(client: GDetectClient, result: Result) -> None:
    try:
        print(f"Expert view url: {client.extract_expert_view_url(result)}")
    except GDetectError as exc:
        print(f"Error extracting expert view url: {exc}", file=sys.stderr)
    try:
        print(f"Token view url: {client.extract_token_view_url(result)}")
    except GDetectError as exc:
        print(f"Error extracting token view url: {exc}", file=sys.stderr)


def run(args: argparse.Namespace) -> None:
    with GDetectClient(args.url, args.token, insecure=args.insecure, syndetect=args.syndetect) as client:
        if args.command == "submit":
            options = SubmitOptions(
                tags=_split_tags(args.tag),
                description=args.description,
                bypass_cache=args.no_cache,
                archive_password=args.password,
            )
            print(client.submit_file(args.path, options))
        elif args.command in ("get", "search", "waitfor"):
            if args.command == "get":
                result = client.get_result_by_uuid(args.uuid)
            elif args.command == "search":
                result = client.get_result_by_sha256(args.sha256)
            else:
                options = WaitForOptions(
                    tags=_split_tags(args.tag),
                    description=args.description,
                    bypass_cache=args.no_cache,
                    archive_password=args.password,
                    timeout=args.timeout,
                    pull_time=args.pull_time,
                )
                result = client.wait_for_file(args.path, options)
            _print_json(result.to_dict())
            if args.retrieve_urls:
                _print_urls(client, result)
        elif args.command == "status":
            _print_json(client.get_profile_status().to_dict())
        elif args.command == "results":
            for submission in client.get_results(args.from_, args.size, _split_tags(args.tag)):
                _print_json(submission.to_dict())
        elif args.command == "version":
            print(client.get_api_version())


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    try:
        args = parser.parse_args(with_default_command(sys.argv[1:] if argv is None else argv))
        missing = [flag for flag in ("--token", "--url") if not getattr(args, flag[2:])]
        if missing:
            parser.error(f"the following arguments are required: {', '.join(missing)}")
    except SystemExit as exc:
        return 0 if exc.code in (0, None) else 1
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        run(args)
    except GDetectError as exc:
        logger.debug("command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
