from __future__ import annotations

import argparse
from typing import Sequence


class _JoinPathAction(argparse.Action):
    """Join successive CLI tokens into a single path string (handles spaces gracefully)."""

    def __call__(self, parser, namespace, values, option_string=None):
        joined = " ".join(values).strip()
        setattr(namespace, self.dest, joined or None)


def _add_common(parser: argparse.ArgumentParser, *, hosts: Sequence[str], default_host: str) -> None:
    parser.add_argument(
        "--database",
        dest="database_path",
        nargs="+",
        action=_JoinPathAction,
        required=True,
        help="Path to the JSON element database of the analysis model",
    )
    parser.add_argument(
        "--host",
        dest="host",
        choices=hosts,
        default=default_host,
        help="Host flavour of the element database (default: %(default)s)",
    )
    parser.add_argument(
        "--manifest",
        dest="manifest_path",
        nargs="+",
        action=_JoinPathAction,
        default=None,
        help="Path to a manifest (YAML or JSON) with sync defaults, per-file rules and table field overrides",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        dest="verbose",
        action="store_true",
        help="Log per-object diagnostics",
    )


def parse_args(
    argv: Sequence[str] | None = None,
    *,
    hosts: Sequence[str],
    default_host: str,
    default_categories: Sequence[str],
) -> argparse.Namespace:
    """Parse the CLI arguments for the sync tool."""

    parser = argparse.ArgumentParser(description="Synchronize structural models with an analysis database")
    subparsers = parser.add_subparsers(dest="command", required=True)

    receive = subparsers.add_parser("receive", help="Write a portable object graph into the analysis model")
    receive.add_argument(
        "--input",
        dest="input_path",
        nargs="+",
        action=_JoinPathAction,
        required=True,
        help="Path to the JSON object graph to receive",
    )
    _add_common(receive, hosts=hosts, default_host=default_host)
    receive.add_argument(
        "--snapshot",
        dest="snapshot_path",
        nargs="+",
        action=_JoinPathAction,
        default=None,
        help="Snapshot of the previous receive (default: <database>.snapshot.json next to the database)",
    )
    receive.add_argument(
        "--mode",
        dest="receive_mode",
        choices=("update", "create", "ignore"),
        default=None,
        help="What to do with elements that already exist: update in place, create new ones, or leave them alone",
    )
    receive.add_argument(
        "--program-version",
        dest="program_version",
        default=None,
        help="Host program version reported by the database (selects table field spellings)",
    )

    send = subparsers.add_parser("send", help="Export the analysis model as a portable commit object")
    _add_common(send, hosts=hosts, default_host=default_host)
    send.add_argument(
        "--output",
        dest="output_path",
        nargs="+",
        action=_JoinPathAction,
        default=None,
        help="Where to write the commit JSON",
    )
    send.add_argument(
        "--category",
        dest="categories",
        nargs="*",
        default=list(default_categories),
        help="Native categories to send (default: %(default)s)",
    )
    send.add_argument(
        "--no-extrude",
        dest="no_extrude",
        action="store_true",
        help="Send analytical geometry only, without advisory solid meshes",
    )
    send.add_argument(
        "--surface-thickness",
        dest="surface_thickness",
        type=float,
        default=None,
        help="Thickness for surface meshes whose property has none (model units)",
    )
    send.add_argument(
        "--preview",
        dest="preview_path",
        nargs="+",
        action=_JoinPathAction,
        default=None,
        help="Also author the advisory meshes into a USD stage at this path",
    )

    preview = subparsers.add_parser("preview", help="Author the display meshes of a commit into a USD stage")
    preview.add_argument(
        "--input",
        dest="input_path",
        nargs="+",
        action=_JoinPathAction,
        required=True,
        help="Commit or object graph JSON holding display meshes",
    )
    preview.add_argument(
        "--output",
        dest="output_path",
        nargs="+",
        action=_JoinPathAction,
        required=True,
        help="USD stage to write (.usda or .usdc)",
    )
    preview.add_argument("--verbose", "-v", dest="verbose", action="store_true", help="Log diagnostics")

    return parser.parse_args(argv)
