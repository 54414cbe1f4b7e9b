from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from .config import DEFAULT_HOST, DEFAULT_PORT, Settings, SocialLink, build_settings, parse_social_link


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="molesk",
        description="Serve a directory of markdown files (or view a single file) in the browser.",
        epilog=(
            "examples:\n"
            "  molesk README.md      View single file (opens browser)\n"
            "  molesk ./docs         Serve docs directory\n"
            "  molesk -o ./blog      Serve blog and open browser"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("target", nargs="?", help="markdown file for viewer mode, or directory to serve")
    parser.add_argument("-o", "--open", dest="auto_open", action="store_true", help="open the browser after starting")
    parser.add_argument("-a", "--address", dest="host", default=DEFAULT_HOST, help=f"host address (default: {DEFAULT_HOST})")
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help=f"port number (default: {DEFAULT_PORT})")
    parser.add_argument("-t", "--title", nargs="+", help="site title (default: data source name)")
    parser.add_argument("-i", "--image", help="path to the profile picture")
    parser.add_argument(
        "-l",
        "--link",
        dest="links",
        nargs="+",
        action="extend",
        default=[],
        metavar="ICON:URL",
        help="social link, e.g. fa-github:https://github.com/username",
    )
    parser.add_argument("--ignore", nargs="+", action="extend", default=[], metavar="NAME", help="file base names to hide")
    parser.add_argument("--no-source", dest="show_source", action="store_false", help="hide source code link in footer")
    parser.add_argument("--no-rss", dest="show_rss", action="store_false", help="hide RSS feed link in footer")
    parser.add_argument("--no-download", dest="show_download", action="store_false", help="hide download button on content")
    parser.add_argument("--no-watch", dest="watch", action="store_false", help="do not watch the content directory")
    return parser


def _parse_links(values: Sequence[str]) -> list[SocialLink]:
    links: list[SocialLink] = []
    for value in values:
        try:
            links.append(parse_social_link(value))
        except ValueError:
            logger.error("Invalid format for --link: %s", value)
    return links


def parse_args(argv: Optional[Sequence[str]] = None) -> Settings:
    """Turn command line arguments into settings.

    Raises FileNotFoundError when the positional target does not exist.
    """
    args = build_parser().parse_args(argv)
    options = {
        "host": args.host,
        "port": args.port,
        "show_source": args.show_source,
        "show_rss": args.show_rss,
        "show_download": args.show_download,
        "watch": args.watch,
    }
    if args.auto_open:
        options["auto_open"] = True
    return build_settings(
        args.target,
        title=" ".join(args.title) if args.title else None,
        links=_parse_links(args.links),
        ignored_files=args.ignore,
        image=args.image,
        **options,
    )
