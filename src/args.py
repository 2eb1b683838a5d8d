"""Argument parsing functionality for lazypin."""

import argparse


def build_parser():
    """Builds the argument parser; unset options stay None so config layering can tell."""
    parser = argparse.ArgumentParser(
        prog="lazypin",
        description=(
            "lazypin - Extract, map and pin LazyVim plugins for Nix"
        ),
        add_help=True,
    )

    parser.add_argument("--lazyvim",
                        dest="LAZYVIM_ROOT",
                        help="Path to the LazyVim checkout (declaration root)",
                        action="store", type=str,
                        required=True)
    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to the plugins manifest (also read for prior fetch records)",
                        action="store",
                        type=str)
    parser.add_argument("--report",
                        dest="REPORT",
                        help="Path to the markdown mapping analysis report",
                        action="store",
                        type=str)
    parser.add_argument("--dependencies-output",
                        dest="DEPENDENCIES_OUTPUT",
                        help="Path to the system dependencies JSON",
                        action="store",
                        type=str)
    parser.add_argument("--treesitter-output",
                        dest="TREESITTER_OUTPUT",
                        help="Path to the treesitter parsers JSON",
                        action="store",
                        type=str)
    parser.add_argument("--extras-output",
                        dest="EXTRAS_OUTPUT",
                        help="Path to the extras metadata JSON",
                        action="store",
                        type=str)
    parser.add_argument("--mappings",
                        dest="MAPPINGS",
                        help="Path to the explicit plugin -> registry name mappings",
                        action="store",
                        type=str)
    parser.add_argument("--registry-snapshot",
                        dest="REGISTRY_SNAPSHOT",
                        help="JSON list (or object keyed by name) of registry names used instead of live probes",
                        action="store",
                        type=str)
    parser.add_argument("--lazyvim-version",
                        dest="LAZYVIM_VERSION",
                        help="LazyVim version recorded in the manifest",
                        action="store",
                        type=str)
    parser.add_argument("--lazyvim-commit",
                        dest="LAZYVIM_COMMIT",
                        help="LazyVim commit recorded in the manifest",
                        action="store",
                        type=str)
    parser.add_argument("--cache-root",
                        dest="CACHE_ROOT",
                        help="Directory for the content-addressed extraction cache",
                        action="store",
                        type=str)
    parser.add_argument("--mason-registry",
                        dest="MASON_REGISTRY",
                        help="Mason registry checkout used to add tool runtimes",
                        action="store",
                        type=str)
    parser.add_argument("--user-config",
                        dest="USER_CONFIG",
                        help="Directory with the user's own plugin specs",
                        action="store",
                        type=str)
    parser.add_argument("--no-user-plugins",
                        dest="INCLUDE_USER",
                        help="Do not merge user plugin specs",
                        action="store_false",
                        default=None)
    parser.add_argument("--remote-concurrency",
                        dest="REMOTE_CONCURRENCY",
                        help="Maximum concurrent remote ref listings (default: 6)",
                        action="store",
                        type=str)
    parser.add_argument("--prefetch-concurrency",
                        dest="PREFETCH_CONCURRENCY",
                        help="Maximum concurrent content fetches (default: 6)",
                        action="store",
                        type=str)
    parser.add_argument("--verify",
                        dest="VERIFY",
                        help="Rank suggestions against the live registry listing",
                        action="store_true",
                        default=None)
    parser.add_argument("--error-on-warnings",
                        dest="ERROR_ON_WARNINGS",
                        help="Exit with a non-zero status code if plugins remain unmapped.",
                        action="store_true",
                        default=None)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
