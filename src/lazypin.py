"""lazypin: extract LazyVim's plugin set, map it to nixpkgs and pin every plugin.

Entry point. The single place where pipeline failures become exit codes.
"""

import logging
import sys

from args import parse_args
from cli_config import build_config
from common.errors import LazypinError
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import ExitCodes
from pipeline import Pipeline


def main(argv=None):
    """Main function of the program."""
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    try:
        configure_logging(getattr(args, "LOG_LEVEL", None), getattr(args, "LOG_FILE", None))
    except LazypinError as exc:
        logger.error("%s", exc)
        sys.exit(exc.exit_code.value)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    config = build_config(args)
    logger.info("Extracting plugins from %s", config.lazyvim_root)

    try:
        ctx = Pipeline(config).run()
    except LazypinError as exc:
        logger.error("%s", exc)
        sys.exit(exc.exit_code.value)

    logger.info("Successfully extracted %d plugins", len(ctx.plugins))
    if config.error_on_warnings and ctx.unmapped > 0:
        logger.warning("%d plugins are unmapped; failing due to --error-on-warnings", ctx.unmapped)
        sys.exit(ExitCodes.EXIT_WARNINGS.value)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
