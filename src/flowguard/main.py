"""Main module for flowguard."""

import logging
import os
import sys

from flowguard.cli import run
from flowguard.config.paths import get_paths


def setup_logging() -> None:
    """Configure logging to file for debugging."""
    paths = get_paths()
    paths.workspace_config.mkdir(parents=True, exist_ok=True)
    log_file = paths.debug_log

    # Set level from env var, default to INFO
    level = os.environ.get("FLOWGUARD_LOG_LEVEL", "INFO").upper()

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file, mode="a"),
        ],
    )
    logging.info("FlowGuard starting, logging to %s", log_file)


def main() -> None:
    """Entry point for the flowguard command."""
    sys.exit(run(configure_logging=setup_logging))


if __name__ == "__main__":
    main()
