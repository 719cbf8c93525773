"""Run one poll and print its JSON summary, for cron-style triggers."""

import asyncio
import json
import sys

from .config.settings import load_settings
from .utils.exceptions import ConfigurationError
from .processing.pipeline import PollResult, run_poll
from .utils.logging import configure_application_logging


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(json.dumps(PollResult(ok=False, error=e.user_message).to_dict()))
        return 1

    configure_application_logging(
        log_level=settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
    )
    result = asyncio.run(run_poll(settings))
    print(json.dumps(result.to_dict(), ensure_ascii=False))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
