"""Process entry point for the IndieWeb feed indexer.

Exits 0 on Ctrl-C and 1 when the service fails, so a supervisor restarts it
from the last saved cursor.
"""

import sys

from indieweb_indexer.logging_setup import get_logger
from indieweb_indexer.service import main as service_main

log = get_logger("main")


def main():
    try:
        service_main()
    except KeyboardInterrupt:
        log.info("service_interrupted")
        sys.exit(0)
    except Exception as e:
        log.error("service_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    main()
