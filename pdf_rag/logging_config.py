# =============================================================================
# Logging Setup
# =============================================================================
# One format for the API process and the Celery worker, so log lines from
# both can be grepped together by job id:
#
#   2026-10-19 08:00:00,123 [INFO] pdf_rag.workers.pipeline: [job-id] ...
#
# Modules never configure logging themselves; they only do
# `logger = logging.getLogger(__name__)`.
# =============================================================================

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "chromadb.telemetry", "docling")


def configure_logging(level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
