"""
Logging setup for the scraper.

Messages carry bracketed context tags so that interleaved worker output in
``output.log`` can be followed per worker and per query:

    2025-01-01 10:00:00,000 [INFO] [Worker-0] [Search] [Query: آب]: Flow accept completed
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_FILENAME = "output.log"

# Tag order in the rendered prefix
_CONTEXT_TAGS = (
    ("worker_id", "[{}]"),
    ("component", "[{}]"),
    ("search_query", "[Query: {}]"),
    ("url", "[URL: {}]"),
)


def setup_logging(log_dir: Union[str, Path] = "files", level: Union[int, str] = logging.INFO) -> Path:
    """Log to <log_dir>/output.log and the console"""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler()
        ],
        force=True,
    )
    # aiohttp is noisy at DEBUG
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    return log_file


def format_context(context: Dict[str, Any]) -> str:
    parts = [template.format(context[key]) for key, template in _CONTEXT_TAGS if context.get(key)]
    return " ".join(parts)


class ScrapeLogAdapter(logging.LoggerAdapter):
    """LoggerAdapter that prefixes messages with worker/component/query/url tags"""

    def process(self, msg, kwargs):
        prefix = format_context(self.extra)
        if prefix:
            msg = f"{prefix}: {msg}"
        return msg, kwargs

    def bind(self, **context) -> "ScrapeLogAdapter":
        merged = dict(self.extra)
        merged.update({k: v for k, v in context.items() if v is not None})
        return ScrapeLogAdapter(self.logger, merged)


def get_logger(name: str, **context) -> ScrapeLogAdapter:
    return ScrapeLogAdapter(logging.getLogger(name), {k: v for k, v in context.items() if v is not None})
