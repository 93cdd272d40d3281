import logging
import re
from urllib.parse import urlsplit, urlunsplit

EMBEDDED_URL = re.compile(r"https?://[^\s,]+", re.IGNORECASE)


class UrlRedactionFilter(logging.Filter):
    """Strip credentials and query strings from URLs attached to log records."""

    URL_KEYS = ("url", "href")
    TEXT_KEYS = ("reason", "error", "detail")

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.URL_KEYS:
            value = getattr(record, key, None)
            if isinstance(value, str):
                setattr(record, key, redact_url(value))
        for key in self.TEXT_KEYS:
            value = getattr(record, key, None)
            if isinstance(value, str):
                setattr(record, key, redact_text(value))
        return True


def redact_url(url: str) -> str:
    try:
        parts = urlsplit(url)
        netloc = parts.hostname or ""
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
    except ValueError:
        return "[REDACTED]"
    query = "[REDACTED]" if parts.query else ""
    return urlunsplit((parts.scheme, netloc, parts.path, query, ""))


def redact_text(text: str) -> str:
    return EMBEDDED_URL.sub(lambda match: redact_url(match.group(0)), text)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # Handler-level so records propagated from module loggers are filtered too.
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, UrlRedactionFilter) for f in handler.filters):
            handler.addFilter(UrlRedactionFilter())
