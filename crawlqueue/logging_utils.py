import json
import logging
import time

# attributes passed through ``extra=`` that end up in the output
EXTRA_FIELDS = ("request_id", "job_id", "event", "url")

def _extras(record: logging.LogRecord) -> dict:
    return {k: getattr(record, k) for k in EXTRA_FIELDS if getattr(record, k, None) is not None}

class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        base.update(_extras(record))
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False, default=str)

class TextFormatter(logging.Formatter):
    """One readable line per record for local runs: ``ts LEVEL logger msg k=v ...``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%H:%M:%S", time.localtime(record.created))
        line = f"{ts} {record.levelname:<7} {record.name:<8} {record.getMessage()}"
        extras = " ".join(f"{k}={v}" for k, v in _extras(record).items())
        if extras:
            line = f"{line} [{extras}]"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    handler.setFormatter(TextFormatter() if fmt == "text" else JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
