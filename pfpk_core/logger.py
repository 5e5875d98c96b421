"""
pfpk_core.logger
----------------
JSON-lines logging for PFPK components.

Each record is serialised with json.dumps, so messages containing quotes or
newlines stay valid JSON. Fields passed through `extra=` (profile_id,
chain_ids, ...) are emitted as top-level keys next to the message.
"""

import logging, json, sys, time, os

# attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")
        self.converter = time.gmtime  # UTC

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def get_logger(name="pfpk", level=None, to_file=None):
    """
    Logger shared by all PFPK components.

    `level` defaults to PFPK_LOG_LEVEL and `to_file` to PFPK_LOG_FILE; both are
    only applied the first time a given logger name is configured.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(level or os.getenv("PFPK_LOG_LEVEL", "INFO").upper())
        formatter = JsonFormatter()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        to_file = to_file or os.getenv("PFPK_LOG_FILE")
        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    elif level is not None:
        logger.setLevel(level)

    return logger
