import logging
import sys
from datetime import datetime, timezone
from typing import Iterable, Union

from pythonjsonlogger import jsonlogger

# Third-party loggers that are too chatty at INFO for a relay under load
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON log lines with a fixed envelope: `timestamp`, `level`, `name`, `message`
    plus the `service` static field. Timestamps come from the record itself,
    in UTC.
    """
    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()
        log_record['level'] = (log_record.get('level') or record.levelname).upper()


def setup_logging(
    level: Union[int, str] = logging.INFO,
    service_name: str = "chatr",
    quiet: Iterable[str] = NOISY_LOGGERS,
):
    """
    Route the root logger to stdout as JSON and cap the noisy libraries at WARNING.
    Safe to call more than once; previous root handlers are replaced.
    """
    if isinstance(level, str):
        level = level.upper()

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        CustomJsonFormatter(
            '%(timestamp)s %(level)s %(name)s %(message)s',
            json_ensure_ascii=False,
            static_fields={"service": service_name},
        )
    )
    root.addHandler(handler)
    root.setLevel(level)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


# Create a module-level logger for internal use
logger = logging.getLogger("chatr")
