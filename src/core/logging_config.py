import logging
import sys

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = record.created
        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname
        log_record["module"] = record.module
        log_record["lineno"] = record.lineno


def setup_logging(log_level_str: str = "INFO") -> None:
    """
    Configures structured JSON logging on the root logger.
    Safe to call more than once: the JSON handler is only installed the first time.
    """
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    already_configured = any(
        isinstance(h, logging.StreamHandler) and isinstance(h.formatter, CustomJsonFormatter)
        for h in root_logger.handlers
    )
    if already_configured:
        root_logger.debug("Structured JSON logging already configured")
        return

    log_handler = logging.StreamHandler(sys.stdout)
    log_handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    root_logger.addHandler(log_handler)
    root_logger.info("Structured JSON logging configured with level: %s", logging.getLevelName(log_level))
