import logging
import sys
import warnings

from aliasstack import config

from .format import AddFormattedAttributes, CliFormatter, DefaultFormatter

default_log_levels = {
    "boto3": logging.INFO,
    "botocore": logging.ERROR,
    "moto": logging.WARNING,
    "s3transfer": logging.INFO,
    "urllib3": logging.WARNING,
}

trace_log_levels = {
    "boto3": logging.DEBUG,
    "botocore": logging.DEBUG,
}


def get_log_level_from_config():
    # ALIAS_LOG takes precedence over DEBUG
    if config.ALIAS_LOG:
        log_level = str(config.ALIAS_LOG).upper()
        if config.is_trace_logging_enabled():
            log_level = "DEBUG"
        if log_level == "WARN":
            log_level = "WARNING"
        return logging._nameToLevel[log_level]

    return logging.DEBUG if config.DEBUG else logging.INFO


def create_default_handler(log_level: int, formatter: logging.Formatter = None):
    log_handler = logging.StreamHandler(stream=sys.stderr)
    log_handler.setLevel(log_level)
    log_handler.setFormatter(formatter or DefaultFormatter())
    log_handler.addFilter(AddFormattedAttributes())
    return log_handler


def setup_logging_for_cli(log_level=logging.INFO):
    logging.basicConfig(level=log_level, handlers=[create_default_handler(log_level, CliFormatter())])

    logging.root.setLevel(log_level)
    logging.getLogger("aliasstack").setLevel(log_level)
    for logger, level in default_log_levels.items():
        logging.getLogger(logger).setLevel(level)


def setup_logging(log_level=logging.INFO) -> None:
    """
    Configures the python logging environment for aliasstack.

    :param log_level: the optional log level.
    """
    log_handler = create_default_handler(log_level)

    # replace any existing handlers
    logging.basicConfig(level=log_level, handlers=[log_handler], force=True)

    # disable some logs and warnings
    warnings.filterwarnings("ignore")
    logging.captureWarnings(True)

    logging.root.setLevel(log_level)
    logging.getLogger("aliasstack").setLevel(log_level)
    for logger, level in default_log_levels.items():
        logging.getLogger(logger).setLevel(level)

    if config.is_trace_logging_enabled():
        for name, level in trace_log_levels.items():
            logging.getLogger(name).setLevel(level)
