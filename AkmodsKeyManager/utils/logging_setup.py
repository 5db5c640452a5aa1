"""
Logging configuration for the entry points
Library modules only emit records, handlers are set up here
"""

import logging


LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def log_handler(log_file=None):
    """
    Handler writing to @log_file
    Directories are never created: when the file cannot be opened the records
    are dropped. The helper's stderr is read by its caller as the error
    message and must stay clean.
    """
    if log_file is None:
        return logging.NullHandler()
    try:
        return logging.FileHandler(log_file)
    except OSError:
        return logging.NullHandler()


def configure_logging(log_file=None, level=logging.DEBUG):
    """Send log records to @log_file, or nowhere"""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[log_handler(log_file)],
        force=True
    )
