import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_level=logging.INFO, log_file=None):
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # urllib3 logs every connection at DEBUG; one line per poll is enough
    logging.getLogger('urllib3').setLevel(max(log_level, logging.INFO))


def get_logger(name):
    return logging.getLogger(name)
