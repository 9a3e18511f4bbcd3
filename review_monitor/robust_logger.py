import logging
import os
from datetime import datetime

from review_monitor.config import LOGGING_CONFIG


def setup_logger(name='review_monitor', config=None):
    config = config or LOGGING_CONFIG
    log_level = getattr(logging, config['log_level'].upper(), logging.INFO)

    # basicConfig is a no-op once root is configured, so only open a log file when it will be used
    root = logging.getLogger()
    if root.handlers:
        return logging.getLogger(name)

    handlers = []
    if config['log_to_file']:
        log_dir = config['log_dir']
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{name}_{datetime.now().strftime('%Y%m%d')}.log")
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    if config['log_to_console']:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=log_level,
        format=config.get('format', '%(asctime)s - %(levelname)s - %(message)s'),
        handlers=handlers
    )
    return logging.getLogger(name)
