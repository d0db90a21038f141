import logging
import sys

from config import settings

LOG_LEVEL = settings.LOG_LEVEL.upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

# python-multipart logs every parsed part at DEBUG
logging.getLogger("multipart").setLevel(logging.WARNING)
logging.getLogger("python_multipart").setLevel(logging.WARNING)

def get_logger(name: str):
    return logging.getLogger(name)
