"""
Logging Configuration
Single place where the process-wide logging format is set up
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)

    # uvicorn's access log duplicates the request middleware output
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
