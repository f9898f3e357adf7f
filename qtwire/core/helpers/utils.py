import logging
import os

DEBUG_ENV = "QTWIREDEBUG"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger. Setting the QTWIREDEBUG environment variable
    turns on debug output of the codec and framing layers whatever the
    requested level.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s] : %(message)s',
    )

    if os.getenv(DEBUG_ENV):
        for name in ("core.codec", "core.framing"):
            logging.getLogger(name).setLevel(logging.DEBUG)
