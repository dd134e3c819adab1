import logging

import pytest


@pytest.fixture(autouse=True)
def reset_spotcanvas_logger():
    yield
    logger = logging.getLogger("spotcanvas")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
