import logging

import pytest


@pytest.fixture(autouse=True)
def reset_orchestr8r_logging():
    """Drop handlers bound to a previous test's captured streams."""
    yield
    logger = logging.getLogger("orchestr8r")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
