""" This file configures python logging for the pytest framework
unit tests

Note: pytest must be invoked with this file in the working directory
E.G. py.test wallet
"""
import logging
import os.path
import sys

log_level = os.getenv("TEST_LOG_LEVEL", "INFO").upper()
log_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
assert log_level in log_levels, "{} is not a valid log level. Use one of: {}".format(
    log_level, ", ".join(log_levels)
)
# Erase all existing root handlers to ensure that the following basicConfig call isn't ignored
rootlog = logging.getLogger()
for h in rootlog.handlers[:]:
    rootlog.removeHandler(h)
    h.close()
logging.basicConfig(
    format="[%(asctime)s|%(name)s-%(funcName)s(%(lineno)d)|%(levelname)s]: %(message)s",
    level=log_level,
    stream=sys.stdout,
)
