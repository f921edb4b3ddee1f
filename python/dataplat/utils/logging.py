"""
An extra log level for tracing low-level activity, such as each record file read or written by the
file-based database.
"""
import logging

BLAB = logging.DEBUG - 1
logging.addLevelName(BLAB, "BLAB")

def blab(log, msg, *args, **kwargs):
    """
    log a message at the BLAB level, below DEBUG.  Such messages are only recorded when a logger's
    level is explicitly set to BLAB.
    """
    log.log(BLAB, msg, *args, **kwargs)
