import logging

# Per-message tracing of the stream, below DEBUG.
logging.DEBUG_STREAM = 9

logging.addLevelName(logging.DEBUG_STREAM, "DEBUG_STREAM")


def debug_stream(self, message, *args, **kws):
    # Yes, logger takes its '*args' as 'args'.
    if self.isEnabledFor(logging.DEBUG_STREAM):
        self._log(logging.DEBUG_STREAM, message, args, **kws)


logging.Logger.debug_stream = debug_stream

# Warnings are yellow
logging.addLevelName(logging.WARNING, "\033[1;43m%s\033[1;0m" %
                                      logging.getLevelName(logging.WARNING))
# Errors are red
logging.addLevelName(logging.ERROR, "\033[1;41m%s\033[1;0m" %
                                    logging.getLevelName(logging.ERROR))
# Debug is green
logging.addLevelName(logging.DEBUG, "\033[1;42m%s\033[1;0m" %
                                    logging.getLevelName(logging.DEBUG))
# Stream tracing is cyan
logging.addLevelName(logging.DEBUG_STREAM, "\033[1;46m%s\033[1;0m" %
                                           logging.getLevelName(logging.DEBUG_STREAM))
# Information messages are blue
logging.addLevelName(logging.INFO, "\033[1;44m%s\033[1;0m" %
                                   logging.getLevelName(logging.INFO))
# Critical messages are violet
logging.addLevelName(logging.CRITICAL, "\033[1;45m%s\033[1;0m" %
                                       logging.getLevelName(logging.CRITICAL))


log = logging.getLogger('p4control')
log.setLevel(logging.WARNING)

fmt = logging.Formatter('[%(levelname)20s] %(threadName)s %(funcName)s: %(message)s ')
handler = logging.StreamHandler()
handler.setFormatter(fmt)

log.addHandler(handler)


def set_log_level(level):
    """Sets the level of the ``p4control`` logger.

    Args:
        level (int or str): a :py:mod:`logging` level, e.g. ``logging.DEBUG`` or ``'INFO'``
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    log.setLevel(level)
