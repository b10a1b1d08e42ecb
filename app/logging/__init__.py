"""Structured logging helpers.

Every module obtains its logger through ``get_logger(__name__, component=...)``
and emits records with a dotted ``event`` name in ``extra``, e.g.::

    logger.info("Transition applied", extra={"event": "job.transition.applied"})
"""

import logging
from typing import Optional, Union


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges the component field with per-call extras.

    Per-call extras take precedence over the adapter's own fields.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str, component: Optional[str] = None) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Return a logger, wrapped to stamp ``component`` when one is given.

    Example:
        >>> logger = get_logger(__name__, component="dispatcher")
        >>> logger.info("Dispatch started", extra={"event": "dispatch.started"})
    """
    logger = logging.getLogger(name)
    if component:
        return ComponentLoggerAdapter(logger, {"component": component})
    return logger
