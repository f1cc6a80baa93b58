"""Logging utilities for the mirror Lambda handlers.

Structured JSON logging through AWS Lambda Powertools. The handler's logger
is also attached to the root logger so that the registry, scheduler and
transfer modules (which log through `logging.getLogger(__name__)`) share the
same format, Lambda context and job keys.
"""

import logging
from typing import Any, Dict, Optional, Union

from aibs_informatics_core.utils.logging import get_all_handlers
from aws_lambda_powertools.logging import Logger

from aibs_informatics_image_mirror.common.base import SERVICE_NAME, HandlerMixins


class LoggingMixins(HandlerMixins):
    """Mixin class providing a Powertools `Logger` as `log` / `logger`.

    Attributes:
        log: Alias for the logger property.
        logger: The AWS Lambda Powertools Logger instance.
    """

    @property
    def log(self) -> Logger:
        return self.logger

    @log.setter
    def log(self, value: Logger):
        self.logger = value

    @property
    def logger(self) -> Logger:
        """Get the Logger instance, creating one if needed.

        Returns:
            The configured Logger instance for this handler.
        """
        try:
            return self._logger
        except AttributeError:
            self.logger = self.get_logger(self.service_name())
        return self.logger

    @logger.setter
    def logger(self, value: Logger):
        self._logger = value

    @classmethod
    def get_logger(cls, service: Optional[str] = None, add_to_root: bool = False) -> Logger:
        return get_service_logger(service=service, add_to_root=add_to_root)

    def add_logger_to_root(self):
        """Route records of every other module through this handler's logger."""
        add_handler_to_logger(self.logger, None)

    def append_job_keys(self, **keys: Any) -> Dict[str, Any]:
        """Tag every record logged for the rest of the invocation.

        Chained invocations log to separate streams; the job keys (index,
        repository, list digest) are what ties their records back together.
        Keys whose value is None are skipped.

        Args:
            **keys: Key/value pairs to add to each structured record.

        Returns:
            The keys that were appended.
        """
        job_keys = {key: value for key, value in keys.items() if value is not None}
        if job_keys:
            self.logger.append_keys(**job_keys)
        return job_keys


def get_service_logger(
    service: Optional[str] = None, child: bool = False, add_to_root: bool = False
) -> Logger:
    """Create a service logger with optional root logger integration.

    Args:
        service (Optional[str]): The service name for the logger. Defaults to
            the image mirror service.
        child (bool): Whether to create a child logger.
        add_to_root (bool): Whether to add the logger handler to the root logger.

    Returns:
        A configured Logger instance for the service.
    """
    service_logger = Logger(service=service or SERVICE_NAME, child=child)
    if add_to_root:
        add_handler_to_logger(service_logger)
    return service_logger


def add_handler_to_logger(
    source_logger: Logger, target_logger: Union[str, logging.Logger, None] = None
):
    """Add a source logger's handler to a target logger.

    Adding the same handler twice is a no-op, so warm containers serving many
    links of a chain do not duplicate records.

    Args:
        source_logger (Logger): The Logger whose handler will be copied.
        target_logger (Union[str, logging.Logger, None]): Logger name, Logger
            instance, or None for the root logger.
    """
    handler = source_logger.registered_handler

    if target_logger is None or isinstance(target_logger, str):
        target_logger = logging.getLogger(target_logger)
        log_level = min(source_logger.log_level, target_logger.getEffectiveLevel())
        target_logger.setLevel(log_level)

    if handler not in get_all_handlers(target_logger):
        target_logger.addHandler(handler)
