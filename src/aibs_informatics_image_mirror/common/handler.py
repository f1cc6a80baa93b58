from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

from aibs_informatics_core.executors.base import BaseExecutor
from aibs_informatics_core.models.base import ModelProtocol
from aibs_informatics_core.utils.json import JSON
from aws_lambda_powertools.utilities.typing import LambdaContext

from aibs_informatics_image_mirror.common.base import HandlerMixins
from aibs_informatics_image_mirror.common.logging import LoggingMixins
from aibs_informatics_image_mirror.common.metrics import MetricsMixins

LambdaEvent = Union[JSON]  # type: ignore # https://github.com/python/mypy/issues/7866
LambdaHandlerType = Callable[[LambdaEvent, LambdaContext], Optional[JSON]]

REQUEST = TypeVar("REQUEST", bound=ModelProtocol)
RESPONSE = TypeVar("RESPONSE", bound=ModelProtocol)


@dataclass  # type: ignore[misc] # mypy #5374
class LambdaHandler(
    LoggingMixins,
    MetricsMixins,
    HandlerMixins,
    BaseExecutor[REQUEST, RESPONSE],
    Generic[REQUEST, RESPONSE],
):
    """Base class for strongly-typed AWS Lambda handlers.

    Subclasses implement `handle`, receiving a deserialized REQUEST and
    returning a RESPONSE (both following `ModelProtocol`). The Lambda entry
    point is produced by `get_handler`, which takes care of structured
    logging, metrics flushing and (de)serialization.

    Example:
        ```python
        class MyHandler(LambdaHandler[MyRequest, MyResponse]):
            def handle(self, request: MyRequest) -> MyResponse:
                return MyResponse(message=f"Hello, {request.name}!")

        handler = MyHandler.get_handler()
        ```
    """

    def __post_init__(self):
        self.context = LambdaContext()
        super().__post_init__()

    @classmethod
    def get_handler(cls, *args, **kwargs) -> LambdaHandlerType:
        """Create the Lambda entry point for this handler class.

        The returned function:
        - injects the Lambda context into the structured logger, dropping keys
          appended by a previous invocation of the same container
        - instantiates the handler class with `*args` / `**kwargs`
        - deserializes the event, calls `handle` and serializes the response
        - flushes the metrics recorded during the invocation

        Returns:
            A callable suitable as an AWS Lambda handler.
        """

        logger = cls.get_logger(service=cls.service_name(), add_to_root=False)
        metrics = cls.get_metrics(service=cls.service_name())

        @metrics.log_metrics
        @logger.inject_lambda_context(log_event=True, clear_state=True)
        def handler(event: LambdaEvent, context: LambdaContext) -> Optional[JSON]:
            lambda_handler = cls(*args, **kwargs)  # type: ignore[call-arg]
            logger.info(f"Instantiated {lambda_handler}.")
            lambda_handler.log = logger
            lambda_handler.metrics = metrics
            lambda_handler.context = context
            lambda_handler.add_logger_to_root()

            lambda_handler.log.info(f"Deserializing event: {event}")

            request = lambda_handler.deserialize_request(event)

            lambda_handler.log.info("Event successfully deserialized. Calling handler...")
            response = lambda_handler.handle(request=request)

            lambda_handler.log.info(
                f"Handler completed and returned following response: {response}"
            )
            if response:
                lambda_handler.log.info("Serializing response")
                return lambda_handler.serialize_response(response)

            return None

        return handler

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"request: {self.get_request_cls()}, "
            f"response: {self.get_response_cls()}"
            ")"
        )
