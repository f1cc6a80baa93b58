"""Invocation context shared by the mirror Lambda handlers."""

from typing import Optional

from aws_lambda_powertools.utilities.typing import LambdaContext

SERVICE_NAME = "image-mirror"

CONTEXT_ATTR = "_context"


class HandlerMixins:
    """Mixin class giving handlers access to the invocation they serve.

    The mirror continues its chain by re-invoking the function it runs in, so
    the function name carried by the Lambda context is the default target of
    every continuation.

    Attributes:
        context: The AWS Lambda context object for the current invocation.
    """

    @property
    def context(self) -> LambdaContext:
        """Get the Lambda context for the current invocation.

        Returns:
            The AWS Lambda context object.

        Raises:
            ValueError: If context has not been set.
        """
        if not hasattr(self, CONTEXT_ATTR):
            raise ValueError(f"Lambda context not set on {self.__class__.__name__}")
        return getattr(self, CONTEXT_ATTR)

    @context.setter
    def context(self, value: LambdaContext):
        """Set the Lambda context for the current invocation.

        Args:
            value (LambdaContext): The AWS Lambda context object to set.
        """
        setattr(self, CONTEXT_ATTR, value)

    @property
    def function_name(self) -> Optional[str]:
        """Name of the function serving this invocation.

        Returns:
            The function name, or None if the context does not carry one
            (e.g. a handler instantiated outside of Lambda).
        """
        return getattr(self.context, "_function_name", None) or None

    @classmethod
    def service_name(cls) -> str:
        """Get the service name used to tag logs and metrics.

        Every handler of this package reports under the same service so that
        all links of a mirror chain can be queried together.

        Returns:
            The service identifier.
        """
        return SERVICE_NAME
