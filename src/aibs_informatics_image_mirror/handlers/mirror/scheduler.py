from datetime import datetime
from typing import TYPE_CHECKING, Optional

from aibs_informatics_core.utils.logging import get_logger
from botocore.exceptions import BotoCoreError, ClientError

from aibs_informatics_image_mirror.config import MirrorConfig
from aibs_informatics_image_mirror.exceptions import (
    ChainDispatchError,
    ConfigurationError,
    DiscoveryError,
    ImageMirrorError,
)
from aibs_informatics_image_mirror.handlers.mirror.model import (
    MirrorJobRequest,
    MirrorJobResponse,
    MirrorMode,
    RepositoryMirrorResult,
)
from aibs_informatics_image_mirror.handlers.mirror.orchestrator import MirrorOrchestrator
from aibs_informatics_image_mirror.handlers.mirror.repositories import (
    RepositoryListProvider,
    compute_list_digest,
)

if TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_lambda import LambdaClient
else:
    LambdaClient = object

logger = get_logger(__name__)


class LambdaSelfInvoker:
    """Dispatches a job descriptor to a fresh, asynchronous invocation of a Lambda function.

    Args:
        function_name (Optional[str]): Function to invoke. Usually the running function.
        lambda_client (LambdaClient): Lambda client used for the invoke call.
    """

    def __init__(self, function_name: Optional[str], lambda_client: LambdaClient):
        self.function_name = function_name
        self.lambda_client = lambda_client

    def dispatch(self, request: MirrorJobRequest):
        """Fire and forget: the outcome of the continuation is never observed.

        Args:
            request (MirrorJobRequest): Job descriptor sent as the invocation payload.

        Raises:
            ConfigurationError: If no function name is known.
            ChainDispatchError: If the invoke call fails.
        """
        if not self.function_name:
            raise ConfigurationError("AWS_LAMBDA_FUNCTION_NAME not set")
        try:
            self.lambda_client.invoke(
                FunctionName=self.function_name,
                InvocationType="Event",
                Payload=request.to_json().encode(),
            )
        except (ClientError, BotoCoreError) as e:
            raise ChainDispatchError(
                f"invoke {self.function_name} for index={request.index}: {e}"
            ) from e


class ChainScheduler:
    """Runs one unit of a sweep and decides whether the sweep continues.

    An explicit `repo` is mirrored once and never chained. Otherwise the
    repository at `index` is mirrored and, on success, the next index is
    dispatched to a new invocation until the list is exhausted. Failures
    propagate and stop the chain at the failing index.

    Args:
        config (MirrorConfig): Mirror configuration.
        repositories (RepositoryListProvider): Resolves the ordered repository list.
        orchestrator (MirrorOrchestrator): Mirrors a single repository.
        invoker (LambdaSelfInvoker): Dispatches the continuation.
    """

    def __init__(
        self,
        config: MirrorConfig,
        repositories: RepositoryListProvider,
        orchestrator: MirrorOrchestrator,
        invoker: LambdaSelfInvoker,
    ):
        self.config = config
        self.repositories = repositories
        self.orchestrator = orchestrator
        self.invoker = invoker

    def run(self, request: MirrorJobRequest) -> MirrorJobResponse:
        """Process one link of the chain.

        Args:
            request (MirrorJobRequest): Job descriptor of this invocation.

        Returns:
            Summary of the repository processed (if any) and the next index queued.

        Raises:
            DiscoveryError: If the repository list cannot be resolved or differs
                from the list the chain was started with.
            ImageMirrorError: If mirroring the repository or queueing the next
                index failed. No continuation is dispatched in that case.
        """
        start = datetime.now()

        explicit_repo = request.explicit_repo
        if explicit_repo:
            logger.info(f"Processing explicit repo: {explicit_repo}")
            result = self.orchestrator.mirror(explicit_repo)
            message = f"Done explicit repo {explicit_repo} in {datetime.now() - start}"
            logger.info(message)
            return self._build_response(MirrorMode.SINGLE, message, result=result)

        repositories = self.repositories.resolve()
        total = len(repositories)
        if not repositories:
            logger.info("No repositories to process; exiting.")
            return MirrorJobResponse(
                mode=MirrorMode.INDEXED, message="No repositories to process", total=0
            )

        list_digest = compute_list_digest(repositories)
        if request.list_digest and request.list_digest != list_digest:
            raise DiscoveryError(
                "Repository list changed since the sweep started "
                f"(expected {request.list_digest}, resolved {list_digest}); "
                f"not processing index {request.index}"
            )

        index = self.config.start_index if request.index is None else request.index
        index = max(index, 0)
        if index >= total:
            message = f"Index {index} >= repo count {total}; nothing to do."
            logger.info(message)
            return MirrorJobResponse(
                mode=MirrorMode.INDEXED, message=message, total=total, index=index
            )

        current = repositories[index]
        logger.info(f"Processing repo {index + 1}/{total}: {current}")
        try:
            result = self.orchestrator.mirror(current)
        except ImageMirrorError:
            logger.error(f"Mirroring {current} failed; chain stops at index={index}")
            raise

        next_index = index + 1
        if next_index < total:
            self.invoker.dispatch(MirrorJobRequest(index=next_index, list_digest=list_digest))
            message = f"Queued next index={next_index} (elapsed {datetime.now() - start})"
            logger.info(message)
            return self._build_response(
                MirrorMode.INDEXED,
                message,
                result=result,
                index=index,
                total=total,
                next_index=next_index,
            )

        message = f"Completed all {total} repos (elapsed {datetime.now() - start})"
        logger.info(message)
        return self._build_response(
            MirrorMode.INDEXED, message, result=result, index=index, total=total, complete=True
        )

    @staticmethod
    def _build_response(
        mode: MirrorMode, message: str, result: RepositoryMirrorResult, **kwargs
    ) -> MirrorJobResponse:
        return MirrorJobResponse(
            mode=mode,
            message=message,
            repository=result.source_repository,
            destination_repository=result.destination_repository,
            tags_considered=result.tags_considered,
            tags_transferred=result.tags_transferred,
            tags_skipped=result.tags_skipped,
            dry_run=result.dry_run,
            **kwargs,
        )
