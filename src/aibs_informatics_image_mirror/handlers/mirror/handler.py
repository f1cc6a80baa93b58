"""Lambda entry point of the image mirror.

Each invocation mirrors one repository and, when more remain, re-invokes the
same function asynchronously with the next index. See `ChainScheduler`.
"""

from dataclasses import dataclass
from datetime import datetime

import boto3
import marshmallow as mm
from aibs_informatics_aws_utils.core import get_region

from aibs_informatics_image_mirror.common.handler import LambdaEvent, LambdaHandler
from aibs_informatics_image_mirror.config import MirrorConfig
from aibs_informatics_image_mirror.exceptions import ImageMirrorError
from aibs_informatics_image_mirror.handlers.mirror.destination import ECRDestination
from aibs_informatics_image_mirror.handlers.mirror.model import (
    MirrorJobRequest,
    MirrorJobResponse,
)
from aibs_informatics_image_mirror.handlers.mirror.orchestrator import MirrorOrchestrator
from aibs_informatics_image_mirror.handlers.mirror.repositories import RepositoryListProvider
from aibs_informatics_image_mirror.handlers.mirror.scheduler import (
    ChainScheduler,
    LambdaSelfInvoker,
)
from aibs_informatics_image_mirror.registry.auth import CredentialResolver

JOB_FIELDS = ("index", "repo", "list_digest")
METRIC_PREFIX = "MirrorPass"


@dataclass
class MirrorChainHandler(LambdaHandler[MirrorJobRequest, MirrorJobResponse]):
    """Mirrors one repository per invocation and chains to the next one."""

    @classmethod
    def deserialize_request(cls, event: LambdaEvent) -> MirrorJobRequest:
        """Parse the job descriptor leniently.

        Scheduled triggers send payloads that are empty or not job descriptors
        at all; those start at the configured start index.
        """
        if not isinstance(event, dict) or not event:
            return MirrorJobRequest()
        job_fields = {key: event[key] for key in JOB_FIELDS if key in event}
        try:
            return MirrorJobRequest.from_dict(job_fields)
        except mm.ValidationError as e:
            cls.get_logger(cls.service_name()).warning(
                f"Event parse failed ({e}); defaulting to start index"
            )
            return MirrorJobRequest()

    def handle(self, request: MirrorJobRequest) -> MirrorJobResponse:
        """Run one link of the mirror chain and record its metrics.

        Args:
            request (MirrorJobRequest): Job descriptor of this invocation.

        Returns:
            Summary of the invocation.
        """
        start = datetime.now()
        self.append_job_keys(
            job_index=request.index,
            job_repo=request.explicit_repo,
            job_list_digest=request.list_digest,
        )
        config = MirrorConfig.from_env()
        scheduler = self.build_scheduler(config)
        try:
            response = scheduler.run(request)
        except ImageMirrorError:
            self.metrics.add_failure_metric(METRIC_PREFIX)
            raise
        self.metrics.add_success_metric(METRIC_PREFIX)
        self.metrics.add_count_metric("TagsConsidered", response.tags_considered)
        self.metrics.add_count_metric("TagsTransferred", response.tags_transferred)
        self.metrics.add_count_metric("TagsSkipped", response.tags_skipped)
        self.metrics.add_duration_metric(start=start, name=METRIC_PREFIX)
        return response

    def build_scheduler(self, config: MirrorConfig) -> ChainScheduler:
        """Wire the scheduler with AWS clients for the current region.

        Continuations target the configured function name, falling back to
        the function serving this invocation.
        """
        region = get_region()
        ecr_client = boto3.client("ecr", region_name=region)
        orchestrator = MirrorOrchestrator(
            config,
            credentials=CredentialResolver(config),
            destination=ECRDestination(ecr_client, scan_on_push=config.scan_on_push),
        )
        invoker = LambdaSelfInvoker(
            config.function_name or self.function_name,
            boto3.client("lambda", region_name=region),
        )
        return ChainScheduler(config, RepositoryListProvider(config), orchestrator, invoker)


handler = MirrorChainHandler.get_handler()
