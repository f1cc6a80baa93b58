import json
from test.base import AwsBaseTest
from typing import List, Optional, Set
from unittest import mock

import boto3
from botocore.stub import ANY

from aibs_informatics_image_mirror.config import MirrorConfig
from aibs_informatics_image_mirror.exceptions import (
    ChainDispatchError,
    ConfigurationError,
    DiscoveryError,
    TransferError,
)
from aibs_informatics_image_mirror.handlers.mirror.model import (
    MirrorDecision,
    MirrorJobRequest,
    MirrorMode,
    RepositoryMirrorResult,
    TagMirrorResult,
)
from aibs_informatics_image_mirror.handlers.mirror.repositories import (
    RepositoryListProvider,
    compute_list_digest,
)
from aibs_informatics_image_mirror.handlers.mirror.scheduler import (
    ChainScheduler,
    LambdaSelfInvoker,
)

REPOSITORIES = ["cgr.dev/x/a", "cgr.dev/x/b", "cgr.dev/x/c"]


class RecordingOrchestrator:
    def __init__(self, config: MirrorConfig, failing: Optional[Set[str]] = None):
        self.config = config
        self.failing = failing or set()
        self.mirrored: List[str] = []

    def mirror(self, source_repository: str) -> RepositoryMirrorResult:
        self.mirrored.append(source_repository)
        if source_repository in self.failing:
            raise TransferError(f"copy {source_repository} failed")
        return RepositoryMirrorResult(
            source_repository=source_repository,
            destination_repository=self.config.destination_repository_for(source_repository),
            tags=[TagMirrorResult("latest", MirrorDecision.TRANSFER, "sha256:abc")],
            dry_run=self.config.dry_run,
        )


class RecordingInvoker:
    def __init__(self):
        self.dispatched: List[MirrorJobRequest] = []

    def dispatch(self, request: MirrorJobRequest):
        self.dispatched.append(request)


class ChainSchedulerTests(AwsBaseTest):
    def setUp(self) -> None:
        super().setUp()
        self.invoker = RecordingInvoker()

    def scheduler(self, config: Optional[MirrorConfig] = None, failing=None) -> ChainScheduler:
        config = config or MirrorConfig(repo_list_json=json.dumps(REPOSITORIES))
        self.orchestrator = RecordingOrchestrator(config, failing)
        return ChainScheduler(
            config,
            RepositoryListProvider(config),
            self.orchestrator,  # type: ignore
            self.invoker,  # type: ignore
        )

    def run_chain(self, scheduler: ChainScheduler, request: MirrorJobRequest):
        """Drive the chain synchronously, feeding each dispatched job back in."""
        responses = [scheduler.run(request)]
        while len(self.invoker.dispatched) >= len(responses):
            responses.append(scheduler.run(self.invoker.dispatched[len(responses) - 1]))
        return responses

    def test__run__chains_through_every_repository_once(self):
        responses = self.run_chain(self.scheduler(), MirrorJobRequest())

        self.assertListEqual(self.orchestrator.mirrored, REPOSITORIES)
        self.assertEqual(len(self.invoker.dispatched), len(REPOSITORIES) - 1)
        self.assertListEqual([_.index for _ in self.invoker.dispatched], [1, 2])
        self.assertListEqual([_.next_index for _ in responses], [1, 2, None])
        self.assertTrue(responses[-1].complete)
        self.assertEqual(responses[-1].message.split(" (")[0], "Completed all 3 repos")
        self.assertEqual(responses[0].tags_transferred, 1)

    def test__run__continuation_carries_list_digest(self):
        self.scheduler().run(MirrorJobRequest(index=0))
        (continuation,) = self.invoker.dispatched
        self.assertEqual(continuation.list_digest, compute_list_digest(REPOSITORIES))
        self.assertIsNone(continuation.repo)

    def test__run__negative_index_is_clamped_to_zero(self):
        response = self.scheduler().run(MirrorJobRequest(index=-5))
        self.assertEqual(response.index, 0)
        self.assertListEqual(self.orchestrator.mirrored, [REPOSITORIES[0]])

    def test__run__index_past_end_is_noop(self):
        for index in (3, 10):
            response = self.scheduler().run(MirrorJobRequest(index=index))
            self.assertEqual(response.mode, MirrorMode.INDEXED)
            self.assertEqual(response.total, 3)
            self.assertFalse(response.complete)
        self.assertListEqual(self.orchestrator.mirrored, [])
        self.assertListEqual(self.invoker.dispatched, [])

    def test__run__missing_index_uses_configured_start_index(self):
        config = MirrorConfig(repo_list_json=json.dumps(REPOSITORIES), start_index=2)
        response = self.scheduler(config).run(MirrorJobRequest())
        self.assertEqual(response.index, 2)
        self.assertTrue(response.complete)
        self.assertListEqual(self.orchestrator.mirrored, [REPOSITORIES[2]])
        self.assertListEqual(self.invoker.dispatched, [])

    def test__run__explicit_repo_never_chains(self):
        config = MirrorConfig(repo_list_ssm_param="/unreachable", destination_prefix="m")
        response = self.scheduler(config).run(
            MirrorJobRequest(index=0, repo=" cgr.dev/x/explicit ")
        )
        self.assertEqual(response.mode, MirrorMode.SINGLE)
        self.assertEqual(response.destination_repository, "m/x/explicit")
        self.assertListEqual(self.orchestrator.mirrored, ["cgr.dev/x/explicit"])
        self.assertListEqual(self.invoker.dispatched, [])

    def test__run__blank_repo_falls_back_to_indexed_mode(self):
        response = self.scheduler().run(MirrorJobRequest(index=2, repo="  "))
        self.assertEqual(response.mode, MirrorMode.INDEXED)
        self.assertListEqual(self.orchestrator.mirrored, [REPOSITORIES[2]])

    def test__run__empty_list_does_nothing(self):
        response = self.scheduler(MirrorConfig(repo_list_json="[]")).run(MirrorJobRequest())
        self.assertEqual(response.total, 0)
        self.assertEqual(response.message, "No repositories to process")
        self.assertListEqual(self.orchestrator.mirrored, [])

    def test__run__failure_stops_the_chain(self):
        config = MirrorConfig(repo_list_json=json.dumps(REPOSITORIES))
        scheduler = self.scheduler(config, failing={REPOSITORIES[1]})

        with self.assertRaises(TransferError):
            self.run_chain(scheduler, MirrorJobRequest())

        self.assertListEqual(self.orchestrator.mirrored, REPOSITORIES[:2])
        self.assertListEqual([_.index for _ in self.invoker.dispatched], [1])

    def test__run__changed_list_stops_the_chain(self):
        request = MirrorJobRequest(index=1, list_digest=compute_list_digest(["something", "else"]))
        with self.assertRaises(DiscoveryError):
            self.scheduler().run(request)
        self.assertListEqual(self.orchestrator.mirrored, [])

    def test__run__dry_run_still_chains(self):
        config = MirrorConfig(repo_list_json=json.dumps(REPOSITORIES), dry_run=True)
        response = self.scheduler(config).run(MirrorJobRequest())
        self.assertTrue(response.dry_run)
        self.assertListEqual([_.index for _ in self.invoker.dispatched], [1])


class LambdaSelfInvokerTests(AwsBaseTest):
    def setUp(self) -> None:
        super().setUp()
        self.set_aws_credentials()
        self.lambda_client = boto3.client("lambda", region_name=self.DEFAULT_REGION)
        self.stubber = self.stub(self.lambda_client)

    def test__dispatch__invokes_asynchronously_with_job_payload(self):
        self.stubber.add_response(
            "invoke",
            {"StatusCode": 202},
            {"FunctionName": "image-mirror", "InvocationType": "Event", "Payload": ANY},
        )
        invoker = LambdaSelfInvoker("image-mirror", self.lambda_client)
        with self.stubber:
            invoker.dispatch(MirrorJobRequest(index=4, list_digest="abc"))
        self.stubber.assert_no_pending_responses()

    def test__dispatch__payload_is_job_descriptor(self):
        lambda_client = mock.MagicMock()
        LambdaSelfInvoker("image-mirror", lambda_client).dispatch(MirrorJobRequest(index=4))

        payload = json.loads(lambda_client.invoke.call_args.kwargs["Payload"])
        self.assertEqual(payload["index"], 4)
        self.assertEqual(MirrorJobRequest.from_dict(payload), MirrorJobRequest(index=4))

    def test__dispatch__missing_function_name_raises(self):
        with self.assertRaises(ConfigurationError):
            LambdaSelfInvoker(None, self.lambda_client).dispatch(MirrorJobRequest(index=1))

    def test__dispatch__invoke_failure_raises(self):
        self.stubber.add_client_error("invoke", "TooManyRequestsException")
        invoker = LambdaSelfInvoker("image-mirror", self.lambda_client)
        with self.stubber:
            with self.assertRaises(ChainDispatchError):
                invoker.dispatch(MirrorJobRequest(index=1))
