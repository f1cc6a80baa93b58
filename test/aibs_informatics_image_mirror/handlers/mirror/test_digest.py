from test.aibs_informatics_image_mirror.fakes import ECR_HOST, FakeDestination, FakeRegistry

from pytest import fixture, mark, param, raises

from aibs_informatics_image_mirror.exceptions import SourceReadError
from aibs_informatics_image_mirror.handlers.mirror.digest import DigestSkipEngine, decide
from aibs_informatics_image_mirror.handlers.mirror.model import MirrorDecision

D1 = "sha256:" + "1" * 64
D2 = "sha256:" + "2" * 64


@mark.parametrize(
    "source_digest, destination_digest, expected",
    [
        param(D1, None, MirrorDecision.TRANSFER, id="missing at destination"),
        param(D1, D1, MirrorDecision.SKIP, id="same digest"),
        param(D1, D2, MirrorDecision.TRANSFER, id="different digest"),
        param(D1, D1.upper(), MirrorDecision.SKIP, id="case insensitive"),
        param(D1, f" {D1} ", MirrorDecision.SKIP, id="whitespace insensitive"),
        param(D1, "", MirrorDecision.TRANSFER, id="empty digest"),
    ],
)
def test__decide(source_digest, destination_digest, expected):
    assert decide(source_digest, destination_digest) == expected


@fixture
def source() -> FakeRegistry:
    return FakeRegistry("cgr.dev")


@fixture
def destination() -> FakeDestination:
    return FakeDestination(FakeRegistry(ECR_HOST))


def engine(source: FakeRegistry, destination: FakeDestination) -> DigestSkipEngine:
    return DigestSkipEngine(source, destination)  # type: ignore


def test__evaluate__same_digest_skips(source: FakeRegistry, destination: FakeDestination):
    digest = source.add_image("chainguard/nginx", "latest", b"layer")
    destination.registry.manifests[("mirror/nginx", "latest")] = source.manifests[
        ("chainguard/nginx", "latest")
    ]

    comparison = engine(source, destination).evaluate("chainguard/nginx", "mirror/nginx", "latest")

    assert comparison.decision == MirrorDecision.SKIP
    assert comparison.source_digest == digest
    assert comparison.destination_digest == digest


def test__evaluate__updated_source_transfers(source: FakeRegistry, destination: FakeDestination):
    destination.registry.add_image("mirror/nginx", "latest", b"old-layer")
    source.add_image("chainguard/nginx", "latest", b"new-layer")

    comparison = engine(source, destination).evaluate("chainguard/nginx", "mirror/nginx", "latest")

    assert comparison.decision == MirrorDecision.TRANSFER
    assert comparison.destination_digest != comparison.source_digest


def test__evaluate__destination_lookup_failure_transfers(
    source: FakeRegistry, destination: FakeDestination
):
    source.add_image("chainguard/nginx", "latest", b"layer")
    destination.lookup_fails = True

    comparison = engine(source, destination).evaluate("chainguard/nginx", "mirror/nginx", "latest")

    assert comparison.decision == MirrorDecision.TRANSFER
    assert comparison.destination_digest is None


def test__evaluate__source_failure_raises(source: FakeRegistry, destination: FakeDestination):
    with raises(SourceReadError):
        engine(source, destination).evaluate("chainguard/nginx", "mirror/nginx", "missing")
