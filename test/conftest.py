import os
from unittest import mock

import pytest

# Variables read by MirrorConfig.from_env; cleared so a developer's shell never leaks into tests
MIRROR_ENV_VARS = (
    "SRC_REGISTRY",
    "GROUP_NAME",
    "DST_PREFIX",
    "CGR_USERNAME",
    "CGR_PASSWORD",
    "REPO_LIST_JSON",
    "REPO_LIST_CSV",
    "REPO_LIST_SSM_PARAM",
    "COPY_ALL_TAGS",
    "TAG_MAP_JSON",
    "MIRROR_DRY_RUN",
    "START_INDEX",
    "REGISTRY_TIMEOUT",
    "AWS_LAMBDA_FUNCTION_NAME",
)


@pytest.fixture(autouse=True)
def clear_mirror_env():
    with mock.patch.dict(os.environ):
        for key in MIRROR_ENV_VARS:
            os.environ.pop(key, None)
        yield


@pytest.fixture(scope="function")
def aws_credentials_fixture():
    """Set testing credentials for mocked AWS resources and
    avoid accidentally hitting anything live with boto3.
    """
    # Clear os.environ dict (will be restored after fixture is finished)
    with mock.patch.dict(os.environ, clear=True):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
        os.environ["AWS_DEFAULT_REGION"] = "us-west-2"
        os.environ["AWS_REGION"] = "us-west-2"
        yield
