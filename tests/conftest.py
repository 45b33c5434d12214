"""
Shared fixtures for the pipeline tests.

Pure topology tests use stand-in collaborators; only the stack tests build
real CDK constructs.
"""

import pytest

from pipeline_cdk.config import PipelineConfig


class StandIn:
    """Placeholder collaborator handle with a readable repr."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"StandIn({self.name})"


SOURCE_SETTINGS = dict(
    github_owner="example-org",
    github_repo="example-app",
    github_branch="main",
    secret_name="github/token",
    secret_json_key="github_token",
)


@pytest.fixture
def source_config() -> PipelineConfig:
    return PipelineConfig(**SOURCE_SETTINGS)


@pytest.fixture
def docker_config() -> PipelineConfig:
    return PipelineConfig(
        **SOURCE_SETTINGS,
        ecr_repository=StandIn("ecr_repository"),
        artifact_bucket=StandIn("artifact_bucket"),
        region="us-east-1",
    )


@pytest.fixture
def full_settings() -> dict:
    return dict(
        **SOURCE_SETTINGS,
        ecr_repository=StandIn("ecr_repository"),
        artifact_bucket=StandIn("artifact_bucket"),
        region="us-east-1",
        fargate_service_test=StandIn("fargate_service_test"),
        fargate_service_prod=StandIn("fargate_service_prod"),
        green_target_group=StandIn("green_target_group"),
        green_listener=StandIn("green_listener"),
        notification_email="alerts@example.com",
    )


@pytest.fixture
def full_config(full_settings) -> PipelineConfig:
    return PipelineConfig(**full_settings)
