#!/usr/bin/env python3
"""
AWS CDK Python application for the container CI/CD pipeline

This application deploys one version of the pipeline:
- Version 1: GitHub source and unit tests
- Version 2: + Docker image build pushed to ECR
- Version 3: + Fargate test deployment, manual approval, blue/green
  production deployment, build dashboard and failure alerts

The version is selected with the `pipeline_version` context value or the
PIPELINE_VERSION environment variable.
"""

import logging
import os

import aws_cdk as cdk
from aws_cdk import Environment, Tags

from pipeline_cdk.config import PipelineConfig, StackVersion, TimeUnit, TrafficShift
from pipeline_cdk.ecs_stack import EcsStack
from pipeline_cdk.pipeline_stack import PipelineCdkStack
from pipeline_cdk.storage_stack import StorageStack

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main() -> None:
    """Main application entry point."""

    app = cdk.App()

    version = StackVersion(
        int(app.node.try_get_context("pipeline_version") or os.environ.get("PIPELINE_VERSION", "3"))
    )
    project_name = os.environ.get("PROJECT_NAME", "cicd-pipeline")

    # Region is passed to the build explicitly instead of read inside the stacks
    region = os.environ.get("CDK_DEFAULT_REGION", "us-east-1")
    env = Environment(
        account=os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=region,
    )

    settings = dict(
        github_owner=os.environ.get("GITHUB_OWNER"),
        github_repo=os.environ.get("GITHUB_REPO"),
        github_branch=os.environ.get("GITHUB_BRANCH", "main"),
        secret_name=os.environ.get("GITHUB_TOKEN_SECRET", "github/token"),
        secret_json_key=os.environ.get("GITHUB_TOKEN_KEY", "github_token"),
        region=region,
        notification_email=os.environ.get("NOTIFICATION_EMAIL"),
        traffic_shift=TrafficShift(
            percentage=int(os.environ.get("TRAFFIC_SHIFT_PERCENTAGE", "10")),
            interval=int(os.environ.get("TRAFFIC_SHIFT_INTERVAL", "1")),
            unit=TimeUnit(os.environ.get("TRAFFIC_SHIFT_UNIT", "minutes")),
        ),
    )

    if version >= StackVersion.DOCKER_BUILD:
        storage_stack = StorageStack(
            app,
            "StorageStack",
            project_name=project_name,
            description="ECR repository and artifact bucket for the CI/CD pipeline",
            env=env,
        )
        settings.update(
            ecr_repository=storage_stack.ecr_repository,
            artifact_bucket=storage_stack.artifact_bucket,
        )

    if version >= StackVersion.FULL:
        ecs_stack = EcsStack(
            app,
            "EcsStack",
            project_name=project_name,
            ecr_repository=storage_stack.ecr_repository,
            description="Fargate test and production services for the CI/CD pipeline",
            env=env,
        )
        settings.update(
            fargate_service_test=ecs_stack.fargate_service_test,
            fargate_service_prod=ecs_stack.fargate_service_prod,
            green_target_group=ecs_stack.green_target_group,
            green_listener=ecs_stack.green_listener,
        )

    pipeline_stack = PipelineCdkStack(
        app,
        "PipelineCdkStack",
        config=PipelineConfig(**settings),
        version=version,
        description=f"CI/CD pipeline (version {int(version)})",
        env=env,
    )

    Tags.of(app).add("Project", project_name)
    Tags.of(app).add("ManagedBy", "CDK")
    Tags.of(pipeline_stack).add("PipelineVersion", str(int(version)))

    logger.info("Synthesizing pipeline version %d", version)
    app.synth()


if __name__ == "__main__":
    main()
