"""
Reference pipeline topologies.

Each stack version declares a prefix of the same stage list:

    1: Source, Code-Quality-Testing
    2: + Docker-Build
    3: + Deploy-Test, Deploy-Production, dashboard and failure alerting
"""

import logging
from typing import Dict, Tuple

from .config import PipelineConfig, StackVersion
from .dashboard import build_codebuild_dashboard
from .notifications import build_failure_notification
from .topology import (
    Action,
    ActionKind,
    BuildProjectSpec,
    DeploymentGroupSpec,
    LiteralValue,
    PipelineSpec,
    ResolvedReference,
    SecretRef,
    SourceSpec,
    Stage,
)

logger = logging.getLogger(__name__)

SOURCE_OUTPUT = "SourceOutput"
UNIT_TEST_OUTPUT = "UnitTestOutput"
DOCKER_BUILD_OUTPUT = "DockerBuildOutput"

UNIT_TEST_PROJECT = "UnitTestProject"
DOCKER_BUILD_PROJECT = "DockerBuildProject"
PRODUCTION_DEPLOYMENT_GROUP = "ProductionDeploymentGroup"

# Registry read/write and artifact bucket access for the image build
DOCKER_BUILD_POLICY_ACTIONS: Tuple[str, ...] = (
    "ecr:GetAuthorizationToken",
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:GetRepositoryPolicy",
    "ecr:DescribeRepositories",
    "ecr:ListImages",
    "ecr:DescribeImages",
    "ecr:BatchGetImage",
    "ecr:InitiateLayerUpload",
    "ecr:UploadLayerPart",
    "ecr:CompleteLayerUpload",
    "ecr:PutImage",
    "s3:GetObject",
    "s3:PutObject",
)

STAGE_LAYOUT: Dict[StackVersion, Tuple[str, ...]] = {
    StackVersion.SOURCE_AND_TEST: ("Source", "Code-Quality-Testing"),
    StackVersion.DOCKER_BUILD: ("Source", "Code-Quality-Testing", "Docker-Build"),
    StackVersion.FULL: (
        "Source",
        "Code-Quality-Testing",
        "Docker-Build",
        "Deploy-Test",
        "Deploy-Production",
    ),
}


def _source_stage(spec: PipelineSpec, config: PipelineConfig) -> PipelineSpec:
    spec = spec.with_source(
        SourceSpec(
            owner=config.github_owner,
            repo=config.github_repo,
            branch=config.github_branch,
            secret=SecretRef(
                store_name=config.secret_name,
                key_path=config.secret_json_key,
            ),
        )
    )
    return spec.with_stage(
        Stage(
            name="Source",
            actions=(
                Action(
                    name="GitHub_Source",
                    kind=ActionKind.SOURCE,
                    outputs=(SOURCE_OUTPUT,),
                ),
            ),
        )
    )


def _unit_test_stage(spec: PipelineSpec, config: PipelineConfig) -> PipelineSpec:
    spec = spec.with_build_project(
        BuildProjectSpec(
            name=UNIT_TEST_PROJECT,
            buildspec_file=config.test_buildspec,
            privileged=True,
        )
    )
    return spec.with_stage(
        Stage(
            name="Code-Quality-Testing",
            actions=(
                Action(
                    name="Unit-Test",
                    kind=ActionKind.BUILD,
                    inputs=(SOURCE_OUTPUT,),
                    outputs=(UNIT_TEST_OUTPUT,),
                    target=UNIT_TEST_PROJECT,
                ),
            ),
        )
    )


def _docker_build_stage(spec: PipelineSpec, config: PipelineConfig) -> PipelineSpec:
    spec = spec.with_build_project(
        BuildProjectSpec(
            name=DOCKER_BUILD_PROJECT,
            buildspec_file=config.docker_buildspec,
            privileged=True,
            environment_variables={
                "IMAGE_TAG": LiteralValue(value=config.image_tag),
                "IMAGE_REPO_URI": ResolvedReference(
                    collaborator="ecr_repository", attribute="repository_uri"
                ),
                "ARTIFACT_BUCKET": ResolvedReference(
                    collaborator="artifact_bucket", attribute="bucket_name"
                ),
                "AWS_DEFAULT_REGION": LiteralValue(value=config.region),
            },
            policy_actions=DOCKER_BUILD_POLICY_ACTIONS,
        )
    )
    return spec.with_stage(
        Stage(
            name="Docker-Build",
            actions=(
                Action(
                    name="Docker-Build-Push",
                    kind=ActionKind.BUILD,
                    inputs=(SOURCE_OUTPUT,),
                    outputs=(DOCKER_BUILD_OUTPUT,),
                    target=DOCKER_BUILD_PROJECT,
                ),
            ),
        )
    )


def _deploy_test_stage(spec: PipelineSpec, config: PipelineConfig) -> PipelineSpec:
    # imagedefinitions.json from the image build replaces the running task set
    return spec.with_stage(
        Stage(
            name="Deploy-Test",
            actions=(
                Action(
                    name="Deploy-Fargate-Test",
                    kind=ActionKind.DEPLOY,
                    inputs=(DOCKER_BUILD_OUTPUT,),
                    target="fargate_service_test.service",
                ),
            ),
        )
    )


def _deploy_production_stage(spec: PipelineSpec, config: PipelineConfig) -> PipelineSpec:
    spec = spec.with_deployment_group(
        DeploymentGroupSpec(
            name=PRODUCTION_DEPLOYMENT_GROUP,
            application_name=f"{config.pipeline_name}-app",
            deployment_group_name=f"{config.pipeline_name}-prod",
            service="fargate_service_prod.service",
            blue_target_group="fargate_service_prod.target_group",
            green_target_group="green_target_group",
            listener="fargate_service_prod.listener",
            test_listener="green_listener",
            traffic_shift=config.traffic_shift,
        )
    )
    return spec.with_stage(
        Stage(
            name="Deploy-Production",
            actions=(
                Action(
                    name="Manual-Approval",
                    kind=ActionKind.APPROVAL,
                    run_order=1,
                ),
                # appspec.yaml and taskdef.json come from the source checkout,
                # the image pushed by Docker-Build from imageDetail.json
                Action(
                    name="BlueGreen-Deploy-Production",
                    kind=ActionKind.BLUE_GREEN_DEPLOY,
                    inputs=(SOURCE_OUTPUT, DOCKER_BUILD_OUTPUT),
                    target=PRODUCTION_DEPLOYMENT_GROUP,
                    run_order=2,
                ),
            ),
        )
    )


_STAGE_BUILDERS = {
    "Source": _source_stage,
    "Code-Quality-Testing": _unit_test_stage,
    "Docker-Build": _docker_build_stage,
    "Deploy-Test": _deploy_test_stage,
    "Deploy-Production": _deploy_production_stage,
}


def build_pipeline_spec(config: PipelineConfig, version: StackVersion) -> PipelineSpec:
    """
    Assemble the topology of a stack version

    Args:
        config: Collaborators and settings for the pipeline
        version: Which prefix of the stage list to declare

    Returns:
        A validated PipelineSpec

    Raises:
        PipelineConfigurationError: if a required collaborator is missing or
            the declared stages are inconsistent
    """
    version = StackVersion(version)
    config.validate_for(version)

    spec = PipelineSpec(name=config.pipeline_name)
    for stage_name in STAGE_LAYOUT[version]:
        spec = _STAGE_BUILDERS[stage_name](spec, config)

    if version >= StackVersion.FULL:
        spec = spec.with_dashboard(
            build_codebuild_dashboard(
                config.dashboard_name,
                duration_max=config.duration_gauge_max,
                queue_max=config.queue_gauge_max,
            )
        )
        spec = spec.with_notification(
            build_failure_notification(
                config.notification_email,
                rule_name=f"{config.pipeline_name}-failure",
                topic_name=f"{config.pipeline_name}-failure-alerts",
            )
        )

    spec = spec.finalize()
    logger.info(
        "Assembled pipeline %s (version %d) with stages %s",
        spec.name,
        version,
        ", ".join(spec.stage_names()),
    )
    return spec
