"""
Unit tests for the reference pipeline topologies.
"""

import pytest

from pipeline_cdk.config import StackVersion, TrafficShift
from pipeline_cdk.exceptions import MissingCollaboratorError
from pipeline_cdk.topologies import (
    DOCKER_BUILD_OUTPUT,
    DOCKER_BUILD_POLICY_ACTIONS,
    DOCKER_BUILD_PROJECT,
    SOURCE_OUTPUT,
    build_pipeline_spec,
)
from pipeline_cdk.topology import ActionKind, LiteralValue, ResolvedReference


class TestStageLayout:
    def test_version_one(self, source_config):
        spec = build_pipeline_spec(source_config, StackVersion.SOURCE_AND_TEST)

        assert spec.name == "CICD_Pipeline"
        assert spec.stage_names() == ("Source", "Code-Quality-Testing")
        assert spec.action_names() == (("GitHub_Source",), ("Unit-Test",))
        assert len(spec.build_projects) == 1
        assert spec.deployment_group is None

    def test_version_two(self, docker_config):
        spec = build_pipeline_spec(docker_config, StackVersion.DOCKER_BUILD)

        assert spec.stage_names() == ("Source", "Code-Quality-Testing", "Docker-Build")
        assert spec.action_names()[-1] == ("Docker-Build-Push",)

    def test_version_three(self, full_config):
        spec = build_pipeline_spec(full_config, StackVersion.FULL)

        assert spec.stage_names() == (
            "Source",
            "Code-Quality-Testing",
            "Docker-Build",
            "Deploy-Test",
            "Deploy-Production",
        )
        assert spec.action_names()[3:] == (
            ("Deploy-Fargate-Test",),
            ("Manual-Approval", "BlueGreen-Deploy-Production"),
        )

    def test_each_version_extends_the_previous(self, full_config):
        specs = [build_pipeline_spec(full_config, version) for version in StackVersion]

        for smaller, larger in zip(specs, specs[1:]):
            assert larger.stages[: len(smaller.stages)] == smaller.stages

    def test_single_source_checkout(self, full_config):
        spec = build_pipeline_spec(full_config, StackVersion.FULL)

        assert spec.source.owner == "example-org"
        assert spec.source.secret.store_name == "github/token"
        assert spec.source.secret.key_path == "github_token"
        sources = [
            action
            for stage in spec.stages
            for action in stage.actions
            if action.kind is ActionKind.SOURCE
        ]
        assert [action.outputs for action in sources] == [(SOURCE_OUTPUT,)]

    def test_missing_collaborator_fails_before_assembly(self, docker_config):
        with pytest.raises(MissingCollaboratorError) as excinfo:
            build_pipeline_spec(docker_config, StackVersion.FULL)

        assert excinfo.value.field == "fargate_service_test"


class TestDockerBuildProject:
    @pytest.fixture
    def project(self, docker_config):
        spec = build_pipeline_spec(docker_config, StackVersion.DOCKER_BUILD)
        return spec.build_project(DOCKER_BUILD_PROJECT)

    def test_runs_privileged_on_large_standard_image(self, project):
        assert project.privileged is True
        assert project.compute_type == "LARGE"
        assert project.build_image == "STANDARD_7_0"
        assert project.buildspec_file == "buildspec_docker.yml"

    def test_environment_variables(self, project):
        env = project.environment_variables

        assert set(env) == {"IMAGE_TAG", "IMAGE_REPO_URI", "ARTIFACT_BUCKET", "AWS_DEFAULT_REGION"}
        assert env["IMAGE_TAG"] == LiteralValue(value="latest")
        assert env["AWS_DEFAULT_REGION"] == LiteralValue(value="us-east-1")
        assert env["IMAGE_REPO_URI"] == ResolvedReference(
            collaborator="ecr_repository", attribute="repository_uri"
        )
        assert isinstance(env["ARTIFACT_BUCKET"], ResolvedReference)

    def test_policy_is_an_explicit_allow_list(self, project):
        assert project.policy_actions == DOCKER_BUILD_POLICY_ACTIONS
        assert len(project.policy_actions) == 14
        assert len(set(project.policy_actions)) == 14
        assert not any("*" in action for action in project.policy_actions)
        assert {"ecr:PutImage", "ecr:GetAuthorizationToken", "s3:GetObject", "s3:PutObject"} <= set(
            project.policy_actions
        )

    def test_unit_test_project_has_no_registry_access(self, docker_config):
        spec = build_pipeline_spec(docker_config, StackVersion.DOCKER_BUILD)
        unit_test = spec.build_project("UnitTestProject")

        assert unit_test.privileged is True
        assert unit_test.policy_actions == ()
        assert unit_test.environment_variables == {}


class TestProductionRelease:
    def test_approval_precedes_blue_green(self, full_config):
        spec = build_pipeline_spec(full_config, StackVersion.FULL)
        approval, release = spec.stages[-1].actions

        assert approval.kind is ActionKind.APPROVAL
        assert release.kind is ActionKind.BLUE_GREEN_DEPLOY
        assert approval.effective_run_order < release.effective_run_order
        assert release.inputs == (SOURCE_OUTPUT, DOCKER_BUILD_OUTPUT)

    def test_test_deploy_uses_image_build_output(self, full_config):
        spec = build_pipeline_spec(full_config, StackVersion.FULL)
        (deploy,) = spec.stages[3].actions

        assert deploy.inputs == (DOCKER_BUILD_OUTPUT,)
        assert deploy.target == "fargate_service_test.service"

    def test_deployment_group_wiring(self, full_config):
        group = build_pipeline_spec(full_config, StackVersion.FULL).deployment_group

        assert group.application_name == "CICD_Pipeline-app"
        assert group.blue_target_group == "fargate_service_prod.target_group"
        assert group.green_target_group == "green_target_group"
        assert group.test_listener == "green_listener"
        assert group.traffic_shift == TrafficShift(percentage=10, interval=1)
        assert group.image_placeholder == "IMAGE1_NAME"

    def test_traffic_shift_only_changes_deployment_group(self, full_config):
        faster = full_config.model_copy(
            update={"traffic_shift": TrafficShift(percentage=25, interval=2)}
        )

        reference = build_pipeline_spec(full_config, StackVersion.FULL)
        changed = build_pipeline_spec(faster, StackVersion.FULL)

        assert changed.deployment_group.traffic_shift.percentage == 25
        assert changed.deployment_group.traffic_shift.interval == 2
        assert changed.model_copy(update={"deployment_group": None}) == reference.model_copy(
            update={"deployment_group": None}
        )


class TestObservability:
    def test_version_three_has_dashboard_and_alerting(self, full_config):
        spec = build_pipeline_spec(full_config, StackVersion.FULL)

        assert spec.dashboard.name == "CICD_Pipeline_Metrics"
        assert len(spec.dashboard.widgets()) == 5
        assert spec.notification.subscribers == ("alerts@example.com",)
        assert spec.notification.rule_name == "CICD_Pipeline-failure"

    def test_earlier_versions_have_neither(self, docker_config):
        spec = build_pipeline_spec(docker_config, StackVersion.DOCKER_BUILD)

        assert spec.dashboard is None
        assert spec.notification is None
