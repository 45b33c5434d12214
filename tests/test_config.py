"""
Unit tests for collaborator intake.
"""

import pytest
from pydantic import ValidationError

from pipeline_cdk.config import (
    PipelineConfig,
    StackVersion,
    TimeUnit,
    TrafficShift,
    required_fields,
)
from pipeline_cdk.exceptions import MissingCollaboratorError, PipelineConfigurationError
from pipeline_cdk.topologies import build_pipeline_spec


class TestRequiredFields:
    """Each stack version requires the fields of the previous one plus its own."""

    def test_source_fields_always_required(self):
        assert required_fields(StackVersion.SOURCE_AND_TEST) == (
            "github_owner",
            "github_repo",
            "github_branch",
            "secret_name",
            "secret_json_key",
        )

    def test_versions_are_cumulative(self):
        v1 = required_fields(StackVersion.SOURCE_AND_TEST)
        v2 = required_fields(StackVersion.DOCKER_BUILD)
        v3 = required_fields(StackVersion.FULL)

        assert v2[: len(v1)] == v1
        assert v3[: len(v2)] == v2
        assert {"ecr_repository", "artifact_bucket", "region"} <= set(v2)
        assert {
            "fargate_service_test",
            "fargate_service_prod",
            "green_target_group",
            "green_listener",
        } <= set(v3)


class TestValidateFor:
    @pytest.mark.parametrize("field", required_fields(StackVersion.FULL))
    def test_missing_field_fails_full_assembly(self, full_settings, field):
        settings = dict(full_settings, **{field: None})
        config = PipelineConfig(**settings)

        with pytest.raises(MissingCollaboratorError) as excinfo:
            build_pipeline_spec(config, StackVersion.FULL)

        assert excinfo.value.field == field
        assert field in str(excinfo.value)

    def test_blank_string_counts_as_missing(self, full_settings):
        config = PipelineConfig(**dict(full_settings, region="  "))

        with pytest.raises(MissingCollaboratorError, match="region"):
            config.validate_for(StackVersion.DOCKER_BUILD)

    def test_version_one_ignores_later_collaborators(self, source_config):
        source_config.validate_for(StackVersion.SOURCE_AND_TEST)

        with pytest.raises(MissingCollaboratorError, match="ecr_repository"):
            source_config.validate_for(StackVersion.DOCKER_BUILD)

    def test_missing_region_is_not_defaulted(self, docker_config):
        config = docker_config.model_copy(update={"region": None})

        with pytest.raises(MissingCollaboratorError) as excinfo:
            build_pipeline_spec(config, StackVersion.DOCKER_BUILD)

        assert excinfo.value.field == "region"
        assert excinfo.value.version == 2

    def test_configuration_errors_are_value_errors(self):
        assert issubclass(MissingCollaboratorError, PipelineConfigurationError)
        assert issubclass(PipelineConfigurationError, ValueError)


class TestCollaborator:
    def test_returns_configured_handle(self, full_config):
        assert full_config.collaborator("green_listener").name == "green_listener"

    def test_absent_handle_raises(self, source_config):
        with pytest.raises(MissingCollaboratorError, match="fargate_service_prod"):
            source_config.collaborator("fargate_service_prod")

    def test_unknown_field_raises(self, full_config):
        with pytest.raises(MissingCollaboratorError, match="load_balancer"):
            full_config.collaborator("load_balancer")


class TestTrafficShift:
    def test_reference_configuration(self):
        shift = TrafficShift()

        assert shift.percentage == 10
        assert shift.interval == 1
        assert shift.unit is TimeUnit.MINUTES
        assert shift.interval_minutes == 1

    def test_hours_are_converted_to_minutes(self):
        assert TrafficShift(percentage=25, interval=2, unit="hours").interval_minutes == 120

    @pytest.mark.parametrize("percentage", [0, 101])
    def test_percentage_out_of_range(self, percentage):
        with pytest.raises(ValidationError):
            TrafficShift(percentage=percentage)

    def test_config_is_immutable(self, full_config):
        with pytest.raises(ValidationError):
            full_config.region = "eu-west-1"
