"""
Collaborator intake for the pipeline stacks.

PipelineConfig is the only input to topology assembly. Every collaborator
handle (ECR repository, S3 bucket, Fargate services, target group and
listener) is supplied from outside; nothing here looks up the process
environment or invents a default for a required field.
"""

from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import MissingCollaboratorError


class StackVersion(IntEnum):
    """Successive pipeline topologies, each a superset of the previous one."""

    SOURCE_AND_TEST = 1
    DOCKER_BUILD = 2
    FULL = 3


class TimeUnit(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"


class TrafficShift(BaseModel):
    """Linear traffic shifting: move `percentage` of traffic every `interval` `unit`."""

    model_config = ConfigDict(frozen=True)

    percentage: int = Field(default=10, ge=1, le=100)
    interval: int = Field(default=1, ge=1)
    unit: TimeUnit = TimeUnit.MINUTES

    @property
    def interval_minutes(self) -> int:
        if self.unit is TimeUnit.HOURS:
            return self.interval * 60
        return self.interval


# Fields each version adds on top of the previous one
_VERSION_REQUIREMENTS: Dict[StackVersion, Tuple[str, ...]] = {
    StackVersion.SOURCE_AND_TEST: (
        "github_owner",
        "github_repo",
        "github_branch",
        "secret_name",
        "secret_json_key",
    ),
    StackVersion.DOCKER_BUILD: (
        "ecr_repository",
        "artifact_bucket",
        "region",
    ),
    StackVersion.FULL: (
        "fargate_service_test",
        "fargate_service_prod",
        "green_target_group",
        "green_listener",
        "notification_email",
    ),
}


def required_fields(version: StackVersion) -> Tuple[str, ...]:
    """
    Return every configuration field required by a stack version

    Args:
        version: Stack version being assembled

    Returns:
        Field names in declaration order
    """
    fields: Tuple[str, ...] = ()
    for candidate in StackVersion:
        if candidate <= version:
            fields += _VERSION_REQUIREMENTS[candidate]
    return fields


class PipelineConfig(BaseModel):
    """
    Construction-time inputs of a pipeline stack.

    Collaborator handles are typed loosely so the pure topology can be
    assembled and tested with stand-in objects.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    # Source
    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_branch: Optional[str] = None
    secret_name: Optional[str] = None
    secret_json_key: Optional[str] = None

    # Version 2 collaborators
    ecr_repository: Optional[Any] = None
    artifact_bucket: Optional[Any] = None
    region: Optional[str] = None

    # Version 3 collaborators
    fargate_service_test: Optional[Any] = None
    fargate_service_prod: Optional[Any] = None
    green_target_group: Optional[Any] = None
    green_listener: Optional[Any] = None
    notification_email: Optional[str] = None

    pipeline_name: str = "CICD_Pipeline"
    image_tag: str = "latest"
    test_buildspec: str = "buildspec_test.yml"
    docker_buildspec: str = "buildspec_docker.yml"
    traffic_shift: TrafficShift = TrafficShift()
    approval_timeout_minutes: Optional[int] = Field(default=None, ge=1)
    approval_comment: str = "Approve deployment of the tested image to production"
    dashboard_name: str = "CICD_Pipeline_Metrics"
    duration_gauge_max: int = Field(default=300, ge=1)
    queue_gauge_max: int = Field(default=60, ge=1)

    def validate_for(self, version: StackVersion) -> None:
        """
        Fail fast when a collaborator required by `version` is absent

        Raises:
            MissingCollaboratorError: naming the first missing field
        """
        for field in required_fields(version):
            value = getattr(self, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise MissingCollaboratorError(field, int(version))

    def collaborator(self, name: str) -> Any:
        """Return a configured collaborator handle by field name."""
        if name not in type(self).model_fields:
            raise MissingCollaboratorError(name)
        value = getattr(self, name)
        if value is None:
            raise MissingCollaboratorError(name)
        return value
