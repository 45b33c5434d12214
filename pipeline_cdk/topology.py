"""
Immutable description of a CodePipeline topology.

PipelineSpec is assembled with `with_*` calls that each validate the
addition and return a new value, so a topology can be built and checked
without constructing any AWS resource. The pipeline stack renders the
finished value into CDK constructs.
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .config import TrafficShift
from .dashboard import DashboardSpec
from .exceptions import (
    DuplicateActionError,
    DuplicateArtifactError,
    MissingDeploymentGroupError,
    PipelineConfigurationError,
    RunOrderError,
    SourceActionError,
    UnknownBuildProjectError,
    UnproducedArtifactError,
)
from .notifications import NotificationRule

logger = logging.getLogger(__name__)

MIN_RUN_ORDER = 1
MAX_RUN_ORDER = 999


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class LiteralValue(_Frozen):
    """An environment variable value known at assembly time."""

    kind: Literal["literal"] = "literal"
    value: str


class ResolvedReference(_Frozen):
    """
    An environment variable value read from a collaborator when rendering.

    `collaborator` is a PipelineConfig field name; `attribute` is read from
    the handle (e.g. `repository_uri`). Without an attribute the field value
    itself is used.
    """

    kind: Literal["reference"] = "reference"
    collaborator: str
    attribute: Optional[str] = None


EnvValue = Annotated[Union[LiteralValue, ResolvedReference], Field(discriminator="kind")]


class SecretRef(_Frozen):
    """Pointer to a JSON field of a Secrets Manager secret."""

    store_name: str
    key_path: str


class SourceSpec(_Frozen):
    owner: str
    repo: str
    branch: str
    secret: SecretRef


class BuildProjectSpec(_Frozen):
    name: str
    buildspec_file: str
    build_image: str = "STANDARD_7_0"
    privileged: bool = False
    compute_type: str = "LARGE"
    environment_variables: Dict[str, EnvValue] = Field(default_factory=dict)
    policy_actions: Tuple[str, ...] = ()


class DeploymentGroupSpec(_Frozen):
    """
    CodeDeploy blue/green configuration.

    Target group and listener fields are collaborator references in the
    form `field` or `field.attribute`. `image_placeholder` is the token in
    taskdef.json replaced by the image URI from the build's imageDetail.json.
    """

    name: str
    application_name: str
    deployment_group_name: str
    service: str
    blue_target_group: str
    green_target_group: str
    listener: str
    test_listener: str
    traffic_shift: TrafficShift = TrafficShift()
    image_placeholder: str = "IMAGE1_NAME"


class ActionKind(str, Enum):
    SOURCE = "source"
    BUILD = "build"
    DEPLOY = "deploy"
    BLUE_GREEN_DEPLOY = "blue_green_deploy"
    APPROVAL = "approval"


class Action(_Frozen):
    name: str
    kind: ActionKind
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()
    target: Optional[str] = None
    run_order: Optional[int] = None

    @property
    def effective_run_order(self) -> int:
        return self.run_order if self.run_order is not None else MIN_RUN_ORDER


class Stage(_Frozen):
    name: str
    actions: Tuple[Action, ...] = Field(min_length=1)

    def execution_batches(self) -> Tuple[Tuple[Action, ...], ...]:
        """Group actions by ascending run-order; actions in one batch run in parallel."""
        batches: Dict[int, List[Action]] = defaultdict(list)
        for action in self.actions:
            batches[action.effective_run_order].append(action)
        return tuple(tuple(batches[order]) for order in sorted(batches))


class PipelineSpec(_Frozen):
    """The whole topology of one stack version."""

    name: str
    stages: Tuple[Stage, ...] = ()
    source: Optional[SourceSpec] = None
    build_projects: Tuple[BuildProjectSpec, ...] = ()
    deployment_group: Optional[DeploymentGroupSpec] = None
    dashboard: Optional[DashboardSpec] = None
    notification: Optional[NotificationRule] = None

    def _replace(self, **changes) -> "PipelineSpec":
        return self.model_copy(update=changes)

    def with_source(self, source: SourceSpec) -> "PipelineSpec":
        if self.source is not None:
            raise SourceActionError("Pipeline source is already declared")
        return self._replace(source=source)

    def with_build_project(self, project: BuildProjectSpec) -> "PipelineSpec":
        if self.build_project(project.name) is not None:
            raise PipelineConfigurationError(
                f"Build project '{project.name}' is already declared"
            )
        return self._replace(build_projects=self.build_projects + (project,))

    def with_deployment_group(self, group: DeploymentGroupSpec) -> "PipelineSpec":
        if self.deployment_group is not None:
            raise PipelineConfigurationError("Deployment group is already declared")
        return self._replace(deployment_group=group)

    def with_dashboard(self, dashboard: DashboardSpec) -> "PipelineSpec":
        return self._replace(dashboard=dashboard)

    def with_notification(self, notification: NotificationRule) -> "PipelineSpec":
        return self._replace(notification=notification)

    def with_stage(self, stage: Stage) -> "PipelineSpec":
        """
        Append a stage after validating it against the stages already declared

        Raises:
            PipelineConfigurationError: if the stage breaks an ordering,
                artifact or collaborator invariant
        """
        if stage.name in self.stage_names():
            raise DuplicateActionError(f"Stage '{stage.name}' is already declared")

        names: Set[str] = set()
        for action in stage.actions:
            if action.name in names:
                raise DuplicateActionError(
                    f"Stage '{stage.name}' declares action '{action.name}' twice"
                )
            names.add(action.name)
            self._check_action(action, first_stage=not self.stages)

        self._check_artifacts(stage)
        logger.debug("Declared stage %s with actions %s", stage.name, sorted(names))
        return self._replace(stages=self.stages + (stage,))

    def _check_action(self, action: Action, first_stage: bool) -> None:
        run_order = action.effective_run_order
        if not MIN_RUN_ORDER <= run_order <= MAX_RUN_ORDER:
            raise RunOrderError(
                f"Action '{action.name}' has run-order {run_order}, "
                f"expected {MIN_RUN_ORDER}..{MAX_RUN_ORDER}"
            )

        if action.kind is ActionKind.SOURCE:
            if not first_stage:
                raise SourceActionError(
                    f"Source action '{action.name}' must be in the first stage"
                )
            if self.source is None:
                raise SourceActionError(
                    f"Source action '{action.name}' declared without a source"
                )
            if action.inputs:
                raise SourceActionError(f"Source action '{action.name}' cannot consume artifacts")
            return

        if first_stage:
            raise SourceActionError(
                f"First stage may only contain the source action, found '{action.name}'"
            )

        if action.kind is ActionKind.BUILD:
            if action.target is None or self.build_project(action.target) is None:
                raise UnknownBuildProjectError(str(action.target), action.name)
        elif action.kind is ActionKind.DEPLOY:
            if not action.target:
                raise PipelineConfigurationError(
                    f"Deploy action '{action.name}' has no target service"
                )
        elif action.kind is ActionKind.BLUE_GREEN_DEPLOY:
            if self.deployment_group is None:
                raise MissingDeploymentGroupError(action.name)
            if action.target != self.deployment_group.name:
                raise MissingDeploymentGroupError(action.name)

    def _check_artifacts(self, stage: Stage) -> None:
        available = set(self.produced_artifacts())
        produced_here: Dict[str, int] = {}

        first_stage = not self.stages
        sources = [a for a in stage.actions if a.kind is ActionKind.SOURCE]
        if first_stage and len(sources) != 1:
            raise SourceActionError(
                f"Pipeline needs exactly one source action, found {len(sources)}"
            )

        for action in stage.actions:
            for artifact in action.outputs:
                if artifact in available or artifact in produced_here:
                    raise DuplicateArtifactError(artifact, action.name)
                produced_here[artifact] = action.effective_run_order

        for action in stage.actions:
            for artifact in action.inputs:
                if artifact in available:
                    continue
                producer_order = produced_here.get(artifact)
                if producer_order is None or producer_order >= action.effective_run_order:
                    raise UnproducedArtifactError(artifact, action.name)

    def build_project(self, name: str) -> Optional[BuildProjectSpec]:
        for project in self.build_projects:
            if project.name == name:
                return project
        return None

    def produced_artifacts(self) -> Tuple[str, ...]:
        return tuple(
            artifact
            for stage in self.stages
            for action in stage.actions
            for artifact in action.outputs
        )

    def stage_names(self) -> Tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    def action_names(self) -> Tuple[Tuple[str, ...], ...]:
        return tuple(tuple(action.name for action in stage.actions) for stage in self.stages)

    def ordering_edges(self) -> Tuple[Tuple[str, str], ...]:
        """
        Declared "runs before" edges between actions.

        Consecutive batches inside a stage are linked, and the last batch of
        each stage is linked to the first batch of the next one.
        """
        edges: List[Tuple[str, str]] = []
        previous: Tuple[Action, ...] = ()
        for stage in self.stages:
            for batch in stage.execution_batches():
                edges.extend((before.name, after.name) for before in previous for after in batch)
                previous = batch
        return tuple(edges)

    def topological_order(self) -> Tuple[str, ...]:
        """Return action names in a valid execution order, rejecting cycles."""
        nodes = [action.name for stage in self.stages for action in stage.actions]
        incoming: Dict[str, int] = {node: 0 for node in nodes}
        outgoing: Dict[str, List[str]] = defaultdict(list)
        for before, after in self.ordering_edges():
            outgoing[before].append(after)
            incoming[after] += 1

        ready = [node for node in nodes if incoming[node] == 0]
        order: List[str] = []
        while ready:
            node = ready.pop(0)
            order.append(node)
            for successor in outgoing[node]:
                incoming[successor] -= 1
                if incoming[successor] == 0:
                    ready.append(successor)

        if len(order) != len(nodes):
            raise RunOrderError("Declared action ordering contains a cycle")
        return tuple(order)

    def finalize(self) -> "PipelineSpec":
        """Whole-pipeline checks that only make sense once every stage is declared."""
        sources = [
            action
            for stage in self.stages
            for action in stage.actions
            if action.kind is ActionKind.SOURCE
        ]
        if len(sources) != 1:
            raise SourceActionError(
                f"Pipeline needs exactly one source action, found {len(sources)}"
            )
        if len(self.stages) < 2:
            raise PipelineConfigurationError("A pipeline needs at least two stages")
        self.topological_order()
        return self
