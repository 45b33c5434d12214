"""
Configuration errors raised while assembling a pipeline topology.

All of these are raised at construction time. Errors about secrets, build
instruction files or registry permissions only surface when AWS runs the
pipeline and are never raised from here.
"""

from typing import Optional


class PipelineConfigurationError(ValueError):
    """Base class for structural misconfiguration of a pipeline."""


class MissingCollaboratorError(PipelineConfigurationError):
    """A collaborator required by the requested stack version is absent."""

    def __init__(self, field: str, version: Optional[int] = None) -> None:
        self.field = field
        self.version = version
        if version is None:
            message = f"Missing required configuration field '{field}'"
        else:
            message = (
                f"Missing required configuration field '{field}' "
                f"for pipeline version {version}"
            )
        super().__init__(message)


class UnproducedArtifactError(PipelineConfigurationError):
    """An action consumes an artifact that no earlier action produces."""

    def __init__(self, artifact: str, action: str) -> None:
        self.artifact = artifact
        self.action = action
        super().__init__(
            f"Action '{action}' consumes artifact '{artifact}' "
            "which is not produced by any earlier action"
        )


class DuplicateArtifactError(PipelineConfigurationError):
    """Two actions declare the same output artifact."""

    def __init__(self, artifact: str, action: str) -> None:
        self.artifact = artifact
        self.action = action
        super().__init__(
            f"Action '{action}' produces artifact '{artifact}' which is already produced"
        )


class DuplicateActionError(PipelineConfigurationError):
    """Two actions in one stage share a name, or two stages share a name."""


class SourceActionError(PipelineConfigurationError):
    """The pipeline does not have exactly one source action in its first stage."""


class MissingDeploymentGroupError(PipelineConfigurationError):
    """A blue/green deploy action was declared before its deployment group."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(
            f"Action '{action}' requires a deployment group but none is declared"
        )


class UnknownBuildProjectError(PipelineConfigurationError):
    """A build action references a build project that was never declared."""

    def __init__(self, project: str, action: str) -> None:
        self.project = project
        self.action = action
        super().__init__(f"Action '{action}' references unknown build project '{project}'")


class RunOrderError(PipelineConfigurationError):
    """Run-orders inside a stage are out of range or form a cycle."""
