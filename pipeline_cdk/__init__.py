"""
CDK stacks and topology model for the container CI/CD pipeline.
"""

from .config import PipelineConfig, StackVersion, TimeUnit, TrafficShift
from .exceptions import (
    MissingCollaboratorError,
    PipelineConfigurationError,
    UnproducedArtifactError,
)
from .topologies import build_pipeline_spec

__all__ = [
    "MissingCollaboratorError",
    "PipelineConfig",
    "PipelineConfigurationError",
    "StackVersion",
    "TimeUnit",
    "TrafficShift",
    "UnproducedArtifactError",
    "build_pipeline_spec",
]
