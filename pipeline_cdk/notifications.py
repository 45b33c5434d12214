"""
Failure notification wiring: EventBridge filter, SNS topic and email subscriber.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

CODEPIPELINE_SOURCE = "aws.codepipeline"
EXECUTION_STATE_CHANGE = "CodePipeline Pipeline Execution State Change"
FAILED = "FAILED"


class EventFilter(BaseModel):
    """Match on event source, detail-type and the `detail.state` field."""

    model_config = ConfigDict(frozen=True)

    source: str
    detail_type: str
    states: Tuple[str, ...] = Field(min_length=1)

    def matches(self, event: Mapping[str, Any]) -> bool:
        if event.get("source") != self.source:
            return False
        if event.get("detail-type") != self.detail_type:
            return False
        detail = event.get("detail") or {}
        return detail.get("state") in self.states

    def to_event_pattern(self) -> Dict[str, Any]:
        """EventBridge pattern JSON, as rendered into the rule's EventPattern."""
        return {
            "source": [self.source],
            "detail-type": [self.detail_type],
            "detail": {"state": list(self.states)},
        }


def resolve_path(event: Mapping[str, Any], path: str) -> Optional[Any]:
    """
    Resolve a `$.a.b` JSON path against an event

    Returns:
        The value at the path, or None when any segment is missing
    """
    value: Any = event
    for segment in path.lstrip("$").strip(".").split("."):
        if not isinstance(value, Mapping) or segment not in value:
            return None
        value = value[segment]
    return value


class NotificationRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule_name: str
    event_filter: EventFilter
    topic_name: str
    subscribers: Tuple[str, ...] = Field(min_length=1, max_length=1)
    message_template: str
    # template placeholder -> JSON path in the event
    message_fields: Tuple[Tuple[str, str], ...]

    def format_message(self, event: Mapping[str, Any]) -> str:
        values = {
            placeholder: resolve_path(event, path)
            for placeholder, path in self.message_fields
        }
        return self.message_template.format(**values)


def build_failure_notification(
    email: str,
    rule_name: str = "PipelineFailureRule",
    topic_name: str = "PipelineFailureTopic",
) -> NotificationRule:
    """
    Notify a single email subscriber whenever a pipeline execution fails

    Args:
        email: The one subscriber address
        rule_name: EventBridge rule name
        topic_name: SNS topic name

    Returns:
        NotificationRule matching terminal FAILED executions only
    """
    return NotificationRule(
        rule_name=rule_name,
        event_filter=EventFilter(
            source=CODEPIPELINE_SOURCE,
            detail_type=EXECUTION_STATE_CHANGE,
            states=(FAILED,),
        ),
        topic_name=topic_name,
        subscribers=(email,),
        message_template=(
            "The pipeline {pipeline} has failed. "
            "Execution ID: {execution_id}"
        ),
        message_fields=(
            ("pipeline", "$.detail.pipeline"),
            ("execution_id", "$.detail.execution-id"),
        ),
    )
