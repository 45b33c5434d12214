"""
CloudWatch dashboard layout for the build projects.

The layout is plain data so it can be serialized, compared and rendered
into a cloudwatch.Dashboard by the pipeline stack.
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

CODEBUILD_NAMESPACE = "AWS/CodeBuild"

THIRTY_DAYS = 30 * 24 * 60 * 60
ONE_HOUR = 60 * 60
FIVE_MINUTES = 5 * 60

# CloudWatch dashboards are 24 grid columns wide
DASHBOARD_COLUMNS = 24


class WidgetKind(str, Enum):
    PIE = "pie"
    SINGLE_VALUE = "single_value"
    GAUGE = "gauge"
    TIME_SERIES = "time_series"


class MetricBinding(BaseModel):
    """A provider metric bound to a statistic and aggregation period."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    metric_name: str
    statistic: str
    period_seconds: int = Field(ge=1)
    label: Optional[str] = None
    color: Optional[str] = None

    def binding(self) -> Tuple[str, str, str, int]:
        return (self.namespace, self.metric_name, self.statistic, self.period_seconds)


class Widget(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: WidgetKind
    title: str
    width: int = Field(default=4, ge=1, le=DASHBOARD_COLUMNS)
    height: int = Field(default=6, ge=1)
    metrics: Tuple[MetricBinding, ...]
    y_min: Optional[float] = None
    y_max: Optional[float] = None


class DashboardSpec(BaseModel):
    """Ordered rows of widgets; each row fits the dashboard width without wrapping."""

    model_config = ConfigDict(frozen=True)

    name: str
    rows: Tuple[Tuple[Widget, ...], ...]

    @model_validator(mode="after")
    def _check_row_widths(self) -> "DashboardSpec":
        for index, row in enumerate(self.rows):
            width = sum(widget.width for widget in row)
            if width > DASHBOARD_COLUMNS:
                raise ValueError(
                    f"Row {index} is {width} columns wide, "
                    f"dashboards are {DASHBOARD_COLUMNS}"
                )
        return self

    def widgets(self) -> Tuple[Widget, ...]:
        return tuple(widget for row in self.rows for widget in row)

    def bindings(self) -> Tuple[Tuple[str, str, str, int], ...]:
        return tuple(metric.binding() for widget in self.widgets() for metric in widget.metrics)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, payload: str) -> "DashboardSpec":
        return cls.model_validate_json(payload)


def build_codebuild_dashboard(
    name: str,
    duration_max: int = 300,
    queue_max: int = 60,
) -> DashboardSpec:
    """
    Build the single-row CodeBuild dashboard

    Args:
        name: Dashboard name
        duration_max: Upper bound of the average build time gauge (seconds)
        queue_max: Upper bound of the queue wait gauge (seconds)

    Returns:
        DashboardSpec with five widgets in one 24-column row (4+4+4+4+8)
    """
    build_rate = Widget(
        kind=WidgetKind.PIE,
        title="Build Successes and Failures",
        metrics=(
            MetricBinding(
                namespace=CODEBUILD_NAMESPACE,
                metric_name="SucceededBuilds",
                statistic="Sum",
                period_seconds=THIRTY_DAYS,
                label="Succeeded Builds",
            ),
            MetricBinding(
                namespace=CODEBUILD_NAMESPACE,
                metric_name="FailedBuilds",
                statistic="Sum",
                period_seconds=THIRTY_DAYS,
                label="Failed Builds",
            ),
        ),
    )

    builds_count = Widget(
        kind=WidgetKind.SINGLE_VALUE,
        title="Total Builds",
        metrics=(
            MetricBinding(
                namespace=CODEBUILD_NAMESPACE,
                metric_name="Builds",
                statistic="Sum",
                period_seconds=THIRTY_DAYS,
                label="Builds",
            ),
        ),
    )

    average_duration = Widget(
        kind=WidgetKind.GAUGE,
        title="Average Build Time",
        metrics=(
            MetricBinding(
                namespace=CODEBUILD_NAMESPACE,
                metric_name="Duration",
                statistic="Average",
                period_seconds=ONE_HOUR,
                label="Duration",
            ),
        ),
        y_min=0,
        y_max=duration_max,
    )

    queued_duration = Widget(
        kind=WidgetKind.GAUGE,
        title="Build Queue Duration",
        metrics=(
            MetricBinding(
                namespace=CODEBUILD_NAMESPACE,
                metric_name="QueuedDuration",
                statistic="Average",
                period_seconds=ONE_HOUR,
                label="Queued Duration",
            ),
        ),
        y_min=0,
        y_max=queue_max,
    )

    # Checkout time of the source stage
    download_duration = Widget(
        kind=WidgetKind.TIME_SERIES,
        title="Checkout Duration",
        width=8,
        height=6,
        metrics=(
            MetricBinding(
                namespace=CODEBUILD_NAMESPACE,
                metric_name="DownloadSourceDuration",
                statistic="Maximum",
                period_seconds=FIVE_MINUTES,
                label="Checkout Duration",
                color="#9467bd",
            ),
        ),
    )

    return DashboardSpec(
        name=name,
        rows=((build_rate, builds_count, average_duration, queued_duration, download_duration),),
    )
