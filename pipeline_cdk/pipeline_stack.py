"""
Pipeline Stack for the CI/CD pipeline

This stack renders a PipelineSpec into AWS resources:
- GitHub source action authenticated through a Secrets Manager reference
- CodeBuild projects for unit tests and the Docker image build
- CodePipeline with stages and actions in declared order
- CodeDeploy blue/green deployment group for production
- CloudWatch dashboard for build metrics
- EventBridge rule and SNS topic for pipeline failures
"""

import logging
from typing import Any, Optional

from aws_cdk import (
    CfnOutput,
    Duration,
    Stack,
    aws_cloudwatch as cloudwatch,
    aws_codebuild as codebuild,
    aws_codedeploy as codedeploy,
    aws_codepipeline as codepipeline,
    aws_codepipeline_actions as codepipeline_actions,
    aws_events as events,
    aws_events_targets as targets,
    aws_iam as iam,
    aws_secretsmanager as secretsmanager,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
)
from constructs import Construct

from .config import PipelineConfig, StackVersion
from .dashboard import DashboardSpec, Widget, WidgetKind
from .notifications import NotificationRule
from .topologies import build_pipeline_spec
from .topology import (
    Action,
    ActionKind,
    BuildProjectSpec,
    DeploymentGroupSpec,
    LiteralValue,
    PipelineSpec,
)

logger = logging.getLogger(__name__)


class PipelineCdkStack(Stack):
    """
    Stack containing the CI/CD pipeline of one stack version

    The topology is assembled and validated before any construct is
    created, so a misconfigured stack never reaches the construct tree.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: PipelineConfig,
        version: StackVersion = StackVersion.FULL,
        **kwargs
    ) -> None:
        spec = build_pipeline_spec(config, version)

        super().__init__(scope, construct_id, **kwargs)

        self.config = config
        self.version = StackVersion(version)
        self.spec = spec

        self.github_secret = secretsmanager.Secret.from_secret_name_v2(
            self,
            "GitHubToken",
            spec.source.secret.store_name,
        )

        self.build_projects = {
            project.name: self._create_build_project(project)
            for project in spec.build_projects
        }

        self.deployment_group: Optional[codedeploy.EcsDeploymentGroup] = None
        if spec.deployment_group is not None:
            self.deployment_group = self._create_deployment_group(spec.deployment_group)

        self.artifacts = {
            name: codepipeline.Artifact(name) for name in spec.produced_artifacts()
        }
        self.pipeline = self._create_pipeline(spec)

        self.dashboard: Optional[cloudwatch.Dashboard] = None
        if spec.dashboard is not None:
            self.dashboard = self._create_dashboard(spec.dashboard)

        self.failure_topic: Optional[sns.Topic] = None
        if spec.notification is not None:
            self.failure_topic = self._create_failure_notification(spec.notification)

        self._create_outputs()

    def _resolve_reference(self, reference: str) -> Any:
        """
        Resolve a `field.attribute` reference against the configured collaborators

        Args:
            reference: PipelineConfig field name optionally followed by attributes

        Returns:
            The collaborator handle or attribute value
        """
        field, _, path = reference.partition(".")
        value = self.config.collaborator(field)
        for attribute in filter(None, path.split(".")):
            value = getattr(value, attribute)
        return value

    def _resolve_env_value(self, value) -> str:
        if isinstance(value, LiteralValue):
            return value.value
        reference = value.collaborator
        if value.attribute:
            reference = f"{reference}.{value.attribute}"
        return self._resolve_reference(reference)

    def _create_build_project(self, project: BuildProjectSpec) -> codebuild.PipelineProject:
        """
        Create a CodeBuild project bound to a buildspec file in the source checkout

        Args:
            project: Build project description

        Returns:
            CodeBuild PipelineProject
        """
        build_project = codebuild.PipelineProject(
            self,
            project.name,
            environment=codebuild.BuildEnvironment(
                build_image=getattr(codebuild.LinuxBuildImage, project.build_image),
                privileged=project.privileged,
                compute_type=getattr(codebuild.ComputeType, project.compute_type),
            ),
            environment_variables={
                name: codebuild.BuildEnvironmentVariable(value=self._resolve_env_value(value))
                for name, value in project.environment_variables.items()
            },
            build_spec=codebuild.BuildSpec.from_source_filename(project.buildspec_file),
        )

        if project.policy_actions:
            build_project.add_to_role_policy(
                iam.PolicyStatement(
                    effect=iam.Effect.ALLOW,
                    actions=list(project.policy_actions),
                    resources=["*"],
                )
            )

        logger.info("Declared build project %s (%s)", project.name, project.buildspec_file)
        return build_project

    def _create_deployment_group(
        self, group: DeploymentGroupSpec
    ) -> codedeploy.EcsDeploymentGroup:
        """Create the CodeDeploy application and blue/green deployment group."""
        application = codedeploy.EcsApplication(
            self,
            "EcsApplication",
            application_name=group.application_name,
        )

        shift = group.traffic_shift
        deployment_config = codedeploy.EcsDeploymentConfig(
            self,
            "LinearDeploymentConfig",
            traffic_routing=codedeploy.TimeBasedLinearTrafficRouting(
                interval=Duration.minutes(shift.interval_minutes),
                percentage=shift.percentage,
            ),
        )

        deployment_group = codedeploy.EcsDeploymentGroup(
            self,
            group.name,
            application=application,
            deployment_group_name=group.deployment_group_name,
            service=self._resolve_reference(group.service),
            blue_green_deployment_config=codedeploy.EcsBlueGreenDeploymentConfig(
                blue_target_group=self._resolve_reference(group.blue_target_group),
                green_target_group=self._resolve_reference(group.green_target_group),
                listener=self._resolve_reference(group.listener),
                test_listener=self._resolve_reference(group.test_listener),
            ),
            deployment_config=deployment_config,
            auto_rollback=codedeploy.AutoRollbackConfig(
                failed_deployment=True,
                stopped_deployment=True,
            ),
        )

        logger.info(
            "Declared deployment group %s shifting %d%% every %d minute(s)",
            group.deployment_group_name,
            shift.percentage,
            shift.interval_minutes,
        )
        return deployment_group

    def _create_action(self, action: Action, spec: PipelineSpec) -> codepipeline.IAction:
        inputs = [self.artifacts[name] for name in action.inputs]
        outputs = [self.artifacts[name] for name in action.outputs]

        if action.kind is ActionKind.SOURCE:
            source = spec.source
            return codepipeline_actions.GitHubSourceAction(
                action_name=action.name,
                owner=source.owner,
                repo=source.repo,
                branch=source.branch,
                oauth_token=self.github_secret.secret_value_from_json(source.secret.key_path),
                output=outputs[0],
                run_order=action.run_order,
            )

        if action.kind is ActionKind.BUILD:
            return codepipeline_actions.CodeBuildAction(
                action_name=action.name,
                project=self.build_projects[action.target],
                input=inputs[0],
                extra_inputs=inputs[1:] or None,
                outputs=outputs or None,
                run_order=action.run_order,
            )

        if action.kind is ActionKind.DEPLOY:
            return codepipeline_actions.EcsDeployAction(
                action_name=action.name,
                service=self._resolve_reference(action.target),
                input=inputs[0],
                run_order=action.run_order,
            )

        if action.kind is ActionKind.APPROVAL:
            return codepipeline_actions.ManualApprovalAction(
                action_name=action.name,
                additional_information=self.config.approval_comment,
                run_order=action.run_order,
            )

        # First input carries appspec.yaml and taskdef.json, the rest carry imageDetail.json
        placeholder = spec.deployment_group.image_placeholder
        return codepipeline_actions.CodeDeployEcsDeployAction(
            action_name=action.name,
            deployment_group=self.deployment_group,
            app_spec_template_input=inputs[0],
            task_definition_template_input=inputs[0],
            container_image_inputs=[
                codepipeline_actions.CodeDeployEcsContainerImageInput(
                    input=image_input,
                    task_definition_placeholder=placeholder,
                )
                for image_input in inputs[1:]
            ]
            or None,
            run_order=action.run_order,
        )

    def _create_pipeline(self, spec: PipelineSpec) -> codepipeline.Pipeline:
        """
        Create the pipeline with every stage of the topology in declared order

        Args:
            spec: Validated pipeline topology

        Returns:
            CodePipeline Pipeline
        """
        pipeline = codepipeline.Pipeline(
            self,
            "Pipeline",
            pipeline_name=spec.name,
        )

        for stage in spec.stages:
            pipeline.add_stage(
                stage_name=stage.name,
                actions=[self._create_action(action, spec) for action in stage.actions],
            )

        if self.config.approval_timeout_minutes is not None:
            self._apply_approval_timeout(pipeline, spec, self.config.approval_timeout_minutes)

        logger.info("Declared pipeline %s with stages %s", spec.name, list(spec.stage_names()))
        return pipeline

    def _apply_approval_timeout(
        self, pipeline: codepipeline.Pipeline, spec: PipelineSpec, minutes: int
    ) -> None:
        cfn_pipeline = pipeline.node.default_child
        for stage_index, stage in enumerate(spec.stages):
            for action_index, action in enumerate(stage.actions):
                if action.kind is ActionKind.APPROVAL:
                    cfn_pipeline.add_property_override(
                        f"Stages.{stage_index}.Actions.{action_index}.TimeoutInMinutes",
                        minutes,
                    )

    def _create_metric(self, binding) -> cloudwatch.Metric:
        return cloudwatch.Metric(
            namespace=binding.namespace,
            metric_name=binding.metric_name,
            statistic=binding.statistic,
            period=Duration.seconds(binding.period_seconds),
            label=binding.label,
            color=binding.color,
        )

    def _create_widget(self, widget: Widget) -> cloudwatch.IWidget:
        metrics = [self._create_metric(binding) for binding in widget.metrics]

        if widget.kind is WidgetKind.PIE:
            return cloudwatch.GraphWidget(
                title=widget.title,
                width=widget.width,
                height=widget.height,
                view=cloudwatch.GraphWidgetView.PIE,
                left=metrics,
            )
        if widget.kind is WidgetKind.SINGLE_VALUE:
            return cloudwatch.SingleValueWidget(
                title=widget.title,
                width=widget.width,
                height=widget.height,
                metrics=metrics,
            )
        if widget.kind is WidgetKind.GAUGE:
            return cloudwatch.GaugeWidget(
                title=widget.title,
                width=widget.width,
                height=widget.height,
                metrics=metrics,
                left_y_axis=cloudwatch.YAxisProps(min=widget.y_min, max=widget.y_max),
            )
        return cloudwatch.GraphWidget(
            title=widget.title,
            width=widget.width,
            height=widget.height,
            left=metrics,
        )

    def _create_dashboard(self, spec: DashboardSpec) -> cloudwatch.Dashboard:
        """Create CloudWatch dashboard with one add_widgets call per row."""
        dashboard = cloudwatch.Dashboard(
            self,
            "PipelineDashboard",
            dashboard_name=spec.name,
        )

        for row in spec.rows:
            dashboard.add_widgets(*[self._create_widget(widget) for widget in row])

        return dashboard

    def _create_failure_notification(self, rule: NotificationRule) -> sns.Topic:
        """
        Create SNS topic and EventBridge rule publishing failed executions

        Args:
            rule: Notification wiring

        Returns:
            SNS Topic receiving failure messages
        """
        topic = sns.Topic(
            self,
            "PipelineFailureTopic",
            topic_name=rule.topic_name,
            display_name="CI/CD Pipeline Failures",
        )

        for email in rule.subscribers:
            topic.add_subscription(subscriptions.EmailSubscription(email))

        pattern = rule.event_filter.to_event_pattern()
        event_rule = events.Rule(
            self,
            "PipelineFailureRule",
            rule_name=rule.rule_name,
            description="Notify when a pipeline execution fails",
            event_pattern=events.EventPattern(
                source=pattern["source"],
                detail_type=pattern["detail-type"],
                detail=pattern["detail"],
            ),
        )

        message = rule.message_template.format(
            **{
                placeholder: events.EventField.from_path(path)
                for placeholder, path in rule.message_fields
            }
        )
        event_rule.add_target(
            targets.SnsTopic(topic, message=events.RuleTargetInput.from_text(message))
        )

        return topic

    def _create_outputs(self) -> None:
        CfnOutput(
            self,
            "PipelineName",
            value=self.pipeline.pipeline_name,
            description="Name of the CI/CD pipeline",
        )

        if self.dashboard is not None:
            CfnOutput(
                self,
                "DashboardName",
                value=self.spec.dashboard.name,
                description="Name of the build metrics dashboard",
            )

        if self.failure_topic is not None:
            CfnOutput(
                self,
                "FailureTopicArn",
                value=self.failure_topic.topic_arn,
                description="ARN of the SNS topic for pipeline failures",
            )
