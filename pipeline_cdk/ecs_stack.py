"""
ECS Stack for the CI/CD pipeline

This stack creates the compute fronts the pipeline deploys to:
- VPC and ECS cluster
- Load-balanced Fargate service for the test environment
- Load-balanced Fargate service for production, controlled by CodeDeploy
- Green target group and test listener used during blue/green deployments
"""

import logging

from aws_cdk import (
    CfnOutput,
    Duration,
    Stack,
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_ecs_patterns as ecs_patterns,
    aws_elasticloadbalancingv2 as elbv2,
)
from constructs import Construct

logger = logging.getLogger(__name__)

CONTAINER_NAME = "app"


class EcsStack(Stack):
    """
    Stack containing the test and production Fargate services

    The production service starts on the blue target group behind port 80;
    CodeDeploy registers the new task set with the green target group and
    verifies it through the test listener before shifting traffic.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        project_name: str,
        ecr_repository: ecr.IRepository,
        initial_image: str = "nginx:latest",
        container_port: int = 80,
        test_listener_port: int = 8080,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.project_name = project_name
        self.ecr_repository = ecr_repository
        self.initial_image = initial_image
        self.container_port = container_port

        self.vpc = self._create_vpc()
        self.cluster = ecs.Cluster(
            self,
            "Cluster",
            cluster_name=f"{project_name}-cluster",
            vpc=self.vpc,
            container_insights_v2=ecs.ContainerInsights.ENABLED,
        )

        self.fargate_service_test = self._create_fargate_service(
            "FargateServiceTest",
            deployment_controller=None,
        )
        self.fargate_service_prod = self._create_fargate_service(
            "FargateServiceProd",
            deployment_controller=ecs.DeploymentController(
                type=ecs.DeploymentControllerType.CODE_DEPLOY
            ),
        )

        self.green_target_group, self.green_listener = self._create_green_slot(
            test_listener_port
        )

        self._create_outputs()

    def _create_vpc(self) -> ec2.Vpc:
        """Create VPC with public and private subnets across two AZs."""
        return ec2.Vpc(
            self,
            "VPC",
            vpc_name=f"{self.project_name}-vpc",
            ip_addresses=ec2.IpAddresses.cidr("10.0.0.0/16"),
            max_azs=2,
            nat_gateways=1,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Private",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=24,
                ),
            ],
        )

    def _create_fargate_service(
        self,
        construct_id: str,
        deployment_controller,
    ) -> ecs_patterns.ApplicationLoadBalancedFargateService:
        """
        Create a load-balanced Fargate service running the application container

        Args:
            construct_id: Construct identifier of the service
            deployment_controller: ECS deployment controller, None for rolling updates

        Returns:
            The load-balanced service with its listener and target group
        """
        service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self,
            construct_id,
            cluster=self.cluster,
            cpu=256,
            memory_limit_mib=512,
            desired_count=1,
            public_load_balancer=True,
            deployment_controller=deployment_controller,
            task_image_options=ecs_patterns.ApplicationLoadBalancedTaskImageOptions(
                image=ecs.ContainerImage.from_registry(self.initial_image),
                container_name=CONTAINER_NAME,
                container_port=self.container_port,
            ),
        )

        service.target_group.configure_health_check(
            path="/",
            healthy_http_codes="200",
            interval=Duration.seconds(30),
            timeout=Duration.seconds(5),
        )

        # Images pushed by the pipeline are pulled with the execution role
        self.ecr_repository.grant_pull(service.task_definition.obtain_execution_role())

        logger.info("Declared Fargate service %s", construct_id)
        return service

    def _create_green_slot(self, test_listener_port: int):
        """Create the green target group and the listener used to test it."""
        green_target_group = elbv2.ApplicationTargetGroup(
            self,
            "GreenTargetGroup",
            vpc=self.vpc,
            port=self.container_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=elbv2.HealthCheck(
                path="/",
                healthy_http_codes="200",
                interval=Duration.seconds(30),
                timeout=Duration.seconds(5),
            ),
        )

        green_listener = self.fargate_service_prod.load_balancer.add_listener(
            "GreenListener",
            port=test_listener_port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            default_target_groups=[green_target_group],
        )

        return green_target_group, green_listener

    def _create_outputs(self) -> None:
        CfnOutput(
            self,
            "TestServiceUrl",
            value=f"http://{self.fargate_service_test.load_balancer.load_balancer_dns_name}",
            description="URL of the test environment",
        )

        CfnOutput(
            self,
            "ProductionServiceUrl",
            value=f"http://{self.fargate_service_prod.load_balancer.load_balancer_dns_name}",
            description="URL of the production environment",
        )
