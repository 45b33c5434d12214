"""
Storage Stack for the CI/CD pipeline

This stack creates the registry and object store handed to the pipeline:
- ECR repository for the application image
- S3 bucket for build artifacts
"""

import logging

from aws_cdk import (
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    aws_ecr as ecr,
    aws_s3 as s3,
)
from constructs import Construct

logger = logging.getLogger(__name__)


class StorageStack(Stack):
    """
    Stack containing the ECR repository and the artifact bucket
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        project_name: str,
        max_image_count: int = 10,
        artifact_retention_days: int = 30,
        **kwargs
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.project_name = project_name

        self.ecr_repository = self._create_ecr_repository(max_image_count)
        self.artifact_bucket = self._create_artifact_bucket(artifact_retention_days)

        self._create_outputs()

    def _create_ecr_repository(self, max_image_count: int) -> ecr.Repository:
        """
        Create ECR repository with scan on push and image retention

        Args:
            max_image_count: Number of images kept in the repository

        Returns:
            ECR Repository for the application image
        """
        repository = ecr.Repository(
            self,
            "ContainerRepository",
            repository_name=f"{self.project_name}-repo",
            image_scan_on_push=True,
            encryption=ecr.RepositoryEncryption.AES_256,
            removal_policy=RemovalPolicy.DESTROY,
            empty_on_delete=True,
        )

        repository.add_lifecycle_rule(
            description=f"Keep last {max_image_count} images",
            max_image_count=max_image_count,
        )

        logger.info("Declared ECR repository for %s", self.project_name)
        return repository

    def _create_artifact_bucket(self, retention_days: int) -> s3.Bucket:
        """Create encrypted S3 bucket for build artifacts."""
        return s3.Bucket(
            self,
            "ArtifactBucket",
            versioned=True,
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True,
            lifecycle_rules=[
                s3.LifecycleRule(
                    id="ArtifactCleanup",
                    enabled=True,
                    expiration=Duration.days(retention_days),
                    noncurrent_version_expiration=Duration.days(7),
                ),
            ],
        )

    def _create_outputs(self) -> None:
        CfnOutput(
            self,
            "EcrRepositoryUri",
            value=self.ecr_repository.repository_uri,
            description="URI of the application image repository",
        )

        CfnOutput(
            self,
            "ArtifactBucketName",
            value=self.artifact_bucket.bucket_name,
            description="Name of the build artifact bucket",
        )
