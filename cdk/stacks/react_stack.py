"""
CDK stack for Stage D React deployment support.

The React build itself is uploaded by the stage script; this stack adds a
deployment log group and a role scoped to the Stage A bucket and
distribution, and publishes the URLs the validation step uses.

Usage:
    cdk deploy StageDReactStack \\
        --context stage=d \\
        --context distribution_prefix="my-site" \\
        --context distribution_id="E1ABCDEF2GHIJK" \\
        --context distribution_domain_name="d111111abcdef8.cloudfront.net" \\
        --context bucket_name="my-site-content-123456789012" \\
        --context primary_domain="example.com"
"""

import re

from aws_cdk import Aws, CfnOutput, RemovalPolicy, Stack, Tags
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from aws_cdk import aws_s3 as s3
from constructs import Construct

from .constants import DISTRIBUTION_ID_PATTERN, PREFIX_PATTERN


def deployment_policies(
    bucket: s3.IBucket, distribution_id: str, log_group: logs.ILogGroup
) -> dict[str, iam.PolicyDocument]:
    """Inline policies for a role that uploads content and invalidates the cache."""
    return {
        "S3DeploymentPolicy": iam.PolicyDocument(
            statements=[
                iam.PolicyStatement(
                    actions=["s3:GetObject", "s3:PutObject", "s3:DeleteObject", "s3:ListBucket"],
                    resources=[bucket.bucket_arn, f"{bucket.bucket_arn}/*"],
                )
            ]
        ),
        "CloudFrontInvalidationPolicy": iam.PolicyDocument(
            statements=[
                iam.PolicyStatement(
                    actions=[
                        "cloudfront:CreateInvalidation",
                        "cloudfront:GetInvalidation",
                        "cloudfront:ListInvalidations",
                    ],
                    resources=[
                        f"arn:aws:cloudfront::{Aws.ACCOUNT_ID}:distribution/{distribution_id}"
                    ],
                )
            ]
        ),
        "CloudWatchLogsPolicy": iam.PolicyDocument(
            statements=[
                iam.PolicyStatement(
                    actions=["logs:CreateLogStream", "logs:PutLogEvents"],
                    resources=[log_group.log_group_arn, f"{log_group.log_group_arn}:*"],
                )
            ]
        ),
    }


class ReactStack(Stack):
    """
    Stack supporting the React application deployment.

    Attributes:
        bucket: The imported Stage A content bucket.
        distribution: The imported Stage A distribution.
        log_group: Deployment log group.
        deployment_role: Role allowed to upload content and invalidate the cache.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        distribution_prefix: str,
        distribution_id: str,
        distribution_domain_name: str,
        bucket_name: str,
        primary_domain: str,
        **kwargs,
    ) -> None:
        """
        Initialize the ReactStack.

        Args:
            scope: CDK app or stage scope.
            construct_id: Unique identifier for this stack.
            distribution_prefix: Kebab-case token used in resource names.
            distribution_id: Stage A distribution id.
            distribution_domain_name: Stage A distribution domain name.
            bucket_name: Stage A content bucket.
            primary_domain: First Stage B domain.
            **kwargs: Additional stack properties (env, etc.).

        Raises:
            ValueError: If an input is empty or malformed.
        """
        super().__init__(scope, construct_id, **kwargs)

        if not distribution_prefix or not re.match(PREFIX_PATTERN, distribution_prefix):
            raise ValueError(f"Invalid distribution_prefix: {distribution_prefix}")
        if not re.match(DISTRIBUTION_ID_PATTERN, distribution_id or ""):
            raise ValueError(f"Invalid distribution_id: {distribution_id}")
        if not bucket_name or not bucket_name.strip():
            raise ValueError("bucket_name cannot be empty")
        if not primary_domain or not primary_domain.strip():
            raise ValueError("primary_domain cannot be empty")

        self.log_group = logs.LogGroup(
            self,
            "ReactDeploymentLogGroup",
            log_group_name=f"/aws/react-deployment/{distribution_prefix}",
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=RemovalPolicy.DESTROY,
        )

        self.bucket = s3.Bucket.from_bucket_name(self, "ImportedBucket", bucket_name)
        self.distribution = cloudfront.Distribution.from_distribution_attributes(
            self,
            "ImportedDistribution",
            distribution_id=distribution_id,
            domain_name=distribution_domain_name,
        )

        self.deployment_role = iam.Role(
            self,
            "ReactDeploymentRole",
            role_name=f"{distribution_prefix}-react-deployment-role",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            description="Role for automated React deployment tasks",
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AWSLambdaBasicExecutionRole"
                )
            ],
            inline_policies=deployment_policies(self.bucket, distribution_id, self.log_group),
        )

        Tags.of(self).add("Stage", "D-React")
        Tags.of(self).add("Component", "React-Deployment")
        Tags.of(self).add("DistributionPrefix", distribution_prefix)

        outputs = {
            "ReactS3BucketName": (bucket_name, "S3 bucket holding the React build"),
            "ReactCloudFrontDistributionId": (distribution_id, "CloudFront distribution ID"),
            "ReactCloudFrontDomainName": (
                distribution_domain_name,
                "CloudFront distribution domain name",
            ),
            "ReactPrimaryDomain": (primary_domain, "Primary custom domain"),
            "ReactDeploymentRoleArn": (self.deployment_role.role_arn, "Deployment role ARN"),
            "ReactLogGroupName": (self.log_group.log_group_name, "Deployment log group"),
        }
        for output_id, (value, description) in outputs.items():
            CfnOutput(
                self,
                output_id,
                value=value,
                description=description,
                export_name=f"{distribution_prefix}-{output_id}",
            )
