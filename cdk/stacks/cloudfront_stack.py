"""
CDK stack for the Stage A CloudFront distribution.

This stack creates a private S3 bucket for site content and a CloudFront
distribution that reads it through an Origin Access Control. Short TTLs keep
iteration fast while the playbook is being run.

Usage:
    cdk deploy StageACloudFrontStack \\
        --context stage=a \\
        --context distribution_prefix="my-site" \\
        --context target_region="us-east-1" \\
        --context target_vpc_id="vpc-0123456789abcdef0"
"""

import re

from aws_cdk import Aws, CfnOutput, Duration, RemovalPolicy, Stack, Tags
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_s3 as s3
from constructs import Construct

from .constants import PREFIX_PATTERN

ERROR_PAGE_TTL = Duration.minutes(1)


class CloudFrontStack(Stack):
    """
    Stack serving static content from S3 through CloudFront.

    Later stages import the bucket and distribution by name and id, so the
    outputs are exported under the distribution prefix.

    Attributes:
        bucket: The private content bucket.
        distribution: The CloudFront distribution.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        distribution_prefix: str,
        target_region: str,
        target_vpc_id: str,
        **kwargs,
    ) -> None:
        """
        Initialize the CloudFrontStack.

        Args:
            scope: CDK app or stage scope.
            construct_id: Unique identifier for this stack.
            distribution_prefix: Kebab-case token used in resource names.
            target_region: Region the content bucket lives in.
            target_vpc_id: VPC recorded for later stages.
            **kwargs: Additional stack properties (env, etc.).

        Raises:
            ValueError: If distribution_prefix is empty or not kebab-case.
        """
        super().__init__(scope, construct_id, **kwargs)

        if not distribution_prefix or not distribution_prefix.strip():
            raise ValueError("distribution_prefix cannot be empty")
        if not re.match(PREFIX_PATTERN, distribution_prefix):
            raise ValueError(f"Invalid distribution_prefix: {distribution_prefix}")

        self.bucket = s3.Bucket(
            self,
            "ContentBucket",
            bucket_name=f"{distribution_prefix}-content-{Aws.ACCOUNT_ID}",
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            encryption=s3.BucketEncryption.S3_MANAGED,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.DESTROY,
            auto_delete_objects=True,
        )

        origin_access_control = cloudfront.S3OriginAccessControl(
            self,
            "OriginAccessControl",
            description=f"OAC for {distribution_prefix} content bucket",
        )

        cache_policy = cloudfront.CachePolicy(
            self,
            "CachePolicy",
            cache_policy_name=f"{distribution_prefix}-cache-policy",
            comment="Short TTLs for iterative deployments",
            default_ttl=Duration.minutes(1),
            max_ttl=Duration.minutes(1),
            min_ttl=Duration.seconds(0),
            enable_accept_encoding_gzip=True,
            enable_accept_encoding_brotli=True,
        )

        # SPA-style fallback so client-side routes resolve to index.html
        error_responses = [
            cloudfront.ErrorResponse(
                http_status=status,
                response_http_status=200,
                response_page_path="/index.html",
                ttl=ERROR_PAGE_TTL,
            )
            for status in (403, 404)
        ]

        self.distribution = cloudfront.Distribution(
            self,
            "Distribution",
            comment=f"{distribution_prefix} - Stage A CloudFront Distribution",
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.S3BucketOrigin.with_origin_access_control(
                    self.bucket,
                    origin_access_control=origin_access_control,
                ),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                cache_policy=cache_policy,
                compress=True,
            ),
            default_root_object="index.html",
            error_responses=error_responses,
            price_class=cloudfront.PriceClass.PRICE_CLASS_100,
        )

        Tags.of(self).add("Stage", "A-CloudFront")
        Tags.of(self).add("DistributionPrefix", distribution_prefix)

        outputs = {
            "DistributionId": (self.distribution.distribution_id, "CloudFront distribution ID"),
            "DistributionDomainName": (
                self.distribution.distribution_domain_name,
                "CloudFront distribution domain name",
            ),
            "DistributionUrl": (
                f"https://{self.distribution.distribution_domain_name}",
                "CloudFront distribution URL",
            ),
            "BucketName": (self.bucket.bucket_name, "S3 content bucket name"),
            "BucketArn": (self.bucket.bucket_arn, "S3 content bucket ARN"),
            "DistributionPrefix": (distribution_prefix, "Naming prefix"),
            "TargetRegion": (target_region, "Target region"),
            "TargetVpcId": (target_vpc_id, "Target VPC ID"),
        }
        for output_id, (value, description) in outputs.items():
            CfnOutput(
                self,
                output_id,
                value=value,
                description=description,
                export_name=f"{distribution_prefix}-{output_id}",
            )
