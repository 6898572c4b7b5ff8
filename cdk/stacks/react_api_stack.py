"""
CDK stack for Stage E: routing /api/* to the Stage C Lambda.

CloudFront distributions created by another stack cannot be modified from
here, so this stack owns the supporting pieces and the stage script edits
the distribution config:
- Lambda-type Origin Access Control used by the /api/* origin
- Permissions letting the distribution invoke the IAM-authorized Function URL
- Deployment log group and role

Usage:
    cdk deploy StageEReactApiStack \\
        --context stage=e \\
        --context distribution_prefix="my-site" \\
        --context distribution_id="E1ABCDEF2GHIJK" \\
        --context distribution_domain_name="d111111abcdef8.cloudfront.net" \\
        --context bucket_name="my-site-content-123456789012" \\
        --context primary_domain="example.com" \\
        --context lambda_function_arn="arn:aws:lambda:..." \\
        --context lambda_function_url="https://abc.lambda-url.us-east-1.on.aws/"
"""

import re

from aws_cdk import Aws, CfnOutput, RemovalPolicy, Stack, Tags
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_logs as logs
from aws_cdk import aws_s3 as s3
from constructs import Construct

from .constants import API_PATH_PATTERN, DISTRIBUTION_ID_PATTERN, PREFIX_PATTERN
from .react_stack import deployment_policies

OriginAccessControlConfig = cloudfront.CfnOriginAccessControl.OriginAccessControlConfigProperty

LAMBDA_ARN_PATTERN = re.compile(r"^arn:aws:lambda:[a-z0-9-]+:\d{12}:function:[\w-]+$")
FUNCTION_URL_PATTERN = re.compile(r"^https://[a-z0-9]+\.lambda-url\.[a-z0-9-]+\.on\.aws/?$")


def function_url_domain(url: str) -> str:
    """Host part of a Lambda Function URL."""
    return url.replace("https://", "").split("/")[0]


class ReactApiStack(Stack):
    """
    Stack letting CloudFront call the Lambda Function URL.

    Attributes:
        log_group: Deployment log group.
        origin_access_control: OAC that signs /api/* origin requests.
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
        lambda_function_arn: str,
        lambda_function_url: str,
        **kwargs,
    ) -> None:
        """
        Initialize the ReactApiStack.

        Args:
            scope: CDK app or stage scope.
            construct_id: Unique identifier for this stack.
            distribution_prefix: Kebab-case token used in resource names.
            distribution_id: Stage A distribution id.
            distribution_domain_name: Stage A distribution domain name.
            bucket_name: Stage A content bucket.
            primary_domain: First Stage B domain.
            lambda_function_arn: Stage C function ARN.
            lambda_function_url: Stage C Function URL.
            **kwargs: Additional stack properties (env, etc.).

        Raises:
            ValueError: If an input is empty or malformed.
        """
        super().__init__(scope, construct_id, **kwargs)

        if not distribution_prefix or not re.match(PREFIX_PATTERN, distribution_prefix):
            raise ValueError(f"Invalid distribution_prefix: {distribution_prefix}")
        if not re.match(DISTRIBUTION_ID_PATTERN, distribution_id or ""):
            raise ValueError(f"Invalid distribution_id: {distribution_id}")
        if not LAMBDA_ARN_PATTERN.match(lambda_function_arn or ""):
            raise ValueError(f"Invalid lambda_function_arn: {lambda_function_arn}")
        if not FUNCTION_URL_PATTERN.match(lambda_function_url or ""):
            raise ValueError(f"Invalid lambda_function_url: {lambda_function_url}")

        distribution_arn = f"arn:aws:cloudfront::{Aws.ACCOUNT_ID}:distribution/{distribution_id}"

        self.log_group = logs.LogGroup(
            self,
            "ReactApiDeploymentLogGroup",
            log_group_name=f"/aws/react-api-deployment/{distribution_prefix}",
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=RemovalPolicy.DESTROY,
        )

        # 1. OAC so CloudFront signs requests to the AWS_IAM Function URL
        self.origin_access_control = cloudfront.CfnOriginAccessControl(
            self,
            "ApiOriginAccessControl",
            origin_access_control_config=OriginAccessControlConfig(
                name=f"{distribution_prefix}-api-oac",
                description=f"Signs {API_PATH_PATTERN} requests to the {distribution_prefix} API",
                origin_access_control_origin_type="lambda",
                signing_behavior="always",
                signing_protocol="sigv4",
            ),
        )

        # 2. Allow only this distribution to call the function
        for logical_id, action in (
            ("CloudFrontInvokeUrlPermission", "lambda:InvokeFunctionUrl"),
            ("CloudFrontInvokePermission", "lambda:InvokeFunction"),
        ):
            permission = lambda_.CfnPermission(
                self,
                logical_id,
                action=action,
                function_name=lambda_function_arn,
                principal="cloudfront.amazonaws.com",
                source_arn=distribution_arn,
            )
            if action == "lambda:InvokeFunctionUrl":
                permission.function_url_auth_type = "AWS_IAM"

        # 3. Deployment role
        bucket = s3.Bucket.from_bucket_name(self, "ImportedBucket", bucket_name)
        self.deployment_role = iam.Role(
            self,
            "ReactApiDeploymentRole",
            role_name=f"{distribution_prefix}-react-api-deployment-role",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            description="Role for automated React API deployment tasks",
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AWSLambdaBasicExecutionRole"
                )
            ],
            inline_policies=deployment_policies(bucket, distribution_id, self.log_group),
        )

        Tags.of(self).add("Stage", "E")
        Tags.of(self).add("Component", "React-API-Deployment")
        Tags.of(self).add("DistributionPrefix", distribution_prefix)

        outputs = {
            "ReactApiS3BucketName": (bucket_name, "S3 bucket holding the React build"),
            "ReactApiCloudFrontDistributionId": (distribution_id, "CloudFront distribution ID"),
            "ReactApiCloudFrontDomainName": (
                distribution_domain_name,
                "CloudFront distribution domain name",
            ),
            "ReactApiPrimaryDomain": (primary_domain, "Primary custom domain"),
            "ReactApiLambdaFunctionUrl": (lambda_function_url, "Lambda Function URL"),
            "ReactApiLambdaFunctionArn": (lambda_function_arn, "Lambda function ARN"),
            "ReactApiLambdaOriginDomain": (
                function_url_domain(lambda_function_url),
                "Origin domain for the API behavior",
            ),
            "ReactApiOriginAccessControlId": (
                self.origin_access_control.attr_id,
                "Origin Access Control for the API origin",
            ),
            "ReactApiDeploymentRoleArn": (self.deployment_role.role_arn, "Deployment role ARN"),
            "ReactApiLogGroupName": (self.log_group.log_group_name, "Deployment log group"),
            "ReactApiApiBehaviorPattern": (API_PATH_PATTERN, "Path pattern routed to Lambda"),
            "ReactApiApiBehaviorPrecedence": ("0", "Precedence of the API behavior"),
        }
        for output_id, (value, description) in outputs.items():
            CfnOutput(
                self,
                output_id,
                value=value,
                description=description,
                export_name=f"{distribution_prefix}-{output_id}",
            )
