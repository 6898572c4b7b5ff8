"""
CDK stack for the Stage C Lambda API.

This stack creates a Node.js Lambda function exposed through an IAM-authorized
Function URL, including:
- CloudWatch log group with one month retention
- Execution role with basic execution and scoped logs permissions
- Function URL with CORS for the React front end

Usage:
    cdk deploy StageCLambdaStack \\
        --context stage=c \\
        --context distribution_prefix="my-site" \\
        --context target_region="us-east-1" \\
        --context distribution_id="E1ABCDEF2GHIJK" \\
        --context bucket_name="my-site-content-123456789012"
"""

import os
import re

from aws_cdk import CfnOutput, Duration, RemovalPolicy, Stack, Tags
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_logs as logs
from constructs import Construct

from .constants import PREFIX_PATTERN

DEFAULT_CODE_PATH = os.path.join(
    os.path.dirname(__file__), "..", "..", "apps", "hello-world-lambda"
)


class LambdaStack(Stack):
    """
    Stack for the hello-world Lambda API.

    Attributes:
        log_group: The function's log group.
        function: The Lambda function.
        function_url: The IAM-authorized Function URL.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        distribution_prefix: str,
        target_region: str,
        distribution_id: str,
        bucket_name: str,
        code_path: str | None = None,
        **kwargs,
    ) -> None:
        """
        Initialize the LambdaStack.

        Args:
            scope: CDK app or stage scope.
            construct_id: Unique identifier for this stack.
            distribution_prefix: Kebab-case token used in resource names.
            target_region: Region passed to the function environment.
            distribution_id: Stage A distribution id (function environment).
            bucket_name: Stage A bucket name (function environment).
            code_path: Directory holding index.js; defaults to apps/hello-world-lambda.
            **kwargs: Additional stack properties (env, etc.).

        Raises:
            ValueError: If the prefix is invalid or the code directory is missing.
        """
        super().__init__(scope, construct_id, **kwargs)

        if not distribution_prefix or not re.match(PREFIX_PATTERN, distribution_prefix):
            raise ValueError(f"Invalid distribution_prefix: {distribution_prefix}")

        code_path = os.path.abspath(code_path or DEFAULT_CODE_PATH)
        if not os.path.isfile(os.path.join(code_path, "index.js")):
            raise ValueError(f"Lambda code not found: {code_path}/index.js")

        function_name = f"{distribution_prefix}-api"

        # 1. Log group (created up front so retention and removal are managed)
        self.log_group = logs.LogGroup(
            self,
            "LambdaLogGroup",
            log_group_name=f"/aws/lambda/{function_name}",
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=RemovalPolicy.DESTROY,
        )

        # 2. Execution role
        execution_role = iam.Role(
            self,
            "LambdaExecutionRole",
            role_name=f"{distribution_prefix}-lambda-execution-role",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            description=f"Execution role for {function_name}",
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AWSLambdaBasicExecutionRole"
                )
            ],
        )

        execution_role.add_to_policy(
            iam.PolicyStatement(
                sid="CloudWatchLogsAccess",
                actions=["logs:CreateLogStream", "logs:PutLogEvents"],
                resources=[self.log_group.log_group_arn, f"{self.log_group.log_group_arn}:*"],
            )
        )

        # 3. Function
        self.function = lambda_.Function(
            self,
            "ApiFunction",
            function_name=function_name,
            runtime=lambda_.Runtime.NODEJS_20_X,
            handler="index.handler",
            code=lambda_.Code.from_asset(code_path),
            memory_size=128,
            timeout=Duration.seconds(30),
            role=execution_role,
            log_group=self.log_group,
            description=f"{distribution_prefix} hello-world API",
            environment={
                "DISTRIBUTION_PREFIX": distribution_prefix,
                "TARGET_REGION": target_region,
                "DISTRIBUTION_ID": distribution_id,
                "BUCKET_NAME": bucket_name,
            },
        )

        # 4. Function URL
        self.function_url = self.function.add_function_url(
            auth_type=lambda_.FunctionUrlAuthType.AWS_IAM,
            cors=lambda_.FunctionUrlCorsOptions(
                allowed_headers=["Content-Type", "Authorization"],
                allowed_methods=[lambda_.HttpMethod.GET, lambda_.HttpMethod.POST],
                allowed_origins=["*"],
                max_age=Duration.minutes(5),
            ),
        )

        Tags.of(self).add("Stage", "C-Lambda")
        Tags.of(self).add("Runtime", "nodejs20.x")
        Tags.of(self).add("DistributionPrefix", distribution_prefix)

        outputs = {
            "LambdaFunctionArn": (self.function.function_arn, "Lambda function ARN"),
            "LambdaFunctionName": (self.function.function_name, "Lambda function name"),
            "FunctionUrl": (self.function_url.url, "Lambda Function URL (AWS_IAM auth)"),
            "LogGroupName": (self.log_group.log_group_name, "Lambda log group"),
            "TargetRegion": (target_region, "Target region"),
            "DistributionPrefix": (distribution_prefix, "Naming prefix"),
            "DistributionId": (distribution_id, "Stage A distribution ID"),
            "BucketName": (bucket_name, "Stage A bucket name"),
        }
        for output_id, (value, description) in outputs.items():
            CfnOutput(
                self,
                output_id,
                value=value,
                description=description,
                export_name=f"{distribution_prefix}-lambda-{output_id}",
            )
