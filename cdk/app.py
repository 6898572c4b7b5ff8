#!/usr/bin/env python3
"""
CDK app for the staged static-site deployment.

Exactly one stack is synthesized per invocation, selected by the ``stage``
context value. The stage scripts pass every value via --context flags:

Stage A:
    StageACloudFrontStack - S3 bucket + CloudFront distribution

Stage B:
    StageBSslCertificateStack - ACM certificate in us-east-1

Stage C:
    StageCLambdaStack - Lambda function + Function URL

Stage D:
    StageDReactStack - React deployment role and log group

Stage E:
    StageEReactApiStack - CloudFront access to the Lambda Function URL

Usage:
    cdk deploy StageACloudFrontStack \\
        --context stage=a \\
        --context distribution_prefix="my-site" \\
        --context target_region="us-east-1" \\
        --context target_vpc_id="vpc-0123456789abcdef0"
"""

import os

import aws_cdk as cdk
from stacks import (
    CERTIFICATE_REGION,
    CONTEXT_BUCKET_NAME,
    CONTEXT_CERTIFICATE_ARN,
    CONTEXT_DISTRIBUTION_DOMAIN_NAME,
    CONTEXT_DISTRIBUTION_ID,
    CONTEXT_DISTRIBUTION_PREFIX,
    CONTEXT_DOMAINS,
    CONTEXT_INFRA_ACCOUNT_ID,
    CONTEXT_LAMBDA_CODE_PATH,
    CONTEXT_LAMBDA_FUNCTION_ARN,
    CONTEXT_LAMBDA_FUNCTION_URL,
    CONTEXT_PRIMARY_DOMAIN,
    CONTEXT_STAGE,
    CONTEXT_TARGET_ACCOUNT_ID,
    CONTEXT_TARGET_REGION,
    CONTEXT_TARGET_VPC_ID,
    STAGE_A_STACK_NAME,
    STAGE_B_STACK_NAME,
    STAGE_C_STACK_NAME,
    STAGE_D_STACK_NAME,
    STAGE_E_STACK_NAME,
    CloudFrontStack,
    LambdaStack,
    ReactApiStack,
    ReactStack,
    SslCertificateStack,
)

app = cdk.App()


def context(key: str) -> str | None:
    value = app.node.try_get_context(key)
    return str(value) if value not in (None, "") else None


stage = (context(CONTEXT_STAGE) or "").lower()
target_region = context(CONTEXT_TARGET_REGION) or os.environ.get("CDK_DEFAULT_REGION")

# Environment configuration - uses CDK CLI's resolved account
env = cdk.Environment(
    account=os.environ.get("CDK_DEFAULT_ACCOUNT"),
    region=target_region,
)

if stage == "a":
    CloudFrontStack(
        app,
        STAGE_A_STACK_NAME,
        distribution_prefix=context(CONTEXT_DISTRIBUTION_PREFIX),
        target_region=target_region,
        target_vpc_id=context(CONTEXT_TARGET_VPC_ID),
        env=env,
    )

elif stage == "b":
    SslCertificateStack(
        app,
        STAGE_B_STACK_NAME,
        domains=(context(CONTEXT_DOMAINS) or "").split(","),
        distribution_id=context(CONTEXT_DISTRIBUTION_ID),
        distribution_domain_name=context(CONTEXT_DISTRIBUTION_DOMAIN_NAME),
        infra_account_id=context(CONTEXT_INFRA_ACCOUNT_ID),
        target_account_id=context(CONTEXT_TARGET_ACCOUNT_ID),
        existing_certificate_arn=context(CONTEXT_CERTIFICATE_ARN),
        # CloudFront certificates must be in us-east-1
        env=cdk.Environment(account=env.account, region=CERTIFICATE_REGION),
    )

elif stage == "c":
    LambdaStack(
        app,
        STAGE_C_STACK_NAME,
        distribution_prefix=context(CONTEXT_DISTRIBUTION_PREFIX),
        target_region=target_region,
        distribution_id=context(CONTEXT_DISTRIBUTION_ID),
        bucket_name=context(CONTEXT_BUCKET_NAME),
        code_path=context(CONTEXT_LAMBDA_CODE_PATH),
        env=env,
    )

elif stage == "d":
    ReactStack(
        app,
        STAGE_D_STACK_NAME,
        distribution_prefix=context(CONTEXT_DISTRIBUTION_PREFIX),
        distribution_id=context(CONTEXT_DISTRIBUTION_ID),
        distribution_domain_name=context(CONTEXT_DISTRIBUTION_DOMAIN_NAME),
        bucket_name=context(CONTEXT_BUCKET_NAME),
        primary_domain=context(CONTEXT_PRIMARY_DOMAIN),
        env=env,
    )

elif stage == "e":
    ReactApiStack(
        app,
        STAGE_E_STACK_NAME,
        distribution_prefix=context(CONTEXT_DISTRIBUTION_PREFIX),
        distribution_id=context(CONTEXT_DISTRIBUTION_ID),
        distribution_domain_name=context(CONTEXT_DISTRIBUTION_DOMAIN_NAME),
        bucket_name=context(CONTEXT_BUCKET_NAME),
        primary_domain=context(CONTEXT_PRIMARY_DOMAIN),
        lambda_function_arn=context(CONTEXT_LAMBDA_FUNCTION_ARN),
        lambda_function_url=context(CONTEXT_LAMBDA_FUNCTION_URL),
        env=env,
    )

app.synth()
