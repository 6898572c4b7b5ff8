"""CDK stacks for the staged static-site deployment."""

from .cloudfront_stack import CloudFrontStack
from .constants import (
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
    STACK_NAMES,
    STAGE_A_STACK_NAME,
    STAGE_B_STACK_NAME,
    STAGE_C_STACK_NAME,
    STAGE_D_STACK_NAME,
    STAGE_E_STACK_NAME,
)
from .lambda_stack import LambdaStack
from .react_api_stack import ReactApiStack
from .react_stack import ReactStack
from .ssl_certificate_stack import SslCertificateStack

__all__ = [
    # Stacks
    "CloudFrontStack",
    "SslCertificateStack",
    "LambdaStack",
    "ReactStack",
    "ReactApiStack",
    # Constants
    "STACK_NAMES",
    "STAGE_A_STACK_NAME",
    "STAGE_B_STACK_NAME",
    "STAGE_C_STACK_NAME",
    "STAGE_D_STACK_NAME",
    "STAGE_E_STACK_NAME",
    "CERTIFICATE_REGION",
    "CONTEXT_STAGE",
    "CONTEXT_DISTRIBUTION_PREFIX",
    "CONTEXT_TARGET_REGION",
    "CONTEXT_TARGET_VPC_ID",
    "CONTEXT_DISTRIBUTION_ID",
    "CONTEXT_DISTRIBUTION_DOMAIN_NAME",
    "CONTEXT_BUCKET_NAME",
    "CONTEXT_DOMAINS",
    "CONTEXT_INFRA_ACCOUNT_ID",
    "CONTEXT_TARGET_ACCOUNT_ID",
    "CONTEXT_CERTIFICATE_ARN",
    "CONTEXT_LAMBDA_CODE_PATH",
    "CONTEXT_LAMBDA_FUNCTION_ARN",
    "CONTEXT_LAMBDA_FUNCTION_URL",
    "CONTEXT_PRIMARY_DOMAIN",
]
