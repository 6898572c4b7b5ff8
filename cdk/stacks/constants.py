"""Constants used across CDK stacks."""

# Stack names - used by the stage scripts for deploy, status and undo
STAGE_A_STACK_NAME = "StageACloudFrontStack"
STAGE_B_STACK_NAME = "StageBSslCertificateStack"
STAGE_C_STACK_NAME = "StageCLambdaStack"
STAGE_D_STACK_NAME = "StageDReactStack"
STAGE_E_STACK_NAME = "StageEReactApiStack"

STACK_NAMES = {
    "a": STAGE_A_STACK_NAME,
    "b": STAGE_B_STACK_NAME,
    "c": STAGE_C_STACK_NAME,
    "d": STAGE_D_STACK_NAME,
    "e": STAGE_E_STACK_NAME,
}

# CloudFront only accepts ACM certificates from this region
CERTIFICATE_REGION = "us-east-1"

API_PATH_PATTERN = "/api/*"

# Naming rules shared with the stage scripts
PREFIX_PATTERN = r"^[a-z0-9]+(-[a-z0-9]+)*$"
DISTRIBUTION_ID_PATTERN = r"^E[A-Z0-9]{6,20}$"
CERTIFICATE_ARN_PATTERN = r"^arn:aws:acm:us-east-1:\d{12}:certificate/[0-9a-f-]+$"

# CDK context keys - passed via --context flags from the stage scripts
CONTEXT_STAGE = "stage"
CONTEXT_DISTRIBUTION_PREFIX = "distribution_prefix"
CONTEXT_TARGET_REGION = "target_region"
CONTEXT_TARGET_VPC_ID = "target_vpc_id"
CONTEXT_DISTRIBUTION_ID = "distribution_id"
CONTEXT_DISTRIBUTION_DOMAIN_NAME = "distribution_domain_name"
CONTEXT_BUCKET_NAME = "bucket_name"
CONTEXT_DOMAINS = "domains"
CONTEXT_INFRA_ACCOUNT_ID = "infra_account_id"
CONTEXT_TARGET_ACCOUNT_ID = "target_account_id"
CONTEXT_CERTIFICATE_ARN = "certificate_arn"
CONTEXT_LAMBDA_CODE_PATH = "lambda_code_path"
CONTEXT_LAMBDA_FUNCTION_ARN = "lambda_function_arn"
CONTEXT_LAMBDA_FUNCTION_URL = "lambda_function_url"
CONTEXT_PRIMARY_DOMAIN = "primary_domain"
