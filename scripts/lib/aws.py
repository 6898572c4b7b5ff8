"""AWS client helpers for boto3 operations."""

import json
import logging
import time
from collections.abc import Callable
from copy import deepcopy
from typing import Any

import boto3
from botocore.exceptions import ClientError, WaiterError

from .console import print_success, print_warning

logger = logging.getLogger(__name__)

API_PATH_PATTERN = "/api/*"
API_ORIGIN_ID = "lambda-api-origin"

# AWS managed CloudFront policies
CACHING_DISABLED_POLICY_ID = "4135ea2d-6df8-44a3-9df3-4b5a84be39ad"
ALL_VIEWER_EXCEPT_HOST_POLICY_ID = "b689b0a8-53d0-40ab-baf2-68738e2966ac"

ALL_METHODS = ["GET", "HEAD", "OPTIONS", "PUT", "POST", "PATCH", "DELETE"]


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def get_session(profile: str | None = None, region: str | None = None) -> boto3.Session:
    """Create boto3 session with optional profile."""
    if profile:
        return boto3.Session(profile_name=profile, region_name=region)
    return boto3.Session(region_name=region)


def get_account_id(session: boto3.Session) -> str:
    """Get the AWS account ID."""
    sts = session.client("sts")
    return sts.get_caller_identity()["Account"]


def check_cdk_bootstrap(session: boto3.Session, region: str) -> bool:
    """Check if CDK is bootstrapped in the account/region."""
    return stack_exists(session, "CDKToolkit", region)


def stack_exists(session: boto3.Session, stack_name: str, region: str) -> bool:
    """Check if a CloudFormation stack exists."""
    cf = session.client("cloudformation", region_name=region)
    try:
        cf.describe_stacks(StackName=stack_name)
        return True
    except ClientError as e:
        if "does not exist" in str(e):
            return False
        raise


def get_stack_outputs(session: boto3.Session, stack_name: str, region: str) -> dict[str, str]:
    """Get all outputs of a CloudFormation stack as a dict."""
    cf = session.client("cloudformation", region_name=region)
    try:
        response = cf.describe_stacks(StackName=stack_name)
    except ClientError as e:
        if "does not exist" in str(e):
            return {}
        raise

    stacks = response.get("Stacks", [])
    if not stacks:
        return {}
    return {o["OutputKey"]: o["OutputValue"] for o in stacks[0].get("Outputs", [])}


def delete_stack_and_wait(session: boto3.Session, stack_name: str, region: str) -> bool:
    """Delete a CloudFormation stack and wait for completion."""
    cf = session.client("cloudformation", region_name=region)

    if not stack_exists(session, stack_name, region):
        print_warning(f"{stack_name} not found, skipping")
        return False

    cf.delete_stack(StackName=stack_name)

    waiter = cf.get_waiter("stack_delete_complete")
    try:
        waiter.wait(StackName=stack_name)
    except WaiterError as e:
        print_warning(f"{stack_name} deletion did not complete: {e}")
        return False

    print_success(f"{stack_name} destroyed")
    return True


# --- EC2 ---------------------------------------------------------------


def vpc_exists(session: boto3.Session, vpc_id: str, region: str) -> bool:
    """Check that a VPC exists in the region."""
    ec2 = session.client("ec2", region_name=region)
    try:
        response = ec2.describe_vpcs(VpcIds=[vpc_id])
    except ClientError as e:
        if error_code(e) == "InvalidVpcID.NotFound":
            return False
        raise
    return bool(response.get("Vpcs"))


def region_enabled(session: boto3.Session, region: str) -> bool:
    """Check that the region is enabled for the account."""
    ec2 = session.client("ec2", region_name="us-east-1")
    regions = ec2.describe_regions().get("Regions", [])
    return any(r.get("RegionName") == region for r in regions)


# --- CloudFront --------------------------------------------------------


def list_distributions(session: boto3.Session) -> list[dict[str, Any]]:
    """List all CloudFront distribution summaries."""
    cloudfront = session.client("cloudfront")
    paginator = cloudfront.get_paginator("list_distributions")
    distributions = []
    for page in paginator.paginate():
        distributions.extend(page.get("DistributionList", {}).get("Items", []))
    return distributions


def distributions_in_progress(session: boto3.Session) -> list[str]:
    """Return ids of distributions whose changes are still propagating."""
    return [d["Id"] for d in list_distributions(session) if d.get("Status") == "InProgress"]


def find_distributions_by_comment(session: boto3.Session, text: str) -> list[dict[str, Any]]:
    """Distributions whose Comment contains ``text``."""
    return [d for d in list_distributions(session) if text in d.get("Comment", "")]


def get_distribution(session: boto3.Session, distribution_id: str) -> dict[str, Any] | None:
    """Get a distribution, or None if it does not exist."""
    cloudfront = session.client("cloudfront")
    try:
        return cloudfront.get_distribution(Id=distribution_id)["Distribution"]
    except ClientError as e:
        if error_code(e) == "NoSuchDistribution":
            return None
        raise


def update_distribution_config(
    session: boto3.Session,
    distribution_id: str,
    transform: Callable[[dict[str, Any]], dict[str, Any]],
) -> bool:
    """
    Apply ``transform`` to a distribution's config and push it back.

    Uses the config ETag for optimistic locking. Returns False without
    calling UpdateDistribution when the transform changed nothing.
    """
    cloudfront = session.client("cloudfront")
    response = cloudfront.get_distribution_config(Id=distribution_id)
    current = response["DistributionConfig"]
    updated = transform(deepcopy(current))

    if updated == current:
        logger.info("Distribution %s already up to date", distribution_id)
        return False

    cloudfront.update_distribution(
        Id=distribution_id,
        IfMatch=response["ETag"],
        DistributionConfig=updated,
    )
    logger.info("Updated distribution %s", distribution_id)
    return True


def with_certificate(
    config: dict[str, Any], domains: list[str], certificate_arn: str
) -> dict[str, Any]:
    """Attach custom domain aliases and an ACM certificate to a config."""
    config["Aliases"] = {"Quantity": len(domains), "Items": list(domains)}
    config["ViewerCertificate"] = {
        "ACMCertificateArn": certificate_arn,
        "SSLSupportMethod": "sni-only",
        "MinimumProtocolVersion": "TLSv1.2_2021",
        "CertificateSource": "acm",
    }
    return config


def without_certificate(config: dict[str, Any]) -> dict[str, Any]:
    """Drop aliases and restore the default *.cloudfront.net certificate."""
    config["Aliases"] = {"Quantity": 0}
    config["ViewerCertificate"] = {
        "CloudFrontDefaultCertificate": True,
        "MinimumProtocolVersion": "TLSv1",
        "CertificateSource": "cloudfront",
    }
    return config


def certificate_attached(distribution: dict[str, Any], certificate_arn: str) -> bool:
    """True when the distribution serves the given ACM certificate."""
    viewer = distribution.get("DistributionConfig", {}).get("ViewerCertificate", {})
    return viewer.get("ACMCertificateArn") == certificate_arn


def distribution_aliases(distribution: dict[str, Any]) -> list[str]:
    return distribution.get("DistributionConfig", {}).get("Aliases", {}).get("Items", [])


def api_origin(lambda_domain: str, origin_access_control_id: str = "") -> dict[str, Any]:
    """Custom origin pointing at a Lambda Function URL host."""
    return {
        "Id": API_ORIGIN_ID,
        "DomainName": lambda_domain,
        "OriginPath": "",
        "CustomHeaders": {"Quantity": 0},
        "CustomOriginConfig": {
            "HTTPPort": 80,
            "HTTPSPort": 443,
            "OriginProtocolPolicy": "https-only",
            "OriginSslProtocols": {"Quantity": 1, "Items": ["TLSv1.2"]},
            "OriginReadTimeout": 30,
            "OriginKeepaliveTimeout": 5,
        },
        "ConnectionAttempts": 3,
        "ConnectionTimeout": 10,
        "OriginShield": {"Enabled": False},
        "OriginAccessControlId": origin_access_control_id,
    }


def api_cache_behavior() -> dict[str, Any]:
    """Uncached behavior routing /api/* to the Lambda origin."""
    return {
        "PathPattern": API_PATH_PATTERN,
        "TargetOriginId": API_ORIGIN_ID,
        "ViewerProtocolPolicy": "redirect-to-https",
        "CachePolicyId": CACHING_DISABLED_POLICY_ID,
        "OriginRequestPolicyId": ALL_VIEWER_EXCEPT_HOST_POLICY_ID,
        "Compress": True,
        "AllowedMethods": {
            "Quantity": len(ALL_METHODS),
            "Items": list(ALL_METHODS),
            "CachedMethods": {"Quantity": 2, "Items": ["GET", "HEAD"]},
        },
        "SmoothStreaming": False,
        "FieldLevelEncryptionId": "",
        "LambdaFunctionAssociations": {"Quantity": 0},
        "FunctionAssociations": {"Quantity": 0},
    }


def with_api_behavior(
    config: dict[str, Any], lambda_domain: str, origin_access_control_id: str = ""
) -> dict[str, Any]:
    """Add (or refresh) the Lambda origin and put /api/* first in precedence."""
    origins = [o for o in config["Origins"].get("Items", []) if o["Id"] != API_ORIGIN_ID]
    origins.append(api_origin(lambda_domain, origin_access_control_id))
    config["Origins"] = {"Quantity": len(origins), "Items": origins}

    behaviors = [
        b
        for b in config.get("CacheBehaviors", {}).get("Items", [])
        if b["PathPattern"] != API_PATH_PATTERN
    ]
    behaviors.insert(0, api_cache_behavior())
    config["CacheBehaviors"] = {"Quantity": len(behaviors), "Items": behaviors}
    return config


def without_api_behavior(config: dict[str, Any]) -> dict[str, Any]:
    """Remove the /api/* behavior and the Lambda origin."""
    origins = [o for o in config["Origins"].get("Items", []) if o["Id"] != API_ORIGIN_ID]
    config["Origins"] = {"Quantity": len(origins), "Items": origins}

    behaviors = [
        b
        for b in config.get("CacheBehaviors", {}).get("Items", [])
        if b["PathPattern"] != API_PATH_PATTERN
    ]
    config["CacheBehaviors"] = {"Quantity": len(behaviors)}
    if behaviors:
        config["CacheBehaviors"]["Items"] = behaviors
    return config


def has_api_behavior(distribution: dict[str, Any]) -> bool:
    config = distribution.get("DistributionConfig", {})
    behaviors = config.get("CacheBehaviors", {}).get("Items", [])
    origins = config.get("Origins", {}).get("Items", [])
    return any(b.get("PathPattern") == API_PATH_PATTERN for b in behaviors) and any(
        o.get("Id") == API_ORIGIN_ID for o in origins
    )


def create_invalidation(
    session: boto3.Session, distribution_id: str, paths: list[str] | None = None
) -> str:
    """Create a cache invalidation and return its id."""
    paths = paths or ["/*"]
    cloudfront = session.client("cloudfront")
    response = cloudfront.create_invalidation(
        DistributionId=distribution_id,
        InvalidationBatch={
            "Paths": {"Quantity": len(paths), "Items": paths},
            "CallerReference": f"playbook-{time.time_ns()}",
        },
    )
    invalidation_id = response["Invalidation"]["Id"]
    logger.info("Created invalidation %s on %s for %s", invalidation_id, distribution_id, paths)
    return invalidation_id


def get_invalidation_status(
    session: boto3.Session, distribution_id: str, invalidation_id: str
) -> str:
    cloudfront = session.client("cloudfront")
    response = cloudfront.get_invalidation(DistributionId=distribution_id, Id=invalidation_id)
    return response["Invalidation"]["Status"]


# --- S3 ----------------------------------------------------------------


def find_buckets_by_prefix(session: boto3.Session, prefix: str) -> list[str]:
    s3 = session.client("s3")
    buckets = s3.list_buckets().get("Buckets", [])
    return [b["Name"] for b in buckets if b["Name"].startswith(prefix)]


def get_bucket_region(session: boto3.Session, bucket: str) -> str:
    s3 = session.client("s3")
    location = s3.get_bucket_location(Bucket=bucket).get("LocationConstraint")
    # us-east-1 buckets report no location constraint
    return location or "us-east-1"


def bucket_summary(session: boto3.Session, bucket: str) -> tuple[int, int]:
    """Return (object count, total size in bytes) for a bucket."""
    s3 = session.client("s3")
    count = size = 0
    for page in s3.get_paginator("list_objects_v2").paginate(Bucket=bucket):
        for obj in page.get("Contents", []):
            count += 1
            size += obj.get("Size", 0)
    return count, size


def list_object_keys(session: boto3.Session, bucket: str) -> list[str]:
    s3 = session.client("s3")
    keys = []
    for page in s3.get_paginator("list_objects_v2").paginate(Bucket=bucket):
        keys.extend(obj["Key"] for obj in page.get("Contents", []))
    return keys


def object_exists(session: boto3.Session, bucket: str, key: str) -> bool:
    s3 = session.client("s3")
    try:
        s3.head_object(Bucket=bucket, Key=key)
        return True
    except ClientError as e:
        if error_code(e) in ("404", "NoSuchKey", "NotFound"):
            return False
        raise


def empty_bucket(session: boto3.Session, bucket: str) -> int:
    """Delete every object in a bucket; returns the number removed."""
    s3 = session.client("s3")
    removed = 0
    try:
        pages = list(s3.get_paginator("list_objects_v2").paginate(Bucket=bucket))
    except ClientError as e:
        if error_code(e) == "NoSuchBucket":
            print_warning(f"Bucket {bucket} not found, skipping")
            return 0
        raise

    for page in pages:
        objects = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
        if not objects:
            continue
        s3.delete_objects(Bucket=bucket, Delete={"Objects": objects, "Quiet": True})
        removed += len(objects)

    logger.info("Removed %d objects from %s", removed, bucket)
    return removed


# --- Lambda / IAM / Logs ----------------------------------------------


def find_functions(session: boto3.Session, text: str, region: str) -> list[str]:
    """Lambda function names containing ``text``."""
    client = session.client("lambda", region_name=region)
    names = []
    for page in client.get_paginator("list_functions").paginate():
        functions = page.get("Functions", [])
        names.extend(f["FunctionName"] for f in functions if text in f["FunctionName"])
    return names


def find_roles_by_prefix(session: boto3.Session, prefix: str) -> list[str]:
    iam = session.client("iam")
    names = []
    for page in iam.get_paginator("list_roles").paginate():
        roles = page.get("Roles", [])
        names.extend(r["RoleName"] for r in roles if r["RoleName"].startswith(prefix))
    return names


def log_group_exists(session: boto3.Session, name: str, region: str) -> bool:
    logs = session.client("logs", region_name=region)
    groups = logs.describe_log_groups(logGroupNamePrefix=name).get("logGroups", [])
    return any(g.get("logGroupName") == name for g in groups)


def find_log_groups(session: boto3.Session, prefix: str, region: str) -> list[str]:
    logs = session.client("logs", region_name=region)
    groups = logs.describe_log_groups(logGroupNamePrefix=prefix).get("logGroups", [])
    return [g["logGroupName"] for g in groups]


def get_lambda_account_settings(session: boto3.Session, region: str) -> dict[str, Any]:
    client = session.client("lambda", region_name=region)
    response = client.get_account_settings()
    return {
        "accountLimit": response.get("AccountLimit", {}),
        "accountUsage": response.get("AccountUsage", {}),
    }


def get_function(session: boto3.Session, name: str, region: str) -> dict[str, Any] | None:
    """Function configuration, or None if the function does not exist."""
    client = session.client("lambda", region_name=region)
    try:
        return client.get_function(FunctionName=name)["Configuration"]
    except ClientError as e:
        if error_code(e) == "ResourceNotFoundException":
            return None
        raise


def invoke_function(
    session: boto3.Session, name: str, region: str, payload: dict[str, Any] | None = None
) -> dict[str, Any]:
    """
    Synchronously invoke a Lambda function.

    Returns:
        The decoded JSON response payload.

    Raises:
        RuntimeError: If the function reported an error.
    """
    client = session.client("lambda", region_name=region)
    response = client.invoke(
        FunctionName=name,
        InvocationType="RequestResponse",
        Payload=json.dumps(payload or {}).encode(),
    )
    body = response["Payload"].read()
    if response.get("FunctionError"):
        raise RuntimeError(f"{name} returned {response['FunctionError']}: {body[:500]!r}")
    return json.loads(body or b"{}")
