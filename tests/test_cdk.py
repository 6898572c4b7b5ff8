"""CDK assertion tests for the stage stacks."""

import os
import sys

import pytest
from aws_cdk import App
from aws_cdk.assertions import Match, Template

# Add cdk directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "cdk"))

from stacks import CloudFrontStack, LambdaStack, ReactApiStack, ReactStack, SslCertificateStack
from stacks.constants import STACK_NAMES as CDK_STACK_NAMES

from scripts.lib.stacks import STACK_NAMES

DISTRIBUTION_ID = "E1ABCDEF2GHIJK"
CERTIFICATE_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/0a1b2c3d-4e5f"
LAMBDA_ARN = "arn:aws:lambda:us-east-1:123456789012:function:my-site-api"
FUNCTION_URL = "https://abc123def456.lambda-url.us-east-1.on.aws/"


class TestCloudFrontStack:
    """Tests for the Stage A CloudFrontStack."""

    @pytest.fixture
    def template(self):
        """Create a template from CloudFrontStack."""
        app = App()
        stack = CloudFrontStack(
            app,
            "TestCloudFrontStack",
            distribution_prefix="my-site",
            target_region="us-east-1",
            target_vpc_id="vpc-12345678",
        )
        return Template.from_stack(stack)

    def test_private_bucket_created(self, template):
        """Test that the content bucket blocks public access."""
        template.has_resource_properties(
            "AWS::S3::Bucket",
            {
                "PublicAccessBlockConfiguration": {
                    "BlockPublicAcls": True,
                    "BlockPublicPolicy": True,
                    "IgnorePublicAcls": True,
                    "RestrictPublicBuckets": True,
                }
            },
        )

    def test_origin_access_control(self, template):
        """Test that the distribution reads S3 through an OAC."""
        template.has_resource_properties(
            "AWS::CloudFront::OriginAccessControl",
            {
                "OriginAccessControlConfig": Match.object_like(
                    {"OriginAccessControlOriginType": "s3", "SigningBehavior": "always"}
                )
            },
        )

    def test_short_ttl_cache_policy(self, template):
        """Test that the cache policy uses one-minute TTLs."""
        template.has_resource_properties(
            "AWS::CloudFront::CachePolicy",
            {
                "CachePolicyConfig": Match.object_like(
                    {"Name": "my-site-cache-policy", "DefaultTTL": 60, "MaxTTL": 60, "MinTTL": 0}
                )
            },
        )

    def test_distribution_config(self, template):
        """Test HTTPS redirect, root object and SPA error responses."""
        template.has_resource_properties(
            "AWS::CloudFront::Distribution",
            {
                "DistributionConfig": Match.object_like(
                    {
                        "Comment": "my-site - Stage A CloudFront Distribution",
                        "DefaultRootObject": "index.html",
                        "PriceClass": "PriceClass_100",
                        "DefaultCacheBehavior": Match.object_like(
                            {"ViewerProtocolPolicy": "redirect-to-https", "Compress": True}
                        ),
                        "CustomErrorResponses": Match.array_with(
                            [
                                Match.object_like(
                                    {
                                        "ErrorCode": 404,
                                        "ResponseCode": 200,
                                        "ResponsePagePath": "/index.html",
                                    }
                                )
                            ]
                        ),
                    }
                )
            },
        )

    def test_outputs_exist(self, template):
        """Test that the outputs later stages read are defined."""
        for output in ("DistributionId", "DistributionDomainName", "DistributionUrl", "BucketName"):
            template.has_output(output, {"Export": {"Name": f"my-site-{output}"}})

    @pytest.mark.parametrize("prefix", ["", "My_Site", "-site"])
    def test_invalid_prefix_raises_error(self, prefix):
        """Test that an empty or non-kebab-case prefix raises ValueError."""
        app = App()
        with pytest.raises(ValueError, match="distribution_prefix"):
            CloudFrontStack(
                app,
                "TestCloudFrontStack",
                distribution_prefix=prefix,
                target_region="us-east-1",
                target_vpc_id="vpc-12345678",
            )


class TestSslCertificateStack:
    """Tests for the Stage B SslCertificateStack."""

    def make_stack(self, **overrides):
        params = {
            "domains": ["www.example.com", "example.com"],
            "distribution_id": DISTRIBUTION_ID,
            "infra_account_id": "111111111111",
            "target_account_id": "222222222222",
        }
        params.update(overrides)
        return SslCertificateStack(App(), "TestSslCertificateStack", **params)

    def test_certificate_created_with_sorted_domains(self):
        """Test that a DNS-validated certificate is created for the sorted domains."""
        template = Template.from_stack(self.make_stack())
        template.has_resource_properties(
            "AWS::CertificateManager::Certificate",
            {
                "DomainName": "example.com",
                "SubjectAlternativeNames": ["www.example.com"],
                "ValidationMethod": "DNS",
            },
        )

    def test_existing_certificate_is_imported(self):
        """Test that an existing ARN is imported instead of creating a certificate."""
        template = Template.from_stack(self.make_stack(existing_certificate_arn=CERTIFICATE_ARN))
        template.resource_count_is("AWS::CertificateManager::Certificate", 0)
        template.has_resource_properties(
            "AWS::SSM::Parameter",
            {"Type": "String", "Value": CERTIFICATE_ARN},
        )
        template.has_output("CertificateArnOutput", {"Value": CERTIFICATE_ARN})

    def test_outputs_exist(self):
        """Test that the stage outputs are defined."""
        template = Template.from_stack(self.make_stack())
        template.has_output("DomainsOutput", {"Value": "example.com,www.example.com"})
        template.has_output("DistributionIdOutput", {"Value": DISTRIBUTION_ID})
        template.has_output(
            "DistributionDomainNameOutput", {"Value": "e1abcdef2ghijk.cloudfront.net"}
        )

    def test_empty_domains_raises_error(self):
        """Test that an empty domain list raises ValueError."""
        with pytest.raises(ValueError, match="domains cannot be empty"):
            self.make_stack(domains=[" ", ""])

    def test_invalid_distribution_id_raises_error(self):
        """Test that a malformed distribution id raises ValueError."""
        with pytest.raises(ValueError, match="Invalid distribution_id"):
            self.make_stack(distribution_id="not-an-id")

    def test_certificate_outside_us_east_1_raises_error(self):
        """Test that a certificate from another region is rejected."""
        with pytest.raises(ValueError, match="Invalid certificate ARN"):
            self.make_stack(
                existing_certificate_arn=CERTIFICATE_ARN.replace("us-east-1", "eu-west-1")
            )


class TestLambdaStack:
    """Tests for the Stage C LambdaStack."""

    @pytest.fixture
    def template(self):
        """Create a template from LambdaStack using the bundled hello-world code."""
        app = App()
        stack = LambdaStack(
            app,
            "TestLambdaStack",
            distribution_prefix="my-site",
            target_region="us-east-1",
            distribution_id=DISTRIBUTION_ID,
            bucket_name="my-site-content-123456789012",
        )
        return Template.from_stack(stack)

    def test_function_created(self, template):
        """Test the Node.js runtime, memory and timeout."""
        template.has_resource_properties(
            "AWS::Lambda::Function",
            {
                "FunctionName": "my-site-api",
                "Runtime": "nodejs20.x",
                "Handler": "index.handler",
                "MemorySize": 128,
                "Timeout": 30,
                "Environment": {
                    "Variables": Match.object_like(
                        {"DISTRIBUTION_PREFIX": "my-site", "DISTRIBUTION_ID": DISTRIBUTION_ID}
                    )
                },
            },
        )

    def test_function_url_requires_iam(self, template):
        """Test that the Function URL uses AWS_IAM auth."""
        template.has_resource_properties("AWS::Lambda::Url", {"AuthType": "AWS_IAM"})

    def test_log_group(self, template):
        """Test the log group name and retention."""
        template.has_resource_properties(
            "AWS::Logs::LogGroup",
            {"LogGroupName": "/aws/lambda/my-site-api", "RetentionInDays": 30},
        )

    def test_execution_role(self, template):
        """Test the execution role name and trust policy."""
        template.has_resource_properties(
            "AWS::IAM::Role",
            {
                "RoleName": "my-site-lambda-execution-role",
                "AssumeRolePolicyDocument": Match.object_like(
                    {
                        "Statement": Match.array_with(
                            [
                                Match.object_like(
                                    {"Principal": {"Service": "lambda.amazonaws.com"}}
                                )
                            ]
                        )
                    }
                ),
            },
        )

    def test_outputs_exist(self, template):
        """Test that the outputs Stage D and E read are defined."""
        for output in ("LambdaFunctionArn", "LambdaFunctionName", "FunctionUrl", "LogGroupName"):
            template.has_output(output, {})

    def test_missing_code_raises_error(self, tmp_path):
        """Test that a code directory without index.js raises ValueError."""
        app = App()
        with pytest.raises(ValueError, match="Lambda code not found"):
            LambdaStack(
                app,
                "TestLambdaStack",
                distribution_prefix="my-site",
                target_region="us-east-1",
                distribution_id=DISTRIBUTION_ID,
                bucket_name="bucket",
                code_path=str(tmp_path),
            )


REACT_PARAMS = {
    "distribution_prefix": "my-site",
    "distribution_id": DISTRIBUTION_ID,
    "distribution_domain_name": "d111111abcdef8.cloudfront.net",
    "bucket_name": "my-site-content-123456789012",
    "primary_domain": "example.com",
}


class TestReactStack:
    """Tests for the Stage D ReactStack."""

    @pytest.fixture
    def template(self):
        """Create a template from ReactStack."""
        app = App()
        return Template.from_stack(ReactStack(app, "TestReactStack", **REACT_PARAMS))

    def test_deployment_role(self, template):
        """Test the deployment role carries S3 and invalidation policies."""
        template.has_resource_properties(
            "AWS::IAM::Role",
            {
                "RoleName": "my-site-react-deployment-role",
                "Policies": Match.array_with(
                    [
                        Match.object_like({"PolicyName": "S3DeploymentPolicy"}),
                        Match.object_like({"PolicyName": "CloudFrontInvalidationPolicy"}),
                    ]
                ),
            },
        )

    def test_log_group(self, template):
        """Test the deployment log group."""
        template.has_resource_properties(
            "AWS::Logs::LogGroup",
            {"LogGroupName": "/aws/react-deployment/my-site", "RetentionInDays": 30},
        )

    def test_outputs_exist(self, template):
        """Test that the stage outputs are defined."""
        template.has_output("ReactS3BucketName", {"Value": REACT_PARAMS["bucket_name"]})
        template.has_output("ReactPrimaryDomain", {"Value": "example.com"})

    def test_empty_bucket_raises_error(self):
        """Test that an empty bucket name raises ValueError."""
        with pytest.raises(ValueError, match="bucket_name cannot be empty"):
            ReactStack(App(), "TestReactStack", **dict(REACT_PARAMS, bucket_name=""))


class TestReactApiStack:
    """Tests for the Stage E ReactApiStack."""

    @pytest.fixture
    def template(self):
        """Create a template from ReactApiStack."""
        app = App()
        stack = ReactApiStack(
            app,
            "TestReactApiStack",
            lambda_function_arn=LAMBDA_ARN,
            lambda_function_url=FUNCTION_URL,
            **REACT_PARAMS,
        )
        return Template.from_stack(stack)

    def test_lambda_origin_access_control(self, template):
        """Test that the OAC signs requests to a Lambda origin."""
        template.has_resource_properties(
            "AWS::CloudFront::OriginAccessControl",
            {
                "OriginAccessControlConfig": {
                    "Name": "my-site-api-oac",
                    "Description": Match.any_value(),
                    "OriginAccessControlOriginType": "lambda",
                    "SigningBehavior": "always",
                    "SigningProtocol": "sigv4",
                }
            },
        )

    def test_cloudfront_invoke_permissions(self, template):
        """Test that CloudFront may invoke the function and its URL."""
        template.resource_count_is("AWS::Lambda::Permission", 2)
        template.has_resource_properties(
            "AWS::Lambda::Permission",
            {
                "Action": "lambda:InvokeFunctionUrl",
                "FunctionName": LAMBDA_ARN,
                "FunctionUrlAuthType": "AWS_IAM",
                "Principal": "cloudfront.amazonaws.com",
            },
        )
        template.has_resource_properties(
            "AWS::Lambda::Permission",
            {"Action": "lambda:InvokeFunction", "Principal": "cloudfront.amazonaws.com"},
        )

    def test_outputs_exist(self, template):
        """Test the outputs the stage script uses to add the API behavior."""
        template.has_output("ReactApiApiBehaviorPattern", {"Value": "/api/*"})
        template.has_output(
            "ReactApiLambdaOriginDomain",
            {"Value": "abc123def456.lambda-url.us-east-1.on.aws"},
        )
        template.has_output("ReactApiOriginAccessControlId", {})

    def test_invalid_function_url_raises_error(self):
        """Test that a non-Lambda URL raises ValueError."""
        with pytest.raises(ValueError, match="Invalid lambda_function_url"):
            ReactApiStack(
                App(),
                "TestReactApiStack",
                lambda_function_arn=LAMBDA_ARN,
                lambda_function_url="https://example.com/",
                **REACT_PARAMS,
            )


def test_stage_scripts_use_cdk_stack_names():
    """Test the stage scripts deploy and delete the stacks the CDK app defines."""
    assert STACK_NAMES == CDK_STACK_NAMES
