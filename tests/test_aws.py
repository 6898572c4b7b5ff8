"""Unit tests for the boto3 helpers in scripts.lib.aws."""

import io
import json
from copy import deepcopy

import pytest
from botocore.exceptions import WaiterError

from scripts.lib.aws import (
    ALL_VIEWER_EXCEPT_HOST_POLICY_ID,
    API_ORIGIN_ID,
    API_PATH_PATTERN,
    CACHING_DISABLED_POLICY_ID,
    certificate_attached,
    create_invalidation,
    delete_stack_and_wait,
    distributions_in_progress,
    empty_bucket,
    find_distributions_by_comment,
    get_distribution,
    has_api_behavior,
    invoke_function,
    object_exists,
    update_distribution_config,
    vpc_exists,
    with_api_behavior,
    with_certificate,
    without_api_behavior,
    without_certificate,
)

CERT_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/abc"
LAMBDA_DOMAIN = "abc123.lambda-url.us-east-1.on.aws"


class TestCertificateTransforms:
    """Tests for attaching and removing the viewer certificate."""

    def test_with_certificate(self, distribution_config):
        """Test aliases and the ACM certificate are set."""
        domains = ["example.com", "www.example.com"]
        config = with_certificate(distribution_config, domains, CERT_ARN)

        assert config["Aliases"] == {"Quantity": 2, "Items": ["example.com", "www.example.com"]}
        assert config["ViewerCertificate"]["ACMCertificateArn"] == CERT_ARN
        assert config["ViewerCertificate"]["SSLSupportMethod"] == "sni-only"
        assert config["ViewerCertificate"]["MinimumProtocolVersion"] == "TLSv1.2_2021"

    def test_without_certificate(self, distribution_config):
        """Test aliases are cleared and the default certificate restored."""
        config = with_certificate(distribution_config, ["example.com"], CERT_ARN)
        config = without_certificate(config)

        assert config["Aliases"] == {"Quantity": 0}
        assert config["ViewerCertificate"]["CloudFrontDefaultCertificate"] is True
        assert "ACMCertificateArn" not in config["ViewerCertificate"]

    def test_certificate_attached(self, distribution_config):
        """Test detection of the attached certificate."""
        config = with_certificate(distribution_config, ["a.com"], CERT_ARN)
        distribution = {"DistributionConfig": config}

        assert certificate_attached(distribution, CERT_ARN)
        assert not certificate_attached(distribution, "arn:other")


class TestApiBehaviorTransforms:
    """Tests for the /api/* behavior transforms."""

    def test_adds_origin_and_behavior(self, distribution_config):
        """Test the Lambda origin and /api/* behavior are added."""
        config = with_api_behavior(distribution_config, LAMBDA_DOMAIN, "oac-1")

        origins = config["Origins"]["Items"]
        assert config["Origins"]["Quantity"] == 2
        api = next(o for o in origins if o["Id"] == API_ORIGIN_ID)
        assert api["DomainName"] == LAMBDA_DOMAIN
        assert api["OriginAccessControlId"] == "oac-1"
        assert api["CustomOriginConfig"]["OriginProtocolPolicy"] == "https-only"
        assert api["CustomOriginConfig"]["OriginSslProtocols"]["Items"] == ["TLSv1.2"]

        behavior = config["CacheBehaviors"]["Items"][0]
        assert behavior["PathPattern"] == API_PATH_PATTERN
        assert behavior["TargetOriginId"] == API_ORIGIN_ID
        assert behavior["CachePolicyId"] == CACHING_DISABLED_POLICY_ID
        assert behavior["OriginRequestPolicyId"] == ALL_VIEWER_EXCEPT_HOST_POLICY_ID
        assert "POST" in behavior["AllowedMethods"]["Items"]

    def test_api_behavior_takes_precedence(self, distribution_config):
        """Test /api/* is placed ahead of existing behaviors."""
        distribution_config["CacheBehaviors"] = {
            "Quantity": 1,
            "Items": [{"PathPattern": "/static/*", "TargetOriginId": "s3-origin"}],
        }

        config = with_api_behavior(distribution_config, LAMBDA_DOMAIN)

        patterns = [b["PathPattern"] for b in config["CacheBehaviors"]["Items"]]
        assert patterns == [API_PATH_PATTERN, "/static/*"]
        assert config["CacheBehaviors"]["Quantity"] == 2

    def test_applying_twice_is_stable(self, distribution_config):
        """Test re-applying does not duplicate the origin or behavior."""
        once = with_api_behavior(deepcopy(distribution_config), LAMBDA_DOMAIN, "oac-1")
        twice = with_api_behavior(deepcopy(once), LAMBDA_DOMAIN, "oac-1")

        assert once == twice

    def test_remove_restores_original(self, distribution_config):
        """Test removing the behavior leaves only the S3 origin."""
        original = deepcopy(distribution_config)
        config = without_api_behavior(with_api_behavior(distribution_config, LAMBDA_DOMAIN))

        assert config["Origins"] == original["Origins"]
        assert config["CacheBehaviors"] == {"Quantity": 0}

    def test_has_api_behavior(self, distribution_config):
        """Test detection requires both origin and behavior."""
        assert not has_api_behavior({"DistributionConfig": distribution_config})
        configured = with_api_behavior(deepcopy(distribution_config), LAMBDA_DOMAIN)
        assert has_api_behavior({"DistributionConfig": configured})


class TestUpdateDistributionConfig:
    """Tests for the ETag guarded config update."""

    def test_pushes_changed_config(self, mock_session, distribution_config):
        """Test a changed config is sent with the ETag."""
        cloudfront = mock_session.client("cloudfront")
        cloudfront.get_distribution_config.return_value = {
            "DistributionConfig": distribution_config,
            "ETag": "E1",
        }

        changed = update_distribution_config(
            mock_session, "EDIST123", lambda c: with_certificate(c, ["a.com"], CERT_ARN)
        )

        assert changed is True
        kwargs = cloudfront.update_distribution.call_args.kwargs
        assert kwargs["Id"] == "EDIST123"
        assert kwargs["IfMatch"] == "E1"
        assert kwargs["DistributionConfig"]["Aliases"]["Items"] == ["a.com"]

    def test_unchanged_config_is_not_pushed(self, mock_session, distribution_config):
        """Test a no-op transform skips UpdateDistribution."""
        cloudfront = mock_session.client("cloudfront")
        cloudfront.get_distribution_config.return_value = {
            "DistributionConfig": distribution_config,
            "ETag": "E1",
        }

        assert update_distribution_config(mock_session, "EDIST123", lambda c: c) is False
        cloudfront.update_distribution.assert_not_called()


class TestCloudFrontQueries:
    """Tests for distribution listing helpers."""

    @pytest.fixture
    def listed(self, mock_session):
        cloudfront = mock_session.client("cloudfront")
        cloudfront.get_paginator.return_value.paginate.return_value = [
            {
                "DistributionList": {
                    "Items": [
                        {"Id": "E1", "Status": "Deployed", "Comment": "my-site - Stage A"},
                        {"Id": "E2", "Status": "InProgress", "Comment": "other"},
                    ]
                }
            }
        ]
        return mock_session

    def test_in_progress(self, listed):
        """Test only InProgress distributions are reported."""
        assert distributions_in_progress(listed) == ["E2"]

    def test_find_by_comment(self, listed):
        """Test comment matching."""
        assert [d["Id"] for d in find_distributions_by_comment(listed, "my-site")] == ["E1"]

    def test_get_missing_distribution(self, mock_session, client_error):
        """Test NoSuchDistribution maps to None."""
        mock_session.client("cloudfront").get_distribution.side_effect = client_error(
            "NoSuchDistribution"
        )
        assert get_distribution(mock_session, "E404") is None

    def test_create_invalidation(self, mock_session):
        """Test the invalidation batch lists the paths."""
        cloudfront = mock_session.client("cloudfront")
        cloudfront.create_invalidation.return_value = {"Invalidation": {"Id": "I1"}}

        assert create_invalidation(mock_session, "E1", ["/api/*"]) == "I1"
        batch = cloudfront.create_invalidation.call_args.kwargs["InvalidationBatch"]
        assert batch["Paths"] == {"Quantity": 1, "Items": ["/api/*"]}
        assert batch["CallerReference"].startswith("playbook-")


class TestS3:
    """Tests for bucket helpers."""

    def test_object_exists(self, mock_session, client_error):
        """Test head_object 404 maps to False."""
        s3 = mock_session.client("s3")
        assert object_exists(mock_session, "bucket", "index.html") is True

        s3.head_object.side_effect = client_error("404")
        assert object_exists(mock_session, "bucket", "index.html") is False

    def test_empty_bucket(self, mock_session):
        """Test every listed object is deleted."""
        s3 = mock_session.client("s3")
        s3.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "index.html"}, {"Key": "app.js"}]},
            {"Contents": []},
        ]

        assert empty_bucket(mock_session, "bucket") == 2
        s3.delete_objects.assert_called_once_with(
            Bucket="bucket",
            Delete={"Objects": [{"Key": "index.html"}, {"Key": "app.js"}], "Quiet": True},
        )

    def test_empty_missing_bucket(self, mock_session, client_error):
        """Test a missing bucket is skipped."""
        s3 = mock_session.client("s3")
        s3.get_paginator.return_value.paginate.side_effect = client_error("NoSuchBucket")

        assert empty_bucket(mock_session, "gone") == 0


class TestCloudFormation:
    """Tests for stack deletion."""

    def test_delete_missing_stack(self, mock_session, client_error):
        """Test a missing stack is skipped."""
        cf = mock_session.client("cloudformation")
        cf.describe_stacks.side_effect = client_error(
            "ValidationError", message="Stack with id X does not exist"
        )

        assert delete_stack_and_wait(mock_session, "X", "us-east-1") is False
        cf.delete_stack.assert_not_called()

    def test_delete_waits(self, mock_session):
        """Test deletion waits for stack_delete_complete."""
        cf = mock_session.client("cloudformation")

        assert delete_stack_and_wait(mock_session, "X", "us-east-1") is True
        cf.delete_stack.assert_called_once_with(StackName="X")
        cf.get_waiter.assert_called_once_with("stack_delete_complete")

    def test_delete_waiter_failure(self, mock_session):
        """Test a failed waiter reports False."""
        cf = mock_session.client("cloudformation")
        cf.get_waiter.return_value.wait.side_effect = WaiterError(
            name="StackDeleteComplete", reason="failed", last_response={}
        )

        assert delete_stack_and_wait(mock_session, "X", "us-east-1") is False


class TestEc2AndLambda:
    """Tests for VPC and Lambda helpers."""

    def test_vpc_not_found(self, mock_session, client_error):
        """Test InvalidVpcID.NotFound maps to False."""
        mock_session.client("ec2").describe_vpcs.side_effect = client_error(
            "InvalidVpcID.NotFound"
        )
        assert vpc_exists(mock_session, "vpc-12345678", "us-east-1") is False

    def test_invoke_function(self, mock_session):
        """Test the JSON payload is decoded."""
        body = {"statusCode": 200, "body": "{}"}
        mock_session.client("lambda").invoke.return_value = {
            "Payload": io.BytesIO(json.dumps(body).encode())
        }

        assert invoke_function(mock_session, "fn", "us-east-1") == body

    def test_invoke_function_error(self, mock_session):
        """Test FunctionError raises RuntimeError."""
        mock_session.client("lambda").invoke.return_value = {
            "Payload": io.BytesIO(b'{"errorMessage": "boom"}'),
            "FunctionError": "Unhandled",
        }

        with pytest.raises(RuntimeError, match="Unhandled"):
            invoke_function(mock_session, "fn", "us-east-1")
