"""Tests for the stage CLIs: the completion gate and validation outcomes."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
import typer
from typer.testing import CliRunner

from scripts import stage_a, stage_b, stage_c, stage_d, stage_e
from scripts.lib.commands import CommandResult
from scripts.lib.state import (
    CDK_STACK_OUTPUTS,
    DISCOVERY,
    INPUTS,
    OUTPUTS,
    VALIDATION_RESULTS,
    StageData,
)

runner = CliRunner()

CERT_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/abc"


class TestStageGate:
    """A stage whose predecessor is not ready must stop before any AWS call."""

    @pytest.mark.parametrize("module", [stage_b, stage_c, stage_d, stage_e])
    def test_missing_outputs_block_go(self, module):
        """Test go exits 1 without creating a session."""
        with patch.object(module, "get_session") as get_session:
            result = runner.invoke(module.app, ["go", "--yes"])

        assert result.exit_code == 1
        get_session.assert_not_called()

    def test_false_flag_blocks_stage_b(self, write_stage_file):
        """Test readyForStageB false blocks Stage B."""
        write_stage_file("a", OUTPUTS, {"readyForStageB": False})

        with patch.object(stage_b, "get_session") as get_session:
            result = runner.invoke(stage_b.app, ["go", "--yes", "--domain", "example.com"])

        assert result.exit_code == 1
        assert "readyForStageB" in result.output
        get_session.assert_not_called()

    def test_stage_d_needs_stage_c(self, write_stage_file):
        """Test Stage D checks every earlier stage."""
        write_stage_file("a", OUTPUTS, {"readyForStageB": True})
        write_stage_file("b", OUTPUTS, {"readyForStageC": True})

        with patch.object(stage_d, "get_session") as get_session:
            result = runner.invoke(stage_d.app, ["validate"])

        assert result.exit_code == 1
        get_session.assert_not_called()


@pytest.fixture
def stage_a_files(write_stage_file):
    write_stage_file(
        "a",
        INPUTS,
        {
            "infrastructureProfile": "infra",
            "targetProfile": "target",
            "distributionPrefix": "my-site",
            "targetRegion": "us-east-1",
            "targetVpcId": "vpc-12345678",
        },
    )
    write_stage_file(
        "a",
        DISCOVERY,
        {"targetAccountId": "222222222222", "infrastructureAccountId": "111111111111"},
    )
    write_stage_file(
        "a",
        CDK_STACK_OUTPUTS,
        {
            "DistributionId": "E1ABCDEF2GHIJK",
            "DistributionDomainName": "d111.cloudfront.net",
            "DistributionUrl": "https://d111.cloudfront.net",
            "BucketName": "my-site-content-222222222222",
            "BucketArn": "arn:aws:s3:::my-site-content-222222222222",
        },
    )


class TestStageAValidation:
    """Tests for Stage A validation and outputs."""

    def test_passed_sets_ready_flag(self, stage_a_files):
        """Test a passing validation writes readyForStageB true with nested and flat fields."""
        with (
            patch.object(stage_a, "check_status", return_value=True),
            patch.object(stage_a, "check_content", return_value=True),
        ):
            stage_a.validate(StageData("a"))

        outputs = StageData("a").read(OUTPUTS)
        assert outputs["readyForStageB"] is True
        assert outputs["validationStatus"] == "passed"
        assert outputs["stageA"]["distributionId"] == "E1ABCDEF2GHIJK"
        assert outputs["bucketName"] == "my-site-content-222222222222"
        assert outputs["targetProfile"] == "target"

    def test_http_failure_clears_ready_flag(self, stage_a_files):
        """Test a failed HTTP check exits 1 and writes readyForStageB false."""
        with (
            patch.object(stage_a, "check_status", return_value=False),
            patch.object(stage_a, "check_content") as check_content,
            pytest.raises(typer.Exit) as exc_info,
        ):
            stage_a.validate(StageData("a"))

        assert exc_info.value.exit_code == 1
        check_content.assert_not_called()
        outputs = StageData("a").read(OUTPUTS)
        assert outputs["readyForStageB"] is False
        assert outputs["validationStatus"] == "failed"

    def test_build_outputs_mirrors_fields(self):
        """Test the stageA block and flat fields carry the same values."""
        outputs = stage_a.build_outputs(
            {"distributionPrefix": "p"}, {}, {"DistributionId": "E1ABCDEF2GHIJK"}
        )
        assert outputs["stageA"]["distributionId"] == outputs["distributionId"]
        assert outputs["distributionPrefix"] == "p"


@pytest.fixture
def stage_b_files(write_stage_file):
    write_stage_file(
        "b",
        INPUTS,
        {
            "domains": ["example.com"],
            "primaryDomain": "example.com",
            "distributionId": "E1ABCDEF2GHIJK",
            "distributionDomainName": "d111.cloudfront.net",
            "infrastructureProfile": "infra",
            "targetProfile": "target",
        },
    )
    write_stage_file("b", OUTPUTS, {"certificateArn": CERT_ARN})


class TestStageBValidation:
    """Tests for the passed / pending / failed outcomes of Stage B."""

    def run_validate(self, certificate_status):
        distribution = {
            "Status": "Deployed",
            "DistributionConfig": {
                "Aliases": {"Quantity": 1, "Items": ["example.com"]},
                "ViewerCertificate": {"ACMCertificateArn": CERT_ARN},
            },
        }
        with (
            patch.object(stage_b, "get_session", return_value=MagicMock()),
            patch.object(
                stage_b, "describe_certificate", return_value={"Status": certificate_status}
            ),
            patch.object(stage_b, "wait_for_distribution_deployed", return_value="Deployed"),
            patch.object(stage_b, "get_distribution", return_value=distribution),
            patch.object(stage_b, "resolves", return_value=True),
            patch.object(stage_b, "status_of", return_value=200),
        ):
            return stage_b.validate(StageData("b"))

    def test_issued_passes(self, stage_b_files):
        """Test an issued certificate passes and sets readyForStageC."""
        assert self.run_validate("ISSUED") == "passed"

        outputs = StageData("b").read(OUTPUTS)
        assert outputs["readyForStageC"] is True
        assert outputs["stageB"]["certificateArn"] == CERT_ARN

    def test_pending_exits_2(self, stage_b_files):
        """Test a pending certificate exits 2 without the ready flag."""
        with pytest.raises(typer.Exit) as exc_info:
            self.run_validate("PENDING_VALIDATION")

        assert exc_info.value.exit_code == 2
        outputs = StageData("b").read(OUTPUTS)
        assert outputs["validationStatus"] == "pending"
        assert outputs["readyForStageC"] is False

    def test_failed_exits_1(self, stage_b_files):
        """Test a failed certificate exits 1."""
        with pytest.raises(typer.Exit) as exc_info:
            self.run_validate("FAILED")

        assert exc_info.value.exit_code == 1
        assert StageData("b").read(OUTPUTS)["validationStatus"] == "failed"

    def test_missing_distribution_clears_previous_pass(self, stage_b_files, write_stage_file):
        """Test a deleted distribution turns an earlier readyForStageC true into false."""
        write_stage_file(
            "b",
            OUTPUTS,
            {"certificateArn": CERT_ARN, "validationStatus": "passed", "readyForStageC": True},
        )

        with (
            patch.object(stage_b, "get_session", return_value=MagicMock()),
            patch.object(stage_b, "describe_certificate", return_value={"Status": "ISSUED"}),
            patch.object(stage_b, "get_distribution", return_value=None),
            patch.object(stage_b, "wait_for_distribution_deployed") as wait,
            patch.object(stage_b, "resolves", return_value=False),
            pytest.raises(typer.Exit) as exc_info,
        ):
            stage_b.validate(StageData("b"))

        assert exc_info.value.exit_code == 1
        wait.assert_not_called()
        outputs = StageData("b").read(OUTPUTS)
        assert outputs["readyForStageC"] is False
        assert outputs["validationStatus"] == "failed"

    def test_distribution_deleted_while_waiting(self, stage_b_files):
        """Test a distribution that disappears mid-wait fails validation."""
        distribution = {"Status": "InProgress", "DistributionConfig": {}}
        with (
            patch.object(stage_b, "get_session", return_value=MagicMock()),
            patch.object(stage_b, "describe_certificate", return_value={"Status": "ISSUED"}),
            patch.object(stage_b, "get_distribution", return_value=distribution),
            patch.object(
                stage_b,
                "wait_for_distribution_deployed",
                side_effect=LookupError("Distribution E1ABCDEF2GHIJK not found"),
            ),
            patch.object(stage_b, "resolves", return_value=False),
            pytest.raises(typer.Exit) as exc_info,
        ):
            stage_b.validate(StageData("b"))

        assert exc_info.value.exit_code == 1
        assert StageData("b").read(OUTPUTS)["readyForStageC"] is False

    def test_unexpected_error_leaves_flag_cleared(self, stage_b_files, write_stage_file):
        """Test an error escaping validation cannot keep an earlier pass on disk."""
        write_stage_file("b", OUTPUTS, {"certificateArn": CERT_ARN, "readyForStageC": True})

        with (
            patch.object(stage_b, "get_session", return_value=MagicMock()),
            patch.object(stage_b, "describe_certificate", side_effect=RuntimeError("boom")),
            pytest.raises(RuntimeError),
        ):
            stage_b.validate(StageData("b"))

        assert StageData("b").read(OUTPUTS)["readyForStageC"] is False

    def test_go_warns_when_domain_is_ignored(self, stage_b_files, write_stage_file):
        """Test --domain is reported as ignored when inputs.json is reused."""
        write_stage_file("a", OUTPUTS, {"readyForStageB": True, "targetProfile": "target"})

        with (
            patch.object(stage_b, "check_required_commands"),
            patch.object(stage_b, "check_profile"),
            patch.object(stage_b, "get_session", return_value=MagicMock()),
            patch.object(stage_b, "ensure_no_distribution_in_progress"),
            patch.object(stage_b, "run_steps") as run_steps,
        ):
            result = runner.invoke(stage_b.app, ["go", "--yes", "--domain", "other.com"])

        assert result.exit_code == 0
        assert "Ignoring" in result.output
        run_steps.assert_called_once()
        assert StageData("b").read(INPUTS)["domains"] == ["example.com"]

    def test_gather_inputs_requires_stage_a_fields(self):
        """Test missing Stage A fields stop input gathering."""
        with pytest.raises(typer.Exit):
            stage_b.gather_inputs(StageData("b"), {"readyForStageB": True}, ["example.com"])


class TestLambdaResponse:
    """Tests for the Stage C response checks."""

    def valid_response(self, **body_overrides):
        body = {
            "title": "AWS Lambda API Working!",
            "message": "hello",
            "date": "2024-01-31T12:00:00.123Z",
            **body_overrides,
        }
        return {"statusCode": 200, "body": json.dumps(body)}

    def test_valid_response(self):
        """Test a well-formed response has no problems."""
        assert stage_c.lambda_response_problems(self.valid_response()) == []

    def test_wrong_status(self):
        """Test a non-200 statusCode is reported."""
        response = dict(self.valid_response(), statusCode=500)
        assert "statusCode is 500" in stage_c.lambda_response_problems(response)

    def test_date_without_milliseconds(self):
        """Test the date must carry milliseconds."""
        problems = stage_c.lambda_response_problems(
            self.valid_response(date="2024-01-31T12:00:00Z")
        )
        assert any("ISO" in p for p in problems)

    def test_missing_fields(self):
        """Test missing title is reported."""
        problems = stage_c.lambda_response_problems(self.valid_response(title=""))
        assert "body.title is missing" in problems

    def test_body_not_json(self):
        """Test a non-JSON body is reported."""
        assert "body is not JSON" in stage_c.lambda_response_problems(
            {"statusCode": 200, "body": "<html>"}
        )


class TestStageD:
    """Tests for Stage D build and upload helpers."""

    def test_build_output_dir(self, tmp_path):
        """Test Vite apps build into dist/ and others into build/."""
        assert stage_d.build_output_dir(tmp_path) == tmp_path / "build"
        (tmp_path / "vite.config.js").write_text("export default {}")
        assert stage_d.build_output_dir(tmp_path) == tmp_path / "dist"

    def test_site_urls(self):
        """Test the CloudFront URL comes first, then each domain."""
        inputs = {"distributionDomainName": "d111.cloudfront.net", "domains": ["example.com"]}
        assert stage_d.site_urls(inputs) == ["https://d111.cloudfront.net", "https://example.com"]

    def test_upload_cache_headers(self, tmp_path):
        """Test assets, HTML and short-cache files get their own Cache-Control."""
        (tmp_path / "assets").mkdir()
        (tmp_path / "assets" / "index-abc.js").write_text("")
        (tmp_path / "index.html").write_text("<!doctype html>")
        (tmp_path / "manifest.json").write_text("{}")
        ok = CommandResult(0, "", "")

        with (
            patch.object(stage_d, "run_s3_sync", return_value=ok) as sync,
            patch.object(stage_d, "run_s3_copy", return_value=ok) as copy,
        ):
            stage_d.upload_build(tmp_path, "bucket", "target")

        sync_kwargs = sync.call_args.kwargs
        assert sync_kwargs["cache_control"] == stage_d.ASSET_CACHE_CONTROL
        assert "*.html" in sync_kwargs["excludes"]
        assert "manifest.json" in sync_kwargs["excludes"]

        copies = {call.args[1]: call.kwargs for call in copy.call_args_list}
        assert copies["s3://bucket/index.html"]["cache_control"] == stage_d.HTML_CACHE_CONTROL
        assert copies["s3://bucket/index.html"]["content_type"] == "text/html"
        assert copies["s3://bucket/manifest.json"]["cache_control"] == stage_d.SHORT_CACHE_CONTROL

    def test_upload_failure_exits(self, tmp_path):
        """Test a failed sync stops the upload."""
        with (
            patch.object(stage_d, "run_s3_sync", return_value=CommandResult(1, "", "denied")),
            pytest.raises(typer.Exit),
        ):
            stage_d.upload_build(tmp_path, "bucket", "target")

    def test_inputs_require_app_files(self, tmp_path):
        """Test an app directory without vite.config.js is rejected."""
        (tmp_path / "package.json").write_text("{}")
        (tmp_path / "index.html").write_text("")

        with pytest.raises(typer.Exit):
            stage_d.gather_inputs(StageData("d"), {"a": {}, "b": {}, "c": {}}, tmp_path)


class TestStageEValidation:
    """Tests for Stage E validation."""

    @pytest.fixture
    def stage_e_files(self, write_stage_file, monkeypatch):
        monkeypatch.setattr(stage_e, "API_DELAY", 0)
        monkeypatch.setattr(stage_e, "API_ATTEMPTS", 1)
        write_stage_file(
            "e",
            INPUTS,
            {
                "targetProfile": "target",
                "targetRegion": "us-east-1",
                "distributionId": "E1ABCDEF2GHIJK",
                "distributionDomainName": "d111.cloudfront.net",
                "domains": ["example.com"],
                "lambdaFunctionName": "my-site-api",
            },
        )

    def fake_fetch(self, api_body):
        def fetch(url):
            if url.endswith("/api/"):
                return httpx.Response(200, text=api_body)
            return httpx.Response(200, text="<!doctype html><title>AWS SPA Boilerplate</title>")

        return fetch

    def run_validate(self, api_body):
        lambda_response = {
            "statusCode": 200,
            "body": json.dumps(
                {"title": "t", "message": "m", "date": "2024-01-31T12:00:00.123Z"}
            ),
        }
        with (
            patch.object(stage_e, "get_session", return_value=MagicMock()),
            patch.object(stage_e, "wait_for_distribution_deployed", return_value="Deployed"),
            patch.object(stage_e, "fetch", side_effect=self.fake_fetch(api_body)),
            patch.object(stage_e, "invoke_function", return_value=lambda_response),
        ):
            return stage_e.validate(StageData("e"))

    def test_api_routed_to_lambda(self, stage_e_files):
        """Test a JSON /api/ response completes the deployment."""
        assert self.run_validate('{"title": "AWS Lambda API Working!"}') is True

        outputs = StageData("e").read(OUTPUTS)
        assert outputs["deploymentComplete"] is True
        assert outputs["apiUrls"] == [
            "https://d111.cloudfront.net/api/",
            "https://example.com/api/",
        ]

    def test_spa_fallback_fails(self, stage_e_files):
        """Test the SPA fallback on /api/ means the behavior is not routing."""
        with pytest.raises(typer.Exit):
            self.run_validate("<!doctype html><title>AWS SPA Boilerplate</title>")

        outputs = StageData("e").read(OUTPUTS)
        assert outputs["deploymentComplete"] is False
        assert outputs["validationStatus"] == "failed"

    def test_deleted_resources_clear_previous_completion(
        self, stage_e_files, write_stage_file, client_error
    ):
        """Test a vanished distribution and function fail over an earlier completion."""
        write_stage_file("e", OUTPUTS, {"validationStatus": "passed", "deploymentComplete": True})
        api_body = '{"title": "AWS Lambda API Working!"}'

        with (
            patch.object(stage_e, "get_session", return_value=MagicMock()),
            patch.object(
                stage_e,
                "wait_for_distribution_deployed",
                side_effect=LookupError("Distribution E1ABCDEF2GHIJK not found"),
            ),
            patch.object(stage_e, "fetch", side_effect=self.fake_fetch(api_body)),
            patch.object(
                stage_e,
                "invoke_function",
                side_effect=client_error("ResourceNotFoundException", "Invoke"),
            ),
            pytest.raises(typer.Exit) as exc_info,
        ):
            stage_e.validate(StageData("e"))

        assert exc_info.value.exit_code == 1
        outputs = StageData("e").read(OUTPUTS)
        assert outputs["deploymentComplete"] is False
        assert outputs["checks"]["distribution"] is False
        assert outputs["checks"]["lambda"] is False


@pytest.fixture
def stage_c_files(write_stage_file, monkeypatch):
    monkeypatch.setattr(stage_c, "INVOKE_ATTEMPTS", 1)
    monkeypatch.setattr(stage_c, "INVOKE_DELAY", 0)
    write_stage_file(
        "c",
        INPUTS,
        {"targetProfile": "target", "targetRegion": "us-east-1", "distributionPrefix": "my-site"},
    )
    write_stage_file(
        "c",
        CDK_STACK_OUTPUTS,
        {
            "LambdaFunctionName": "my-site-api",
            "LambdaFunctionArn": "arn:aws:lambda:us-east-1:222222222222:function:my-site-api",
            "FunctionUrl": "https://abc123.lambda-url.us-east-1.on.aws/",
            "LogGroupName": "/aws/lambda/my-site-api",
        },
    )


class TestStageCValidation:
    """Tests for Stage C validation and its ready flag."""

    LAMBDA_RESPONSE = {
        "statusCode": 200,
        "body": json.dumps(
            {"title": "AWS Lambda API Working!", "message": "m", "date": "2024-01-31T12:00:00.123Z"}
        ),
    }

    def run_validate(self, invoke=None, log_group=True):
        invoke = invoke or {"return_value": self.LAMBDA_RESPONSE}
        with (
            patch.object(stage_c, "get_session", return_value=MagicMock()),
            patch.object(stage_c, "invoke_function", **invoke),
            patch.object(stage_c, "log_group_exists", return_value=log_group),
            patch.object(stage_c, "status_of", return_value=403),
        ):
            return stage_c.validate(StageData("c"))

    def test_passed_sets_ready_flag(self, stage_c_files):
        """Test a valid invocation and log group set readyForStageD."""
        assert self.run_validate() is True

        outputs = StageData("c").read(OUTPUTS)
        assert outputs["readyForStageD"] is True
        assert outputs["validationStatus"] == "passed"
        assert outputs["stageC"]["lambdaFunctionName"] == "my-site-api"
        assert outputs["functionUrlStatus"] == 403

    def test_deleted_function_clears_previous_pass(
        self, stage_c_files, write_stage_file, client_error
    ):
        """Test a missing function fails validation and clears readyForStageD."""
        write_stage_file("c", OUTPUTS, {"validationStatus": "passed", "readyForStageD": True})
        error = client_error("ResourceNotFoundException", "Invoke")

        with pytest.raises(typer.Exit) as exc_info:
            self.run_validate(invoke={"side_effect": error})

        assert exc_info.value.exit_code == 1
        outputs = StageData("c").read(OUTPUTS)
        assert outputs["readyForStageD"] is False
        assert outputs["validationStatus"] == "failed"

    def test_function_error_fails(self, stage_c_files):
        """Test a FunctionError from the invocation fails validation."""
        error = RuntimeError("my-site-api returned Unhandled")

        with pytest.raises(typer.Exit):
            self.run_validate(invoke={"side_effect": error})

        assert StageData("c").read(OUTPUTS)["readyForStageD"] is False

    def test_missing_log_group_fails(self, stage_c_files):
        """Test a missing log group fails validation even when the invocation works."""
        with pytest.raises(typer.Exit):
            self.run_validate(log_group=False)

        assert StageData("c").read(OUTPUTS)["readyForStageD"] is False


@pytest.fixture
def stage_d_files(write_stage_file, monkeypatch):
    monkeypatch.setattr(stage_d, "HTTP_ATTEMPTS", 1)
    monkeypatch.setattr(stage_d, "HTTP_DELAY", 0)
    write_stage_file(
        "d",
        INPUTS,
        {
            "appDir": "/app",
            "targetProfile": "target",
            "targetRegion": "us-east-1",
            "distributionId": "E1ABCDEF2GHIJK",
            "distributionDomainName": "d111.cloudfront.net",
            "bucketName": "my-site-content-222222222222",
            "domains": ["example.com"],
            "primaryDomain": "example.com",
            "lambdaFunctionName": "my-site-api",
        },
    )
    write_stage_file("d", OUTPUTS, {"invalidationId": "I2J3K4L5"})
    write_stage_file(
        "d",
        CDK_STACK_OUTPUTS,
        {
            "ReactDeploymentRoleArn": "arn:aws:iam::222222222222:role/my-site-react-deploy",
            "ReactLogGroupName": "/aws/react/my-site",
        },
    )


class TestStageDValidation:
    """Tests for the Stage D validation tests and readyForStageE."""

    PAGE = (
        "<!doctype html><html><head><title>AWS SPA Boilerplate</title>"
        '<link rel="stylesheet" href="/assets/index-abc.css">'
        '<script type="module" src="/assets/index-abc.js"></script></head></html>'
    )

    def run_validate(self, keys=None, function=None):
        keys = keys if keys is not None else ["index.html", "assets/index-abc.js"]
        with (
            patch.object(stage_d, "get_session", return_value=MagicMock()),
            patch.object(stage_d, "wait_for_invalidation", return_value="Completed"),
            patch.object(stage_d, "list_object_keys", return_value=keys),
            patch.object(stage_d, "check_status", return_value=True),
            patch.object(stage_d, "fetch", return_value=httpx.Response(200, text=self.PAGE)),
            patch.object(stage_d, "get_function", return_value=function),
        ):
            return stage_d.validate(StageData("d"))

    def test_passed_sets_ready_flag(self, stage_d_files):
        """Test six passing tests write readyForStageE and validation-results.json."""
        assert self.run_validate(function={"FunctionName": "my-site-api"}) is True

        outputs = StageData("d").read(OUTPUTS)
        assert outputs["readyForStageE"] is True
        assert outputs["validationStatus"] == "passed"
        assert outputs["siteUrls"] == ["https://d111.cloudfront.net", "https://example.com"]
        assert outputs["deploymentRoleArn"].endswith("my-site-react-deploy")

        results = StageData("d").read(VALIDATION_RESULTS)
        assert results["total"] == 6
        assert results["passed"] == 6
        assert [t["test"] for t in results["tests"]] == [
            "invalidation",
            "s3-content",
            "http-accessibility",
            "assets",
            "url-compatibility",
            "lambda-integration",
        ]

    def test_missing_lambda_is_not_critical(self, stage_d_files):
        """Test a failing lambda-integration test still lets Stage D pass."""
        assert self.run_validate(function=None) is True

        assert StageData("d").read(OUTPUTS)["readyForStageE"] is True
        results = StageData("d").read(VALIDATION_RESULTS)
        lambda_test = results["tests"][-1]
        assert lambda_test["test"] == "lambda-integration"
        assert lambda_test["passed"] is False
        assert lambda_test["critical"] is False
        assert results["passed"] == 5

    def test_missing_index_clears_previous_pass(self, stage_d_files, write_stage_file):
        """Test a failed critical test writes readyForStageE false over an earlier pass."""
        write_stage_file("d", OUTPUTS, {"invalidationId": "I2J3K4L5", "readyForStageE": True})

        with pytest.raises(typer.Exit) as exc_info:
            self.run_validate(keys=["assets/index-abc.js"], function={})

        assert exc_info.value.exit_code == 1
        outputs = StageData("d").read(OUTPUTS)
        assert outputs["readyForStageE"] is False
        assert outputs["validationStatus"] == "failed"
        s3_test = StageData("d").read(VALIDATION_RESULTS)["tests"][1]
        assert s3_test == {
            "test": "s3-content",
            "passed": False,
            "critical": True,
            "details": "1 objects, index.html=False",
        }
