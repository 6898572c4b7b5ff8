"""Stage A: private S3 bucket behind a CloudFront distribution."""

import time
from typing import Annotated

import typer

from .lib.aws import (
    bucket_summary,
    create_invalidation,
    delete_stack_and_wait,
    empty_bucket,
    find_buckets_by_prefix,
    find_distributions_by_comment,
    get_account_id,
    get_bucket_region,
    get_invalidation_status,
    get_session,
    object_exists,
    region_enabled,
    vpc_exists,
)
from .lib.commands import check_required_commands, run_s3_sync
from .lib.config import StageAConfig, get_stage_a_config
from .lib.console import (
    configure_logging,
    console,
    print_config,
    print_error,
    print_final_success,
    print_header,
    print_info,
    print_next_steps,
    print_success,
    print_table,
    print_warning,
)
from .lib.credentials import check_profile
from .lib.pipeline import Step, ensure_no_distribution_in_progress, exit_on_error, run_steps
from .lib.probes import check_content, check_status
from .lib.stacks import APPS_DIR, STACK_NAMES, deploy_stage_stack
from .lib.state import (
    CDK_OUTPUTS,
    CDK_STACK_OUTPUTS,
    DISCOVERY,
    INPUTS,
    OUTPUTS,
    StageData,
    utc_timestamp,
)

app = typer.Typer(help="Stage A: S3 + CloudFront static site")

CONTENT_DIR = APPS_DIR / "hello-world-html"
SUCCESS_TEXT = "CloudFront Distribution is Working!"

HTTP_ATTEMPTS = 5
HTTP_DELAY = 30
CONTENT_ATTEMPTS = 3
CONTENT_DELAY = 10

REQUIRED_OUTPUT_FIELDS = (
    "distributionId",
    "distributionDomainName",
    "distributionUrl",
    "bucketName",
    "distributionPrefix",
    "targetRegion",
    "targetAccountId",
)


def gather_inputs(data: StageData, config: StageAConfig, interactive: bool = True) -> dict:
    """Validate profiles, region and VPC, then write inputs.json."""
    check_profile(config.infrastructure_profile, interactive)
    check_profile(config.target_profile, interactive)

    session = get_session(config.target_profile, config.target_region)
    if not region_enabled(session, config.target_region):
        print_error(f"Region {config.target_region} is not enabled for the target account")
        raise typer.Exit(1)
    print_success(f"Region {config.target_region} is enabled")

    if not vpc_exists(session, config.target_vpc_id, config.target_region):
        print_error(f"VPC {config.target_vpc_id} not found in {config.target_region}")
        raise typer.Exit(1)
    print_success(f"VPC {config.target_vpc_id} found")

    inputs = {**config.to_inputs(), "timestamp": utc_timestamp()}
    data.write(INPUTS, inputs)
    print_success(f"Inputs saved to {data.path(INPUTS)}")
    return inputs


def discover(data: StageData, assume_yes: bool = False) -> dict:
    """Resolve account ids and look for resources clashing with the prefix."""
    inputs = data.read(INPUTS)
    prefix = inputs["distributionPrefix"]
    region = inputs["targetRegion"]

    infra = get_session(inputs["infrastructureProfile"])
    target = get_session(inputs["targetProfile"], region)
    infra_account_id = get_account_id(infra)
    target_account_id = get_account_id(target)
    print_success(f"Infrastructure account: {infra_account_id}")
    print_success(f"Target account: {target_account_id}")

    distributions = find_distributions_by_comment(target, prefix)
    buckets = find_buckets_by_prefix(target, prefix)

    if distributions or buckets:
        for distribution in distributions:
            print_warning(f"Distribution {distribution['Id']}: {distribution.get('Comment', '')}")
        for bucket in buckets:
            print_warning(f"Bucket {bucket}")
        if not assume_yes and not typer.confirm(
            f"   Resources matching '{prefix}' already exist. Continue?", default=False
        ):
            raise typer.Exit(1)
    else:
        print_success(f"No existing resources match '{prefix}'")

    discovery = {
        "infrastructureProfile": inputs["infrastructureProfile"],
        "targetProfile": inputs["targetProfile"],
        "infrastructureAccountId": infra_account_id,
        "targetAccountId": target_account_id,
        "targetRegion": region,
        "distributionPrefix": prefix,
        "resourcesValidated": True,
        "conflictsChecked": True,
        "conflicts": {
            "distributions": [d["Id"] for d in distributions],
            "buckets": buckets,
        },
        "timestamp": utc_timestamp(),
    }
    data.write(DISCOVERY, discovery)
    return discovery


def deploy_infrastructure(data: StageData) -> dict[str, str]:
    """Deploy the CloudFront stack."""
    inputs = data.read(INPUTS)
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)

    outputs = deploy_stage_stack(
        data,
        context={
            "distribution_prefix": inputs["distributionPrefix"],
            "target_region": region,
            "target_vpc_id": inputs["targetVpcId"],
        },
        session=session,
        region=region,
        profile=inputs["targetProfile"],
    )
    print_info(f"Distribution: {outputs.get('DistributionUrl')}")
    return outputs


def deploy_content(data: StageData) -> str:
    """Upload the static page and invalidate the cache."""
    inputs = data.read(INPUTS)
    stack = data.read(CDK_STACK_OUTPUTS)
    bucket = stack["BucketName"]
    distribution_id = stack["DistributionId"]
    session = get_session(inputs["targetProfile"], inputs["targetRegion"])

    result = run_s3_sync(CONTENT_DIR, bucket, profile=inputs["targetProfile"], delete=True)
    if not result.success:
        print_error("Content upload failed")
        if result.stderr:
            console.print(result.stderr)
        raise typer.Exit(1)
    print_success(f"Content synced to s3://{bucket}/")

    if not object_exists(session, bucket, "index.html"):
        print_error("index.html missing from bucket after upload")
        raise typer.Exit(1)
    print_success("index.html present")

    invalidation_id = create_invalidation(session, distribution_id, ["/*"])
    status = get_invalidation_status(session, distribution_id, invalidation_id)
    print_success(f"Invalidation {invalidation_id} ({status})")

    data.update(
        OUTPUTS,
        contentDeployed=True,
        contentDeploymentTimestamp=utc_timestamp(),
        invalidationId=invalidation_id,
    )
    return invalidation_id


def build_outputs(inputs: dict, discovery: dict, stack: dict[str, str]) -> dict:
    """Stage A outputs: a nested stageA block plus the same fields flat."""
    fields = {
        "distributionId": stack.get("DistributionId"),
        "distributionDomainName": stack.get("DistributionDomainName"),
        "distributionUrl": stack.get("DistributionUrl"),
        "bucketName": stack.get("BucketName"),
        "bucketArn": stack.get("BucketArn"),
        "distributionPrefix": inputs.get("distributionPrefix"),
        "targetRegion": inputs.get("targetRegion"),
        "targetVpcId": inputs.get("targetVpcId"),
        "infrastructureProfile": inputs.get("infrastructureProfile"),
        "targetProfile": inputs.get("targetProfile"),
        "targetAccountId": discovery.get("targetAccountId"),
        "infrastructureAccountId": discovery.get("infrastructureAccountId"),
    }
    return {"stageA": dict(fields), **fields}


def validate(data: StageData) -> bool:
    """Check the distribution serves the page, then write outputs.json."""
    inputs = data.read(INPUTS)
    discovery = data.read_optional(DISCOVERY)
    stack = data.read(CDK_STACK_OUTPUTS)
    url = stack["DistributionUrl"]
    data.clear_ready()

    http_ok = check_status(url, 200, attempts=HTTP_ATTEMPTS, delay=HTTP_DELAY)
    if http_ok:
        print_success(f"{url} returned 200")
    else:
        print_error(f"{url} did not return 200 after {HTTP_ATTEMPTS} attempts")

    content_ok = http_ok and check_content(
        url, SUCCESS_TEXT, attempts=CONTENT_ATTEMPTS, delay=CONTENT_DELAY
    )
    if content_ok:
        print_success("Expected page content served")
    elif http_ok:
        print_error(f"Page does not contain '{SUCCESS_TEXT}'")

    outputs = build_outputs(inputs, discovery, stack)
    missing = [field for field in REQUIRED_OUTPUT_FIELDS if not outputs.get(field)]
    for field in missing:
        print_error(f"Missing output field: {field}")

    passed = http_ok and content_ok and not missing
    data.update(
        OUTPUTS,
        **outputs,
        deploymentTimestamp=utc_timestamp(),
        validationStatus="passed" if passed else "failed",
        readyForStageB=passed,
    )

    if not passed:
        raise typer.Exit(1)
    print_success("Stage A validated")
    return True


def show_status(data: StageData) -> None:
    """Print distributions, buckets and data files for the prefix."""
    inputs = data.read(INPUTS)
    prefix = inputs["distributionPrefix"]
    session = get_session(inputs["targetProfile"], inputs["targetRegion"])

    rows = [
        [d["Id"], d.get("DomainName", ""), d.get("Status", ""), str(d.get("Enabled", ""))]
        for d in find_distributions_by_comment(session, prefix)
    ]
    print_table("Distributions", ["Id", "Domain", "Status", "Enabled"], rows)

    bucket_rows = []
    for bucket in find_buckets_by_prefix(session, prefix):
        count, size = bucket_summary(session, bucket)
        bucket_rows.append([bucket, get_bucket_region(session, bucket), str(count), f"{size} B"])
    print_table("Buckets", ["Bucket", "Region", "Objects", "Size"], bucket_rows)

    outputs = data.read_optional(OUTPUTS)
    console.print(f"Validation: {outputs.get('validationStatus', 'not run')}")
    console.print(f"Ready for Stage B: {outputs.get('readyForStageB', False)}")


@app.callback()
def main_options(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Stage A: S3 + CloudFront static site."""
    configure_logging(verbose)


@app.command()
def go(
    infra_profile: Annotated[
        str | None, typer.Option("--infra-profile", help="Profile owning DNS (infrastructure)")
    ] = None,
    target_profile: Annotated[
        str | None, typer.Option("--target-profile", help="Profile to deploy into")
    ] = None,
    prefix: Annotated[
        str | None, typer.Option("--prefix", help="Distribution prefix (kebab-case)")
    ] = None,
    region: Annotated[str | None, typer.Option("--region", help="Target region")] = None,
    vpc: Annotated[str | None, typer.Option("--vpc", help="Target VPC id")] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
    force: Annotated[bool, typer.Option("--force", help="Re-run completed steps")] = False,
) -> None:
    """
    Deploy Stage A end to end.

    1. Gather and validate inputs

    2. Discover accounts and naming conflicts

    3. Deploy the CloudFront stack (CDK)

    4. Upload the static page and invalidate the cache

    5. Validate over HTTP and write outputs.json
    """
    with exit_on_error():
        check_required_commands(["aws", "cdk"])
        data = StageData("a")

        config = None
        if force or not data.exists(INPUTS):
            config = get_stage_a_config(infra_profile, target_profile, prefix, region, vpc)
            profile = config.target_profile
            print_config(
                {
                    "Prefix": config.distribution_prefix,
                    "Region": config.target_region,
                    "VPC": config.target_vpc_id,
                    "Infra profile": config.infrastructure_profile,
                    "Target profile": config.target_profile,
                }
            )
        else:
            profile = data.read(INPUTS)["targetProfile"]

        print_header("Stage A: CloudFront Distribution")
        check_profile(profile, interactive=not yes)
        ensure_no_distribution_in_progress(get_session(profile))

        steps = [
            Step(
                "inputs",
                "Gathering inputs...",
                lambda: gather_inputs(data, config, interactive=not yes),
                lambda: data.exists(INPUTS),
                "Check the profile names and VPC id, or pass them as options.",
            ),
            Step(
                "discovery",
                "Discovering AWS resources...",
                lambda: discover(data, assume_yes=yes),
                lambda: data.exists(DISCOVERY),
                "Remove or rename conflicting resources, or choose another prefix.",
            ),
            Step(
                "infrastructure",
                "Deploying CloudFront stack (CDK)...",
                lambda: deploy_infrastructure(data),
                lambda: data.exists(CDK_STACK_OUTPUTS),
                "Check the CloudFormation events for StageACloudFrontStack.",
            ),
            Step(
                "content",
                "Uploading content...",
                lambda: deploy_content(data),
                lambda: data.field_equals(OUTPUTS, "contentDeployed", True),
                "Check S3 permissions for the target profile.",
            ),
            Step(
                "validation",
                "Validating deployment (CloudFront can take several minutes)...",
                lambda: validate(data),
                lambda: data.field_equals(OUTPUTS, "validationStatus", "passed"),
                "Wait for the distribution to finish deploying and run 'validate' again.",
            ),
        ]
        run_steps(steps, force=force)

        print_final_success("Stage A complete!")
        print_next_steps(
            [
                f"Site: {data.read(OUTPUTS).get('distributionUrl')}",
                "Next: python -m scripts.stage_b go --domain example.com",
            ]
        )


@app.command()
def inputs(
    infra_profile: Annotated[str | None, typer.Option("--infra-profile")] = None,
    target_profile: Annotated[str | None, typer.Option("--target-profile")] = None,
    prefix: Annotated[str | None, typer.Option("--prefix")] = None,
    region: Annotated[str | None, typer.Option("--region")] = None,
    vpc: Annotated[str | None, typer.Option("--vpc")] = None,
) -> None:
    """Gather and validate Stage A inputs."""
    with exit_on_error():
        config = get_stage_a_config(infra_profile, target_profile, prefix, region, vpc)
        gather_inputs(StageData("a"), config)


@app.command()
def discovery(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
) -> None:
    """Discover account ids and conflicting resources."""
    with exit_on_error():
        discover(StageData("a"), assume_yes=yes)


@app.command()
def deploy() -> None:
    """Deploy the CloudFront stack."""
    with exit_on_error():
        check_required_commands(["cdk"])
        deploy_infrastructure(StageData("a"))


@app.command()
def content() -> None:
    """Upload the static page and invalidate the cache."""
    with exit_on_error():
        check_required_commands(["aws"])
        deploy_content(StageData("a"))


@app.command("validate")
def validate_command() -> None:
    """Validate the distribution and write outputs.json."""
    with exit_on_error():
        validate(StageData("a"))


@app.command()
def status(
    watch: Annotated[bool, typer.Option("--watch", "-w", help="Refresh until Ctrl-C")] = False,
    interval: Annotated[int, typer.Option("--interval", help="Seconds between refreshes")] = 30,
) -> None:
    """Show Stage A resources."""
    with exit_on_error("Status cancelled."):
        data = StageData("a")
        while True:
            print_header("Stage A Status", emoji="📊")
            show_status(data)
            if not watch:
                break
            time.sleep(interval)


@app.command()
def undo(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
) -> None:
    """Empty the bucket, delete the stack and remove Stage A data files."""
    with exit_on_error("Cleanup cancelled."):
        data = StageData("a")
        inputs = data.read(INPUTS)
        stack = data.read_optional(CDK_STACK_OUTPUTS)

        print_header("Stage A Cleanup", emoji="🗑️")
        if StageData("b").exists(OUTPUTS):
            print_warning("Stage B outputs exist; undo Stage B first to release the distribution")
        if not yes and not typer.confirm("   Delete the Stage A bucket and distribution?"):
            raise typer.Exit(1)

        session = get_session(inputs["targetProfile"], inputs["targetRegion"])
        bucket = stack.get("BucketName")
        if bucket:
            removed = empty_bucket(session, bucket)
            print_success(f"Removed {removed} objects from {bucket}")

        delete_stack_and_wait(session, STACK_NAMES["a"], inputs["targetRegion"])
        removed_files = data.remove(DISCOVERY, CDK_OUTPUTS, CDK_STACK_OUTPUTS, OUTPUTS, INPUTS)
        print_success(f"Removed data files: {', '.join(removed_files) or 'none'}")
        print_final_success("Stage A removed")


def main() -> None:
    """Entry point for the Stage A script."""
    app()


if __name__ == "__main__":
    main()
