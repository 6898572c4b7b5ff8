"""
Stage D: build the React app and serve it from the Stage A bucket.

Hashed assets are uploaded with a year-long cache, HTML is never cached and
the service worker and manifest get a short cache, so a new build is visible
as soon as the invalidation completes.
"""

import shutil
import time
from pathlib import Path
from typing import Annotated

import typer

from .lib.aws import (
    bucket_summary,
    create_invalidation,
    delete_stack_and_wait,
    get_distribution,
    get_function,
    get_session,
    list_object_keys,
)
from .lib.commands import check_required_commands, run_npm, run_s3_copy, run_s3_sync
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
from .lib.dns import describe_certificate
from .lib.pipeline import Step, exit_on_error, run_steps
from .lib.polling import PollTimeoutError, wait_for_invalidation
from .lib.probes import check_status, extract_assets, fetch, resolve_asset
from .lib.stacks import APPS_DIR, STACK_NAMES, deploy_stage_stack
from .lib.state import (
    CDK_OUTPUTS,
    CDK_STACK_OUTPUTS,
    DISCOVERY,
    INPUTS,
    OUTPUTS,
    VALIDATION_RESULTS,
    StageData,
    lookup,
    require_ready,
    utc_timestamp,
)

app = typer.Typer(help="Stage D: React application on CloudFront")

DEFAULT_APP_DIR = APPS_DIR / "hello-world-react"
REQUIRED_APP_FILES = ("package.json", "vite.config.js", "index.html")
APP_TITLE = "AWS SPA Boilerplate"

ASSET_CACHE_CONTROL = "public, max-age=31536000"
HTML_CACHE_CONTROL = "no-cache, no-store, must-revalidate"
SHORT_CACHE_CONTROL = "public, max-age=300"
SHORT_CACHE_FILES = ("service-worker.js", "manifest.json")

HTTP_ATTEMPTS = 5
HTTP_DELAY = 30


def build_output_dir(app_dir: Path) -> Path:
    """Vite builds into dist/, create-react-app into build/."""
    if any(app_dir.glob("vite.config.*")):
        return app_dir / "dist"
    return app_dir / "build"


def loads(url: str) -> bool:
    response = fetch(url)
    return response is not None and response.status_code == 200


def site_urls(inputs: dict) -> list[str]:
    """The CloudFront URL followed by one URL per custom domain."""
    urls = [f"https://{inputs['distributionDomainName']}"]
    urls.extend(f"https://{domain}" for domain in inputs.get("domains", []))
    return urls


def gather_inputs(data: StageData, earlier: dict[str, dict], app_dir: Path) -> dict:
    """Check the React app and carry the earlier stages' identifiers forward."""
    missing_files = [name for name in REQUIRED_APP_FILES if not (app_dir / name).is_file()]
    if missing_files:
        print_error(f"{app_dir} is missing {', '.join(missing_files)}")
        raise typer.Exit(1)

    stage_a, stage_b, stage_c = earlier["a"], earlier["b"], earlier["c"]
    inputs = {
        "appDir": str(app_dir.resolve()),
        "distributionPrefix": lookup(stage_a, "distributionPrefix", "stageA"),
        "targetRegion": lookup(stage_a, "targetRegion", "stageA"),
        "targetProfile": lookup(stage_a, "targetProfile", "stageA"),
        "distributionId": lookup(stage_a, "distributionId", "stageA"),
        "distributionDomainName": lookup(stage_a, "distributionDomainName", "stageA"),
        "bucketName": lookup(stage_a, "bucketName", "stageA"),
        "certificateArn": lookup(stage_b, "certificateArn", "stageB"),
        "domains": lookup(stage_b, "domains", "stageB", []),
        "primaryDomain": lookup(stage_b, "primaryDomain", "stageB"),
        "lambdaFunctionName": lookup(stage_c, "lambdaFunctionName", "stageC"),
        "lambdaFunctionArn": lookup(stage_c, "lambdaFunctionArn", "stageC"),
        "lambdaFunctionUrl": lookup(stage_c, "lambdaFunctionUrl", "stageC"),
        "timestamp": utc_timestamp(),
    }
    missing = [key for key, value in inputs.items() if value in (None, "", [])]
    if missing:
        print_error(f"Earlier stage outputs are missing: {', '.join(missing)}")
        raise typer.Exit(1)

    data.write(INPUTS, inputs)
    print_success(f"React app: {app_dir}")
    return inputs


def discover(data: StageData) -> dict:
    """Confirm the distribution, certificate and function still exist."""
    inputs = data.read(INPUTS)
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)

    distribution = get_distribution(session, inputs["distributionId"])
    certificate = describe_certificate(session, inputs["certificateArn"])
    function = get_function(session, inputs["lambdaFunctionName"], region)

    checks = {
        f"Distribution {inputs['distributionId']}": distribution is not None,
        f"Certificate {inputs['certificateArn']}": certificate is not None,
        f"Function {inputs['lambdaFunctionName']}": function is not None,
    }
    for label, found in checks.items():
        if found:
            print_success(f"{label} found")
        else:
            print_error(f"{label} not found")
    if not all(checks.values()):
        raise typer.Exit(1)

    count, size = bucket_summary(session, inputs["bucketName"])
    print_info(f"Bucket {inputs['bucketName']}: {count} objects, {size} bytes")

    discovery = {
        "distributionStatus": distribution["Status"],
        "certificateStatus": certificate["Status"],
        "lambdaState": function.get("State", "Active"),
        "bucketObjectCount": count,
        "timestamp": utc_timestamp(),
    }
    data.write(DISCOVERY, discovery)
    return discovery


def deploy_infrastructure(data: StageData) -> dict[str, str]:
    inputs = data.read(INPUTS)
    region = inputs["targetRegion"]
    return deploy_stage_stack(
        data,
        context={
            "distribution_prefix": inputs["distributionPrefix"],
            "target_region": region,
            "distribution_id": inputs["distributionId"],
            "distribution_domain_name": inputs["distributionDomainName"],
            "bucket_name": inputs["bucketName"],
            "primary_domain": inputs["primaryDomain"],
        },
        session=get_session(inputs["targetProfile"], region),
        region=region,
        profile=inputs["targetProfile"],
    )


def build_app(app_dir: Path) -> Path:
    """Clean, install and build; returns the build output directory."""
    output_dir = build_output_dir(app_dir)
    if output_dir.exists():
        shutil.rmtree(output_dir)
        print_success(f"Removed previous build {output_dir.name}/")

    install = ["ci"] if (app_dir / "package-lock.json").is_file() else ["install"]
    if not run_npm(install, cwd=app_dir).success:
        print_error(f"npm {install[0]} failed")
        raise typer.Exit(1)
    print_success("Dependencies installed")

    if not run_npm(["run", "build"], cwd=app_dir).success:
        print_error("npm run build failed")
        raise typer.Exit(1)
    if not (output_dir / "index.html").is_file():
        print_error(f"Build did not produce {output_dir / 'index.html'}")
        raise typer.Exit(1)
    print_success(f"Built into {output_dir}")
    return output_dir


def upload_build(output_dir: Path, bucket: str, profile: str) -> None:
    """Upload assets, HTML and short-cache files with their cache headers."""
    result = run_s3_sync(
        output_dir,
        bucket,
        profile=profile,
        delete=True,
        cache_control=ASSET_CACHE_CONTROL,
        excludes=["*.html", *SHORT_CACHE_FILES],
    )
    if not result.success:
        print_error(f"Asset upload failed: {result.stderr}")
        raise typer.Exit(1)
    print_success("Static assets uploaded")

    for html in sorted(output_dir.rglob("*.html")):
        key = html.relative_to(output_dir).as_posix()
        result = run_s3_copy(
            html,
            f"s3://{bucket}/{key}",
            profile=profile,
            cache_control=HTML_CACHE_CONTROL,
            content_type="text/html",
        )
        if not result.success:
            print_error(f"Upload of {key} failed: {result.stderr}")
            raise typer.Exit(1)
    print_success("HTML uploaded without caching")

    for name in SHORT_CACHE_FILES:
        path = output_dir / name
        if path.is_file():
            result = run_s3_copy(
                path, f"s3://{bucket}/{name}", profile=profile, cache_control=SHORT_CACHE_CONTROL
            )
            if not result.success:
                print_error(f"Upload of {name} failed: {result.stderr}")
                raise typer.Exit(1)
            print_success(f"{name} uploaded with a short cache")


def deploy_content(data: StageData) -> str:
    """Build the app, upload it and invalidate the distribution."""
    inputs = data.read(INPUTS)
    app_dir = Path(inputs["appDir"])
    session = get_session(inputs["targetProfile"], inputs["targetRegion"])

    output_dir = build_app(app_dir)
    upload_build(output_dir, inputs["bucketName"], inputs["targetProfile"])

    invalidation_id = create_invalidation(session, inputs["distributionId"], ["/*"])
    print_success(f"Invalidation {invalidation_id} created")
    data.update(
        OUTPUTS,
        contentDeployed=True,
        contentDeploymentTimestamp=utc_timestamp(),
        invalidationId=invalidation_id,
        buildDir=str(output_dir),
    )
    return invalidation_id


def run_validation_tests(data: StageData) -> list[dict]:
    """Run the Stage D checks; each result records whether it is critical."""
    inputs = data.read(INPUTS)
    outputs = data.read_optional(OUTPUTS)
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)
    urls = site_urls(inputs)
    results = []

    def record(name: str, passed: bool, details: str, critical: bool = True) -> None:
        results.append({"test": name, "passed": passed, "critical": critical, "details": details})
        if passed:
            print_success(f"{name}: {details}")
        elif critical:
            print_error(f"{name}: {details}")
        else:
            print_warning(f"{name}: {details}")

    # 1. Invalidation
    invalidation_id = outputs.get("invalidationId")
    if invalidation_id:
        try:
            status = wait_for_invalidation(session, inputs["distributionId"], invalidation_id)
            record("invalidation", True, f"{invalidation_id} {status}")
        except PollTimeoutError as e:
            record("invalidation", False, str(e))
    else:
        record("invalidation", False, "no invalidation recorded; run 'content' first")

    # 2. S3 content
    keys = list_object_keys(session, inputs["bucketName"])
    has_index = "index.html" in keys
    has_assets = any(key.endswith((".js", ".css")) for key in keys)
    record("s3-content", has_index and has_assets, f"{len(keys)} objects, index.html={has_index}")

    # 3. HTTP accessibility
    reachable = [url for url in urls if check_status(url, 200, HTTP_ATTEMPTS, HTTP_DELAY)]
    record(
        "http-accessibility",
        len(reachable) == len(urls),
        f"{len(reachable)}/{len(urls)} URLs answered 200",
    )

    # 4. Assets referenced by the primary page
    base_url = urls[-1] if len(urls) > 1 else urls[0]
    response = fetch(base_url)
    html = response.text if response is not None else ""
    assets = extract_assets(html)
    broken = [ref for ref in assets if not loads(resolve_asset(base_url, ref))]
    record(
        "assets",
        bool(assets) and not broken,
        f"{len(assets) - len(broken)}/{len(assets)} assets load",
    )

    # 5. Every URL serves the same application
    titles = {}
    for url in urls:
        page = fetch(url)
        titles[url] = page is not None and APP_TITLE in page.text
    record(
        "url-compatibility",
        all(titles.values()),
        ", ".join(f"{url}={'ok' if ok else 'mismatch'}" for url, ok in titles.items()),
    )

    # 6. Lambda still reachable for Stage E
    function = get_function(session, inputs["lambdaFunctionName"], region)
    record(
        "lambda-integration",
        function is not None,
        f"{inputs['lambdaFunctionName']} {'found' if function else 'not found'}",
        critical=False,
    )
    return results


def validate(data: StageData) -> bool:
    """Run the validation tests and write outputs.json."""
    inputs = data.read(INPUTS)
    stack = data.read_optional(CDK_STACK_OUTPUTS)
    data.clear_ready()
    results = run_validation_tests(data)
    passed = all(r["passed"] for r in results if r["critical"])

    data.write(
        VALIDATION_RESULTS,
        {
            "tests": results,
            "passed": sum(1 for r in results if r["passed"]),
            "total": len(results),
            "timestamp": utc_timestamp(),
        },
    )

    stage_d = {
        "appDir": inputs["appDir"],
        "bucketName": inputs["bucketName"],
        "distributionId": inputs["distributionId"],
        "distributionDomainName": inputs["distributionDomainName"],
        "primaryDomain": inputs["primaryDomain"],
        "siteUrls": site_urls(inputs),
        "deploymentRoleArn": stack.get("ReactDeploymentRoleArn"),
        "logGroupName": stack.get("ReactLogGroupName"),
    }
    data.update(
        OUTPUTS,
        stageD=stage_d,
        **stage_d,
        deploymentTimestamp=utc_timestamp(),
        validationStatus="passed" if passed else "failed",
        readyForStageE=passed,
    )
    if not passed:
        raise typer.Exit(1)
    print_success("Stage D validated")
    return True


def show_status(data: StageData) -> None:
    inputs = data.read(INPUTS)
    session = get_session(inputs["targetProfile"], inputs["targetRegion"])
    distribution = get_distribution(session, inputs["distributionId"])
    count, size = bucket_summary(session, inputs["bucketName"])

    rows = [
        [
            "Distribution",
            inputs["distributionId"],
            distribution["Status"] if distribution else "not found",
        ],
        ["Bucket", inputs["bucketName"], f"{count} objects, {size} B"],
    ]
    results = data.read_optional(VALIDATION_RESULTS)
    for result in results.get("tests", []):
        rows.append(["Test", result["test"], "passed" if result["passed"] else "failed"])
    print_table("Stage D", ["Resource", "Name", "Status"], rows)

    outputs = data.read_optional(OUTPUTS)
    console.print(f"Ready for Stage E: {outputs.get('readyForStageE', False)}")


def require_earlier_stages() -> dict[str, dict]:
    return {stage: require_ready(stage) for stage in ("a", "b", "c")}


@app.callback()
def main_options(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Stage D: React application on CloudFront."""
    configure_logging(verbose)


@app.command()
def go(
    app_dir: Annotated[
        Path, typer.Option("--app-dir", help="React application directory")
    ] = DEFAULT_APP_DIR,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
    force: Annotated[bool, typer.Option("--force", help="Re-run completed steps")] = False,
) -> None:
    """
    Deploy Stage D end to end.

    1. Check the React app and earlier stage outputs

    2. Confirm the distribution, certificate and function exist

    3. Deploy the React stack (CDK)

    4. Build, upload and invalidate

    5. Run the validation tests and write outputs.json
    """
    with exit_on_error():
        earlier = require_earlier_stages()
        check_required_commands(["aws", "cdk", "node", "npm"])
        data = StageData("d")

        profile = lookup(earlier["a"], "targetProfile", "stageA")
        print_config(
            {
                "App": str(app_dir),
                "Bucket": lookup(earlier["a"], "bucketName", "stageA"),
                "Primary domain": lookup(earlier["b"], "primaryDomain", "stageB"),
                "Target profile": profile,
            }
        )
        print_header("Stage D: React")
        check_profile(profile, interactive=not yes)

        steps = [
            Step(
                "inputs",
                "Gathering inputs...",
                lambda: gather_inputs(data, earlier, app_dir),
                lambda: data.exists(INPUTS),
                "The app needs package.json, vite.config.js and index.html.",
            ),
            Step(
                "discovery",
                "Checking earlier stage resources...",
                lambda: discover(data),
                lambda: data.exists(DISCOVERY),
            ),
            Step(
                "infrastructure",
                "Deploying React stack (CDK)...",
                lambda: deploy_infrastructure(data),
                lambda: data.exists(CDK_STACK_OUTPUTS),
                "Check the CloudFormation events for StageDReactStack.",
            ),
            Step(
                "content",
                "Building and uploading the React app...",
                lambda: deploy_content(data),
                lambda: data.field_equals(OUTPUTS, "contentDeployed", True),
                "Run 'npm run build' in the app directory to see the error.",
            ),
            Step(
                "validation",
                "Validating deployment...",
                lambda: validate(data),
                lambda: data.field_equals(OUTPUTS, "validationStatus", "passed"),
                "See validation-results.json and run 'validate' again.",
            ),
        ]
        run_steps(steps, force=force)

        print_final_success("Stage D complete!")
        print_next_steps(
            [
                *(f"Site: {url}" for url in site_urls(data.read(INPUTS))),
                "Next: python -m scripts.stage_e go",
            ]
        )


@app.command()
def inputs(
    app_dir: Annotated[Path, typer.Option("--app-dir")] = DEFAULT_APP_DIR,
) -> None:
    """Check the React app and record the earlier stages' identifiers."""
    with exit_on_error():
        gather_inputs(StageData("d"), require_earlier_stages(), app_dir)


@app.command()
def discovery() -> None:
    """Confirm the earlier stages' resources exist."""
    with exit_on_error():
        require_earlier_stages()
        discover(StageData("d"))


@app.command()
def deploy() -> None:
    """Deploy the React stack."""
    with exit_on_error():
        require_earlier_stages()
        check_required_commands(["cdk"])
        deploy_infrastructure(StageData("d"))


@app.command()
def content() -> None:
    """Build, upload and invalidate."""
    with exit_on_error():
        require_earlier_stages()
        check_required_commands(["aws", "node", "npm"])
        deploy_content(StageData("d"))


@app.command("validate")
def validate_command() -> None:
    """Run the validation tests and write outputs.json."""
    with exit_on_error():
        require_earlier_stages()
        validate(StageData("d"))


@app.command()
def status(
    watch: Annotated[bool, typer.Option("--watch", "-w", help="Refresh until Ctrl-C")] = False,
    interval: Annotated[int, typer.Option("--interval")] = 30,
) -> None:
    """Show the distribution, bucket and last validation results."""
    with exit_on_error("Status cancelled."):
        data = StageData("d")
        while True:
            print_header("Stage D Status", emoji="📊")
            show_status(data)
            if not watch:
                break
            time.sleep(interval)


@app.command()
def undo(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
) -> None:
    """Delete the React stack and Stage D data files; bucket content is left in place."""
    with exit_on_error("Cleanup cancelled."):
        data = StageData("d")
        inputs = data.read(INPUTS)

        print_header("Stage D Cleanup", emoji="🗑️")
        if not yes and not typer.confirm("   Delete the React deployment stack?"):
            raise typer.Exit(1)

        session = get_session(inputs["targetProfile"], inputs["targetRegion"])
        delete_stack_and_wait(session, STACK_NAMES["d"], inputs["targetRegion"])
        removed = data.remove(
            DISCOVERY, CDK_OUTPUTS, CDK_STACK_OUTPUTS, OUTPUTS, VALIDATION_RESULTS, INPUTS
        )
        print_success(f"Removed data files: {', '.join(removed) or 'none'}")
        print_info("Bucket content was kept; Stage A undo empties the bucket.")
        print_final_success("Stage D removed")


def main() -> None:
    """Entry point for the Stage D script."""
    app()


if __name__ == "__main__":
    main()
