"""
Stage E: route /api/* on the distribution to the Stage C Lambda.

The CDK stack creates the Lambda origin access control and the invoke
permissions; the distribution itself belongs to Stage A's stack, so the
behavior is added by updating the live distribution config.
"""

import time
from typing import Annotated

import typer
from botocore.exceptions import ClientError

from .lib.aws import (
    create_invalidation,
    delete_stack_and_wait,
    get_distribution,
    get_session,
    has_api_behavior,
    invoke_function,
    update_distribution_config,
    with_api_behavior,
    without_api_behavior,
)
from .lib.commands import check_required_commands
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
from .lib.polling import PollTimeoutError, retry_until_true, wait_for_distribution_deployed
from .lib.probes import fetch, looks_like_api_response
from .lib.stacks import STACK_NAMES, deploy_stage_stack
from .lib.state import (
    CDK_OUTPUTS,
    CDK_STACK_OUTPUTS,
    DISCOVERY,
    INPUTS,
    OUTPUTS,
    StageData,
    lookup,
    require_ready,
    utc_timestamp,
)
from .stage_c import lambda_response_problems
from .stage_d import APP_TITLE, site_urls

app = typer.Typer(help="Stage E: React app with a Lambda-backed /api")

API_PATH = "/api/"

API_ATTEMPTS = 5
API_DELAY = 30


def gather_inputs(data: StageData, earlier: dict[str, dict]) -> dict:
    """Carry the identifiers of Stages A to D forward."""
    stage_a, stage_b, stage_c = earlier["a"], earlier["b"], earlier["c"]
    inputs = {
        "distributionPrefix": lookup(stage_a, "distributionPrefix", "stageA"),
        "targetRegion": lookup(stage_a, "targetRegion", "stageA"),
        "targetProfile": lookup(stage_a, "targetProfile", "stageA"),
        "distributionId": lookup(stage_a, "distributionId", "stageA"),
        "distributionDomainName": lookup(stage_a, "distributionDomainName", "stageA"),
        "bucketName": lookup(stage_a, "bucketName", "stageA"),
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
    print_success(f"{API_PATH}* -> {inputs['lambdaFunctionName']}")
    return inputs


def discover(data: StageData) -> dict:
    """Record whether the distribution already routes /api/*."""
    inputs = data.read(INPUTS)
    session = get_session(inputs["targetProfile"], inputs["targetRegion"])

    distribution = get_distribution(session, inputs["distributionId"])
    if distribution is None:
        print_error(f"Distribution {inputs['distributionId']} not found")
        raise typer.Exit(1)

    configured = has_api_behavior(distribution)
    if configured:
        print_info("An /api/* behavior already exists; it will be refreshed")
    else:
        print_success("No /api/* behavior yet")

    discovery = {
        "distributionStatus": distribution["Status"],
        "apiBehaviorExists": configured,
        "timestamp": utc_timestamp(),
    }
    data.write(DISCOVERY, discovery)
    return discovery


def deploy_infrastructure(data: StageData) -> dict[str, str]:
    """Deploy the stack, add the /api/* behavior and invalidate it."""
    inputs = data.read(INPUTS)
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)

    stack = deploy_stage_stack(
        data,
        context={
            "distribution_prefix": inputs["distributionPrefix"],
            "target_region": region,
            "distribution_id": inputs["distributionId"],
            "distribution_domain_name": inputs["distributionDomainName"],
            "bucket_name": inputs["bucketName"],
            "primary_domain": inputs["primaryDomain"],
            "lambda_function_arn": inputs["lambdaFunctionArn"],
            "lambda_function_url": inputs["lambdaFunctionUrl"],
        },
        session=session,
        region=region,
        profile=inputs["targetProfile"],
    )

    origin_domain = stack["ReactApiLambdaOriginDomain"]
    oac_id = stack["ReactApiOriginAccessControlId"]
    changed = update_distribution_config(
        session,
        inputs["distributionId"],
        lambda config: with_api_behavior(config, origin_domain, oac_id),
    )
    if changed:
        print_success(f"Added {API_PATH}* behavior -> {origin_domain}")
    else:
        print_success(f"{API_PATH}* behavior already configured")

    invalidation_id = create_invalidation(session, inputs["distributionId"], [f"{API_PATH}*"])
    print_success(f"Invalidation {invalidation_id} created")
    data.update(OUTPUTS, apiBehaviorConfigured=True, invalidationId=invalidation_id)
    return stack


def validate(data: StageData) -> bool:
    """Check the distribution, the SPA, the API route and the function."""
    inputs = data.read(INPUTS)
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)
    urls = site_urls(inputs)
    checks = {}
    data.clear_ready()

    try:
        wait_for_distribution_deployed(session, inputs["distributionId"])
        checks["distribution"] = True
        print_success(f"Distribution {inputs['distributionId']} Deployed")
    except (PollTimeoutError, LookupError) as e:
        checks["distribution"] = False
        print_error(str(e))

    for url in urls:
        response = fetch(url)
        ok = response is not None and response.status_code == 200 and APP_TITLE in response.text
        checks[f"spa {url}"] = ok
        if ok:
            print_success(f"{url} serves the React app")
        else:
            print_error(f"{url} does not serve the React app")

    for url in urls:
        api_url = url + API_PATH

        def api_ok(api_url: str = api_url) -> bool:
            response = fetch(api_url)
            return (
                response is not None
                and response.status_code == 200
                and looks_like_api_response(response.text)
            )

        ok = retry_until_true(api_ok, API_ATTEMPTS, API_DELAY)
        checks[f"api {api_url}"] = ok
        if ok:
            print_success(f"{api_url} answered from Lambda")
        else:
            print_error(f"{api_url} did not reach Lambda (SPA fallback or error)")

    try:
        problems = lambda_response_problems(
            invoke_function(session, inputs["lambdaFunctionName"], region)
        )
    except (RuntimeError, ClientError) as e:
        problems = [str(e)]
    checks["lambda"] = not problems
    if problems:
        for problem in problems:
            print_error(problem)
    else:
        print_success(f"{inputs['lambdaFunctionName']} invoked directly")

    passed = all(checks.values())
    stage_e = {
        "distributionId": inputs["distributionId"],
        "siteUrls": urls,
        "apiUrls": [url + API_PATH for url in urls],
        "lambdaFunctionName": inputs["lambdaFunctionName"],
        "apiBehaviorPattern": f"{API_PATH}*",
    }
    data.update(
        OUTPUTS,
        stageE=stage_e,
        **stage_e,
        checks=checks,
        deploymentTimestamp=utc_timestamp(),
        validationStatus="passed" if passed else "failed",
        deploymentComplete=passed,
    )
    if not passed:
        raise typer.Exit(1)
    print_success("Stage E validated")
    return True


def show_status(data: StageData) -> None:
    inputs = data.read(INPUTS)
    session = get_session(inputs["targetProfile"], inputs["targetRegion"])
    distribution = get_distribution(session, inputs["distributionId"])

    rows = [
        [
            "Distribution",
            inputs["distributionId"],
            distribution["Status"] if distribution else "not found",
        ],
        [
            "API behavior",
            f"{API_PATH}*",
            "configured" if distribution and has_api_behavior(distribution) else "missing",
        ],
    ]
    print_table("Stage E", ["Resource", "Name", "Status"], rows)

    outputs = data.read_optional(OUTPUTS)
    console.print(f"Deployment complete: {outputs.get('deploymentComplete', False)}")


def require_earlier_stages() -> dict[str, dict]:
    return {stage: require_ready(stage) for stage in ("a", "b", "c", "d")}


@app.callback()
def main_options(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Stage E: React app with a Lambda-backed /api."""
    configure_logging(verbose)


@app.command()
def go(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
    force: Annotated[bool, typer.Option("--force", help="Re-run completed steps")] = False,
) -> None:
    """
    Deploy Stage E end to end.

    1. Read Stages A to D outputs

    2. Inspect the distribution's behaviors

    3. Deploy the API stack and add the /api/* behavior

    4. Validate the SPA and the API route
    """
    with exit_on_error():
        earlier = require_earlier_stages()
        check_required_commands(["cdk"])
        data = StageData("e")

        profile = lookup(earlier["a"], "targetProfile", "stageA")
        print_config(
            {
                "Distribution": lookup(earlier["a"], "distributionId", "stageA"),
                "Function": lookup(earlier["c"], "lambdaFunctionName", "stageC"),
                "Target profile": profile,
            }
        )
        print_header("Stage E: React + API")
        check_profile(profile, interactive=not yes)
        ensure_no_distribution_in_progress(get_session(profile))

        steps = [
            Step(
                "inputs",
                "Gathering inputs...",
                lambda: gather_inputs(data, earlier),
                lambda: data.exists(INPUTS),
            ),
            Step(
                "discovery",
                "Inspecting the distribution...",
                lambda: discover(data),
                lambda: data.exists(DISCOVERY),
            ),
            Step(
                "infrastructure",
                "Deploying API stack and /api/* behavior...",
                lambda: deploy_infrastructure(data),
                lambda: data.exists(CDK_STACK_OUTPUTS)
                and data.field_equals(OUTPUTS, "apiBehaviorConfigured", True),
                "Check the StageEReactApiStack events and the distribution config.",
            ),
            Step(
                "validation",
                "Validating deployment (CloudFront can take several minutes)...",
                lambda: validate(data),
                lambda: data.field_equals(OUTPUTS, "validationStatus", "passed"),
                "Wait for the distribution to deploy and run 'validate' again.",
            ),
        ]
        run_steps(steps, force=force)

        print_final_success("Stage E complete! The full stack is deployed.")
        print_next_steps([f"API: {url}" for url in data.read(OUTPUTS).get("apiUrls", [])])


@app.command()
def inputs() -> None:
    """Record the identifiers of Stages A to D."""
    with exit_on_error():
        gather_inputs(StageData("e"), require_earlier_stages())


@app.command()
def discovery() -> None:
    """Inspect the distribution's behaviors."""
    with exit_on_error():
        require_earlier_stages()
        discover(StageData("e"))


@app.command()
def deploy() -> None:
    """Deploy the API stack and add the /api/* behavior."""
    with exit_on_error():
        require_earlier_stages()
        check_required_commands(["cdk"])
        deploy_infrastructure(StageData("e"))


@app.command("validate")
def validate_command() -> None:
    """Validate the SPA and the API route."""
    with exit_on_error():
        require_earlier_stages()
        validate(StageData("e"))


@app.command()
def status(
    watch: Annotated[bool, typer.Option("--watch", "-w", help="Refresh until Ctrl-C")] = False,
    interval: Annotated[int, typer.Option("--interval")] = 30,
) -> None:
    """Show the distribution and its API behavior."""
    with exit_on_error("Status cancelled."):
        data = StageData("e")
        while True:
            print_header("Stage E Status", emoji="📊")
            show_status(data)
            if not watch:
                break
            time.sleep(interval)


@app.command()
def undo(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
) -> None:
    """Remove the /api/* behavior, then delete the API stack."""
    with exit_on_error("Cleanup cancelled."):
        data = StageData("e")
        inputs = data.read(INPUTS)

        print_header("Stage E Cleanup", emoji="🗑️")
        if not yes and not typer.confirm("   Remove the /api/* route and the API stack?"):
            raise typer.Exit(1)

        session = get_session(inputs["targetProfile"], inputs["targetRegion"])
        distribution_id = inputs["distributionId"]
        if get_distribution(session, distribution_id):
            if update_distribution_config(session, distribution_id, without_api_behavior):
                print_success(f"Removed {API_PATH}* behavior")
            else:
                print_warning(f"No {API_PATH}* behavior to remove")
            # The origin access control cannot be deleted while the distribution uses it
            console.print("   Waiting for the distribution to deploy...")
            wait_for_distribution_deployed(session, distribution_id)

        delete_stack_and_wait(session, STACK_NAMES["e"], inputs["targetRegion"])
        removed = data.remove(DISCOVERY, CDK_OUTPUTS, CDK_STACK_OUTPUTS, OUTPUTS, INPUTS)
        print_success(f"Removed data files: {', '.join(removed) or 'none'}")
        print_final_success("Stage E removed")


def main() -> None:
    """Entry point for the Stage E script."""
    app()


if __name__ == "__main__":
    main()
