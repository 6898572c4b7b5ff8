"""Stage C: Node.js Lambda behind an IAM-authorized Function URL."""

import json
import re
import time
from typing import Annotated, Any

import typer
from botocore.exceptions import ClientError

from .lib.aws import (
    delete_stack_and_wait,
    find_functions,
    find_log_groups,
    find_roles_by_prefix,
    get_function,
    get_lambda_account_settings,
    get_session,
    invoke_function,
    log_group_exists,
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
from .lib.pipeline import Step, exit_on_error, run_steps
from .lib.polling import retry_until_true
from .lib.probes import status_of
from .lib.stacks import APPS_DIR, STACK_NAMES, deploy_stage_stack
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

app = typer.Typer(help="Stage C: Lambda function with Function URL")

DEFAULT_CODE_PATH = APPS_DIR / "hello-world-lambda"

INVOKE_ATTEMPTS = 5
INVOKE_DELAY = 10

ISO_MILLIS_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")

# AWS_IAM auth rejects unsigned calls with 403, which still proves the URL is live
FUNCTION_URL_OK_STATUSES = (200, 403)


def lambda_response_problems(response: dict[str, Any]) -> list[str]:
    """Describe what is wrong with a hello-world Lambda response; empty when valid."""
    problems = []
    if response.get("statusCode") != 200:
        problems.append(f"statusCode is {response.get('statusCode')}")

    body = response.get("body")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except json.JSONDecodeError:
            return problems + ["body is not JSON"]
    if not isinstance(body, dict):
        return problems + ["body is missing"]

    for field in ("title", "message", "date"):
        if not body.get(field):
            problems.append(f"body.{field} is missing")
    date = body.get("date")
    if date and not ISO_MILLIS_PATTERN.match(str(date)):
        problems.append(f"body.date is not an ISO timestamp: {date}")
    return problems


def gather_inputs(data: StageData, stage_a: dict, stage_b: dict) -> dict:
    """Carry the Stage A and B identifiers forward."""
    inputs = {
        "distributionPrefix": lookup(stage_a, "distributionPrefix", "stageA"),
        "targetRegion": lookup(stage_a, "targetRegion", "stageA"),
        "targetProfile": lookup(stage_a, "targetProfile", "stageA"),
        "infrastructureProfile": lookup(stage_a, "infrastructureProfile", "stageA"),
        "targetAccountId": lookup(stage_a, "targetAccountId", "stageA"),
        "distributionId": lookup(stage_a, "distributionId", "stageA"),
        "bucketName": lookup(stage_a, "bucketName", "stageA"),
        "certificateArn": lookup(stage_b, "certificateArn", "stageB"),
        "domains": lookup(stage_b, "domains", "stageB", []),
        "primaryDomain": lookup(stage_b, "primaryDomain", "stageB"),
        "lambdaCodePath": str(DEFAULT_CODE_PATH),
        "timestamp": utc_timestamp(),
    }
    missing = [key for key, value in inputs.items() if value in (None, "", [])]
    if missing:
        print_error(f"Earlier stage outputs are missing: {', '.join(missing)}")
        raise typer.Exit(1)
    if not (DEFAULT_CODE_PATH / "index.js").is_file():
        print_error(f"Lambda code not found: {DEFAULT_CODE_PATH / 'index.js'}")
        raise typer.Exit(1)

    data.write(INPUTS, inputs)
    print_success(f"Function name: {inputs['distributionPrefix']}-api")
    return inputs


def discover(data: StageData, assume_yes: bool = False) -> dict:
    """Look for functions, roles and log groups already using the prefix."""
    inputs = data.read(INPUTS)
    prefix = inputs["distributionPrefix"]
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)

    functions = find_functions(session, prefix, region)
    roles = find_roles_by_prefix(session, prefix)
    log_groups = find_log_groups(session, f"/aws/lambda/{prefix}", region)
    settings = get_lambda_account_settings(session, region)

    conflicts = functions + roles + log_groups
    if conflicts:
        for name in conflicts:
            print_warning(f"Existing resource: {name}")
        if not assume_yes and not typer.confirm(
            "   Resources with this prefix exist (a redeploy updates them). Continue?",
            default=True,
        ):
            raise typer.Exit(1)
    else:
        print_success(f"No Lambda resources match '{prefix}'")

    limits = settings.get("accountLimit", {})
    print_info(f"Concurrent executions limit: {limits.get('ConcurrentExecutions', 'unknown')}")

    discovery = {
        "existingFunctions": functions,
        "existingRoles": roles,
        "existingLogGroups": log_groups,
        "accountLimits": limits,
        "timestamp": utc_timestamp(),
    }
    data.write(DISCOVERY, discovery)
    return discovery


def deploy_infrastructure(data: StageData) -> dict[str, str]:
    inputs = data.read(INPUTS)
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)
    outputs = deploy_stage_stack(
        data,
        context={
            "distribution_prefix": inputs["distributionPrefix"],
            "target_region": region,
            "distribution_id": inputs["distributionId"],
            "bucket_name": inputs["bucketName"],
            "lambda_code_path": inputs["lambdaCodePath"],
        },
        session=session,
        region=region,
        profile=inputs["targetProfile"],
    )
    print_info(f"Function URL: {outputs.get('FunctionUrl')}")
    return outputs


def validate(data: StageData) -> bool:
    """Invoke the function, check its log group and probe the Function URL."""
    inputs = data.read(INPUTS)
    stack = data.read(CDK_STACK_OUTPUTS)
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)
    function_name = stack["LambdaFunctionName"]
    problems: list[str] = []
    data.clear_ready()

    def invoke_ok() -> bool:
        problems.clear()
        try:
            response = invoke_function(session, function_name, region)
        except (RuntimeError, ClientError) as e:
            problems.append(str(e))
            return False
        problems.extend(lambda_response_problems(response))
        return not problems

    invocation_ok = retry_until_true(invoke_ok, INVOKE_ATTEMPTS, INVOKE_DELAY)
    if invocation_ok:
        print_success(f"{function_name} returned a valid response")
    else:
        for problem in problems:
            print_error(problem)

    log_group = stack.get("LogGroupName", f"/aws/lambda/{function_name}")
    logs_ok = log_group_exists(session, log_group, region)
    if logs_ok:
        print_success(f"Log group {log_group} exists")
    else:
        print_error(f"Log group {log_group} not found")

    url = stack.get("FunctionUrl", "")
    url_status = status_of(url) if url else None
    if url_status in FUNCTION_URL_OK_STATUSES:
        print_success(f"Function URL answered {url_status}")
    else:
        print_warning(f"Function URL answered {url_status}; CloudFront access is set up in Stage E")

    passed = invocation_ok and logs_ok
    stage_c = {
        "lambdaFunctionArn": stack.get("LambdaFunctionArn"),
        "lambdaFunctionName": function_name,
        "lambdaFunctionUrl": url,
        "logGroupName": log_group,
        "targetRegion": region,
        "distributionPrefix": inputs["distributionPrefix"],
    }
    data.update(
        OUTPUTS,
        stageC=stage_c,
        **stage_c,
        functionUrlStatus=url_status,
        deploymentTimestamp=utc_timestamp(),
        validationStatus="passed" if passed else "failed",
        readyForStageD=passed,
    )
    if not passed:
        raise typer.Exit(1)
    print_success("Stage C validated")
    return True


def show_status(data: StageData) -> None:
    inputs = data.read(INPUTS)
    region = inputs["targetRegion"]
    session = get_session(inputs["targetProfile"], region)
    name = f"{inputs['distributionPrefix']}-api"

    function = get_function(session, name, region)
    rows = []
    if function:
        rows.append(["Function", name, function.get("State", "Active")])
        rows.append(["Runtime", function.get("Runtime", ""), str(function.get("MemorySize", ""))])
    else:
        rows.append(["Function", name, "not found"])
    log_group = f"/aws/lambda/{name}"
    exists = log_group_exists(session, log_group, region)
    rows.append(["Log group", log_group, "exists" if exists else "missing"])
    print_table("Stage C", ["Resource", "Name", "Status"], rows)

    outputs = data.read_optional(OUTPUTS)
    console.print(f"Ready for Stage D: {outputs.get('readyForStageD', False)}")


@app.callback()
def main_options(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Stage C: Lambda function with Function URL."""
    configure_logging(verbose)


@app.command()
def go(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
    force: Annotated[bool, typer.Option("--force", help="Re-run completed steps")] = False,
) -> None:
    """
    Deploy Stage C end to end.

    1. Read Stage A and B outputs

    2. Check for conflicting Lambda resources

    3. Deploy the Lambda stack (CDK)

    4. Invoke the function and write outputs.json
    """
    with exit_on_error():
        stage_a = require_ready("a")
        stage_b = require_ready("b")
        check_required_commands(["cdk"])
        data = StageData("c")

        profile = lookup(stage_a, "targetProfile", "stageA")
        print_config(
            {
                "Prefix": lookup(stage_a, "distributionPrefix", "stageA"),
                "Region": lookup(stage_a, "targetRegion", "stageA"),
                "Target profile": profile,
            }
        )
        print_header("Stage C: Lambda")
        check_profile(profile, interactive=not yes)

        steps = [
            Step(
                "inputs",
                "Gathering inputs...",
                lambda: gather_inputs(data, stage_a, stage_b),
                lambda: data.exists(INPUTS),
            ),
            Step(
                "discovery",
                "Discovering Lambda resources...",
                lambda: discover(data, assume_yes=yes),
                lambda: data.exists(DISCOVERY),
            ),
            Step(
                "infrastructure",
                "Deploying Lambda stack (CDK)...",
                lambda: deploy_infrastructure(data),
                lambda: data.exists(CDK_STACK_OUTPUTS),
                "Check the CloudFormation events for StageCLambdaStack.",
            ),
            Step(
                "validation",
                "Validating Lambda...",
                lambda: validate(data),
                lambda: data.field_equals(OUTPUTS, "validationStatus", "passed"),
                "Check the function's CloudWatch logs and run 'validate' again.",
            ),
        ]
        run_steps(steps, force=force)

        print_final_success("Stage C complete!")
        print_next_steps(["Next: python -m scripts.stage_d go"])


@app.command()
def inputs() -> None:
    """Record the Stage A and B identifiers."""
    with exit_on_error():
        gather_inputs(StageData("c"), require_ready("a"), require_ready("b"))


@app.command()
def discovery(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
) -> None:
    """Look for conflicting Lambda resources."""
    with exit_on_error():
        require_ready("b")
        discover(StageData("c"), assume_yes=yes)


@app.command()
def deploy() -> None:
    """Deploy the Lambda stack."""
    with exit_on_error():
        require_ready("b")
        check_required_commands(["cdk"])
        deploy_infrastructure(StageData("c"))


@app.command("validate")
def validate_command() -> None:
    """Validate the Lambda and write outputs.json."""
    with exit_on_error():
        require_ready("b")
        validate(StageData("c"))


@app.command()
def status(
    watch: Annotated[bool, typer.Option("--watch", "-w", help="Refresh until Ctrl-C")] = False,
    interval: Annotated[int, typer.Option("--interval")] = 30,
) -> None:
    """Show the function and its log group."""
    with exit_on_error("Status cancelled."):
        data = StageData("c")
        while True:
            print_header("Stage C Status", emoji="📊")
            show_status(data)
            if not watch:
                break
            time.sleep(interval)


@app.command()
def undo(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
) -> None:
    """Delete the Lambda stack and Stage C data files."""
    with exit_on_error("Cleanup cancelled."):
        data = StageData("c")
        inputs = data.read(INPUTS)

        print_header("Stage C Cleanup", emoji="🗑️")
        if StageData("e").exists(OUTPUTS):
            print_warning("Stage E still routes /api/* to this function; undo Stage E first")
        if not yes and not typer.confirm("   Delete the Lambda function and its log group?"):
            raise typer.Exit(1)

        session = get_session(inputs["targetProfile"], inputs["targetRegion"])
        delete_stack_and_wait(session, STACK_NAMES["c"], inputs["targetRegion"])
        removed = data.remove(DISCOVERY, CDK_OUTPUTS, CDK_STACK_OUTPUTS, OUTPUTS, INPUTS)
        print_success(f"Removed data files: {', '.join(removed) or 'none'}")
        print_final_success("Stage C removed")


def main() -> None:
    """Entry point for the Stage C script."""
    app()


if __name__ == "__main__":
    main()
