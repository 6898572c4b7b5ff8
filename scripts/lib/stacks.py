"""Deploy a stage's CDK stack and capture its outputs."""

import logging
from pathlib import Path

import boto3
import typer

from .aws import check_cdk_bootstrap, get_account_id, get_stack_outputs
from .commands import run_cdk_bootstrap, run_cdk_deploy
from .console import console, print_error, print_success, print_warning
from .state import CDK_OUTPUTS, CDK_STACK_OUTPUTS, StageData

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
CDK_DIR = PROJECT_ROOT / "cdk"
APPS_DIR = PROJECT_ROOT / "apps"

# Same names as cdk/stacks/constants.py, which the CDK app imports on its own path;
# tests/test_cdk.py keeps the two tables equal
STACK_NAMES = {
    "a": "StageACloudFrontStack",
    "b": "StageBSslCertificateStack",
    "c": "StageCLambdaStack",
    "d": "StageDReactStack",
    "e": "StageEReactApiStack",
}


def ensure_cdk_bootstrap(session: boto3.Session, region: str, profile: str | None) -> None:
    """Bootstrap CDK in the account/region when it has not been done yet."""
    if check_cdk_bootstrap(session, region):
        return

    print_warning(f"CDK not bootstrapped in {region}.")
    console.print("   Bootstrapping CDK (one-time setup)...")
    account_id = get_account_id(session)
    result = run_cdk_bootstrap(account_id, region, profile)
    if not result.success:
        print_error("CDK bootstrap failed")
        raise typer.Exit(1)
    print_success("CDK bootstrapped successfully")


def deploy_stage_stack(
    data: StageData,
    context: dict[str, str],
    session: boto3.Session,
    region: str,
    profile: str | None,
) -> dict[str, str]:
    """
    Run ``cdk deploy`` for the stage's stack and save its outputs.

    The raw outputs file keeps every stack's entry. The stage's own entry is
    written to cdk-stack-outputs.json, read back from CloudFormation when the
    outputs file lacks it.

    Returns:
        The stack outputs.
    """
    stack_name = STACK_NAMES[data.stage]
    ensure_cdk_bootstrap(session, region, profile)

    outputs_file = data.path(CDK_OUTPUTS)
    outputs_file.parent.mkdir(parents=True, exist_ok=True)

    result = run_cdk_deploy(
        stack=stack_name,
        context={"stage": data.stage, **context},
        cwd=CDK_DIR,
        profile=profile,
        outputs_file=outputs_file,
    )
    if not result.success:
        print_error(f"{stack_name} deployment failed")
        raise typer.Exit(1)

    raw = data.read_optional(CDK_OUTPUTS)
    stack_outputs = raw.get(stack_name) or get_stack_outputs(session, stack_name, region)
    if not stack_outputs:
        print_error(f"No outputs recorded for {stack_name} in {outputs_file}")
        raise typer.Exit(1)

    data.write(CDK_STACK_OUTPUTS, stack_outputs)
    logger.info("%s outputs: %s", stack_name, stack_outputs)
    print_success(f"{stack_name} deployed")
    return stack_outputs
