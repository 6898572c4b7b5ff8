"""Subprocess execution for external tools (aws, cdk, npm)."""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .console import print_error

logger = logging.getLogger(__name__)

INSTALL_HINTS = {
    "aws": "https://docs.aws.amazon.com/cli/latest/userguide/getting-started-install.html",
    "cdk": "npm install -g aws-cdk",
    "node": "https://nodejs.org/en/download/",
    "npm": "https://nodejs.org/en/download/",
}


class CommandError(Exception):
    """External command execution error."""

    pass


@dataclass
class CommandResult:
    """Result of a subprocess command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def check_command_exists(cmd: str) -> bool:
    """Check if a command is available in PATH."""
    return shutil.which(cmd) is not None


def check_required_commands(commands: list[str]) -> None:
    """Check that every listed tool is on PATH, printing install hints."""
    missing = [cmd for cmd in commands if not check_command_exists(cmd)]
    if not missing:
        return

    for cmd in missing:
        print_error(f"{cmd} command not found.")
        print_error(f"   Install: {INSTALL_HINTS.get(cmd, 'see the tool documentation')}")
    raise CommandError(f"Missing required commands: {', '.join(missing)}")


def _profile_env(profile: str | None) -> dict[str, str]:
    return {"AWS_PROFILE": profile} if profile else {}


def run_command(
    cmd: list[str],
    env: dict[str, str] | None = None,
    cwd: Path | None = None,
    capture_output: bool = True,
) -> CommandResult:
    """Run a subprocess command."""
    full_env = {**os.environ, **(env or {})}
    logger.debug("Running: %s (cwd=%s)", " ".join(cmd), cwd or ".")

    result = subprocess.run(
        cmd,
        env=full_env,
        cwd=cwd,
        capture_output=capture_output,
        text=True,
    )

    return CommandResult(
        returncode=result.returncode,
        stdout=result.stdout if capture_output else "",
        stderr=result.stderr if capture_output else "",
    )


def build_context_args(context: dict[str, str]) -> list[str]:
    """Turn a context mapping into repeated --context key=value flags."""
    args = []
    for key, value in context.items():
        if value is None or value == "":
            continue
        args.extend(["--context", f"{key}={value}"])
    return args


def run_cdk_deploy(
    stack: str,
    context: dict[str, str],
    cwd: Path,
    profile: str | None = None,
    outputs_file: Path | None = None,
) -> CommandResult:
    """Deploy a CDK stack, streaming progress to the terminal."""
    cmd = ["cdk", "deploy", stack, "--require-approval", "never"]
    cmd.extend(build_context_args(context))
    if outputs_file:
        cmd.extend(["--outputs-file", str(outputs_file.resolve())])

    return run_command(cmd, env=_profile_env(profile), cwd=cwd, capture_output=False)


def run_cdk_bootstrap(
    account_id: str,
    region: str,
    profile: str | None = None,
) -> CommandResult:
    """Bootstrap CDK in the account/region."""
    cmd = ["cdk", "bootstrap", f"aws://{account_id}/{region}"]
    return run_command(cmd, env=_profile_env(profile), capture_output=False)


def run_s3_sync(
    source: Path,
    bucket: str,
    profile: str | None = None,
    delete: bool = True,
    cache_control: str | None = None,
    excludes: list[str] | None = None,
) -> CommandResult:
    """Sync a local directory to the root of an S3 bucket."""
    cmd = ["aws", "s3", "sync", f"{source}/", f"s3://{bucket}/"]
    if delete:
        cmd.append("--delete")
    if cache_control:
        cmd.extend(["--cache-control", cache_control])
    for pattern in excludes or []:
        cmd.extend(["--exclude", pattern])

    return run_command(cmd, env=_profile_env(profile))


def run_s3_copy(
    source: Path,
    destination: str,
    profile: str | None = None,
    cache_control: str | None = None,
    content_type: str | None = None,
) -> CommandResult:
    """Copy one file to an s3:// destination."""
    cmd = ["aws", "s3", "cp", str(source), destination]
    if cache_control:
        cmd.extend(["--cache-control", cache_control])
    if content_type:
        cmd.extend(["--content-type", content_type])

    return run_command(cmd, env=_profile_env(profile))


def run_npm(args: list[str], cwd: Path, env: dict[str, str] | None = None) -> CommandResult:
    """Run npm in a project directory, streaming its output."""
    return run_command(["npm", *args], env=env, cwd=cwd, capture_output=False)


def run_sso_login(profile: str) -> CommandResult:
    """Run ``aws sso login`` interactively (opens a browser)."""
    return run_command(["aws", "sso", "login", "--profile", profile], capture_output=False)
