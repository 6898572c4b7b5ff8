"""Run a stage's steps in order, skipping the ones already completed."""

import logging
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass

import boto3
import typer
from botocore.exceptions import BotoCoreError, ClientError

from .aws import distributions_in_progress
from .commands import CommandError
from .config import ConfigurationError
from .console import console, print_error, print_step, print_success, print_warning
from .polling import CertificateFailedError, PollTimeoutError
from .state import StageGateError

logger = logging.getLogger(__name__)

STAGE_ERRORS = (
    ConfigurationError,
    CommandError,
    StageGateError,
    PollTimeoutError,
    CertificateFailedError,
    ClientError,
    BotoCoreError,
    FileNotFoundError,
    LookupError,
)


@dataclass
class Step:
    """One orchestrated step of a stage."""

    name: str
    description: str
    run: Callable[[], None]
    is_complete: Callable[[], bool] = lambda: False
    hint: str = ""


def run_steps(steps: list[Step], force: bool = False) -> list[str]:
    """
    Execute steps in order.

    A step whose ``is_complete()`` returns True is skipped unless ``force``.
    A failing step prints its hint and stops the run with exit code 1;
    typer.Exit raised by a step keeps its own code.

    Returns:
        Names of the steps that actually ran.
    """
    total = len(steps)
    executed = []

    for index, step in enumerate(steps, start=1):
        print_step(f"{index}/{total}", step.description)

        if not force and step.is_complete():
            print_success(f"{step.name} already completed, skipping")
            continue

        try:
            step.run()
        except typer.Exit as e:
            if e.exit_code:
                _print_hint(step)
            raise
        except STAGE_ERRORS as e:
            print_error(str(e))
            _print_hint(step)
            raise typer.Exit(1) from e
        executed.append(step.name)
        logger.debug("Step %s completed", step.name)

    return executed


def _print_hint(step: Step) -> None:
    print_error(f"Step '{step.name}' failed")
    if step.hint:
        console.print(f"   Hint: {step.hint}")


def ensure_no_distribution_in_progress(session: boto3.Session) -> None:
    """Refuse to continue while CloudFront is still propagating a change."""
    busy = distributions_in_progress(session)
    if busy:
        print_warning(f"CloudFront distributions still deploying: {', '.join(busy)}")
        console.print("   Wait until their status is 'Deployed' and run again.")
        raise typer.Exit(1)


@contextmanager
def exit_on_error(cancelled: str = "Deployment cancelled."):
    """Map playbook errors to exit code 1 and Ctrl-C to 130."""
    try:
        yield
    except STAGE_ERRORS as e:
        print_error(str(e))
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        console.print(f"\n[yellow]{cancelled}[/yellow]")
        raise typer.Exit(130) from None
