"""
Stage data files and the stage completion gate.

Every stage keeps its JSON state under ``<data root>/<stage dir>/``:

    inputs.json             values gathered for the stage
    discovery.json          what was found in the AWS accounts
    cdk-outputs.json        raw ``cdk deploy --outputs-file`` result
    cdk-stack-outputs.json  the stage stack's own outputs
    outputs.json            results consumed by the next stage

A stage signals completion by writing ``readyForStage<Next>: true`` into its
outputs.json. The next stage calls :func:`require_ready` before doing
anything else.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "PLAYBOOK_DATA_DIR"
DEFAULT_DATA_DIR = Path("data")

STAGE_DIRS = {
    "a": "a-cloudfront",
    "b": "b-ssl",
    "c": "c-lambda",
    "d": "d-react",
    "e": "e-react-api",
}

STAGE_ORDER = ["a", "b", "c", "d", "e"]

INPUTS = "inputs.json"
DISCOVERY = "discovery.json"
CDK_OUTPUTS = "cdk-outputs.json"
CDK_STACK_OUTPUTS = "cdk-stack-outputs.json"
OUTPUTS = "outputs.json"
VALIDATION_RESULTS = "validation-results.json"


class StageGateError(Exception):
    """A prerequisite stage has not signalled completion."""

    pass


def data_root() -> Path:
    """Return the data root, honouring PLAYBOOK_DATA_DIR."""
    return Path(os.environ.get(DATA_DIR_ENV, DEFAULT_DATA_DIR))


def utc_timestamp() -> str:
    """Current UTC time as 2024-01-31T12:00:00Z."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def next_stage(stage: str) -> str | None:
    """Return the stage that follows ``stage``, or None for the last one."""
    index = STAGE_ORDER.index(stage)
    if index + 1 < len(STAGE_ORDER):
        return STAGE_ORDER[index + 1]
    return None


def ready_flag(stage: str) -> str:
    """Name of the completion flag a stage writes, e.g. readyForStageB for A."""
    following = next_stage(stage)
    if following is None:
        raise ValueError(f"Stage {stage.upper()} is the last stage and gates nothing")
    return f"readyForStage{following.upper()}"


def lookup(data: dict[str, Any], key: str, block: str | None = None, default: Any = None) -> Any:
    """Read ``data[block][key]``, falling back to the flat ``data[key]``."""
    if block:
        nested = data.get(block)
        if isinstance(nested, dict) and nested.get(key) not in (None, ""):
            return nested[key]
    value = data.get(key)
    return default if value in (None, "") else value


@dataclass
class StageData:
    """JSON state files for one stage."""

    stage: str
    root: Path | None = None

    def __post_init__(self) -> None:
        if self.stage not in STAGE_DIRS:
            raise ValueError(f"Unknown stage: {self.stage}")
        if self.root is None:
            self.root = data_root()

    @property
    def directory(self) -> Path:
        return self.root / STAGE_DIRS[self.stage]

    def path(self, name: str) -> Path:
        return self.directory / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def read(self, name: str) -> dict[str, Any]:
        """Load a JSON file; raises FileNotFoundError when absent."""
        with open(self.path(name)) as f:
            return json.load(f)

    def read_optional(self, name: str) -> dict[str, Any]:
        """Load a JSON file, returning {} when it is absent or malformed."""
        try:
            return self.read(name)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning("Ignoring malformed %s: %s", self.path(name), e)
            return {}

    def write(self, name: str, data: dict[str, Any]) -> Path:
        """Write pretty-printed JSON, creating the stage directory."""
        path = self.path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        logger.debug("Wrote %s", path)
        return path

    def update(self, name: str, **fields: Any) -> dict[str, Any]:
        """Merge fields into an existing (or new) JSON file."""
        data = self.read_optional(name)
        data.update(fields)
        self.write(name, data)
        return data

    def remove(self, *names: str) -> list[str]:
        """Delete the named files; returns those that existed."""
        removed = []
        for name in names:
            path = self.path(name)
            if path.is_file():
                path.unlink()
                removed.append(name)
        return removed

    def clear_ready(self) -> dict[str, Any]:
        """
        Mark validation as failed and drop the completion flag.

        Called before a validation run so that a run interrupted by an
        exception never leaves an earlier ``true`` flag on disk. The last
        stage has no successor and clears ``deploymentComplete`` instead.
        """
        following = next_stage(self.stage)
        flag = ready_flag(self.stage) if following else "deploymentComplete"
        return self.update(OUTPUTS, validationStatus="failed", **{flag: False})

    def field_equals(self, name: str, key: str, expected: Any) -> bool:
        """True when ``key`` in file ``name`` equals ``expected``."""
        return self.read_optional(name).get(key) == expected


def require_ready(stage: str, root: Path | None = None) -> dict[str, Any]:
    """
    Enforce the stage completion gate.

    Reads the producer stage's outputs.json and checks its
    ``readyForStage<Next>`` flag. Only a literal ``true`` passes.

    Args:
        stage: The producer stage letter (e.g. "a" when entering Stage B).
        root: Data root override.

    Returns:
        The producer's outputs.json content.

    Raises:
        StageGateError: If the file is missing or malformed, or the flag is not true.
    """
    data = StageData(stage, root)
    flag = ready_flag(stage)
    label = stage.upper()
    path = data.path(OUTPUTS)

    try:
        outputs = data.read(OUTPUTS)
    except FileNotFoundError:
        raise StageGateError(
            f"Stage {label} outputs not found at {path}. Run Stage {label} first."
        ) from None
    except json.JSONDecodeError as e:
        raise StageGateError(f"Stage {label} outputs at {path} are not valid JSON: {e}") from e

    if not isinstance(outputs, dict) or outputs.get(flag) is not True:
        raise StageGateError(
            f"Stage {label} has not completed successfully ({flag} is not true in {path}). "
            f"Re-run Stage {label} validation before continuing."
        )

    return outputs
