"""Configuration loading and validation for stage scripts."""

import re
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values

from .console import print_error

REGION_PATTERN = r"^[a-z]{2}-[a-z]+-[0-9]+$"
PREFIX_PATTERN = r"^[a-z0-9]+(-[a-z0-9]+)*$"
VPC_ID_PATTERN = r"^vpc-[0-9a-f]{8,17}$"
DOMAIN_LABEL_PATTERN = r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$"

MAX_PREFIX_LENGTH = 40
MAX_DOMAIN_LENGTH = 253


class ConfigurationError(Exception):
    """Configuration validation error."""

    pass


@dataclass
class StageAConfig:
    """Validated Stage A inputs."""

    infrastructure_profile: str
    target_profile: str
    distribution_prefix: str
    target_region: str
    target_vpc_id: str

    def to_inputs(self) -> dict[str, str]:
        """Serialize to the inputs.json layout."""
        return {
            "infrastructureProfile": self.infrastructure_profile,
            "targetProfile": self.target_profile,
            "distributionPrefix": self.distribution_prefix,
            "targetRegion": self.target_region,
            "targetVpcId": self.target_vpc_id,
        }


def load_env_file(env_path: Path = Path(".env")) -> dict[str, str]:
    """Load defaults from .env using python-dotenv; a missing file is empty."""
    if not env_path.exists():
        return {}
    return {k: v for k, v in dotenv_values(env_path).items() if v is not None}


def validate_aws_region(region: str) -> None:
    """Validate AWS region format (e.g., us-east-2)."""
    if not re.match(REGION_PATTERN, region):
        raise ConfigurationError(
            f"Invalid TARGET_REGION format: {region} (expected format: us-east-2)"
        )


def validate_distribution_prefix(prefix: str) -> None:
    """Validate the naming prefix (kebab-case, lowercase alphanumerics)."""
    if len(prefix) > MAX_PREFIX_LENGTH:
        raise ConfigurationError(
            f"Invalid DISTRIBUTION_PREFIX: {prefix} (max {MAX_PREFIX_LENGTH} characters)"
        )
    if not re.match(PREFIX_PATTERN, prefix):
        raise ConfigurationError(
            f"Invalid DISTRIBUTION_PREFIX: {prefix} (use kebab-case, e.g. my-site)"
        )


def validate_vpc_id(vpc_id: str) -> None:
    """Validate VPC id format (vpc- followed by 8 or 17 hex digits)."""
    if not re.match(VPC_ID_PATTERN, vpc_id):
        raise ConfigurationError(
            f"Invalid TARGET_VPC_ID: {vpc_id} (expected format: vpc-0123456789abcdef0)"
        )


def validate_domain(domain: str) -> None:
    """Validate a fully qualified domain name."""
    if not domain or len(domain) > MAX_DOMAIN_LENGTH:
        raise ConfigurationError(f"Invalid domain: '{domain}' (empty or too long)")
    if "." not in domain:
        raise ConfigurationError(f"Invalid domain: {domain} (must contain a dot)")
    if ".." in domain or domain.startswith(".") or domain.endswith("."):
        raise ConfigurationError(f"Invalid domain: {domain} (misplaced dot)")
    for label in domain.split("."):
        if not re.match(DOMAIN_LABEL_PATTERN, label):
            raise ConfigurationError(f"Invalid domain: {domain} (bad label '{label}')")


def normalize_domains(domains: list[str]) -> list[str]:
    """Lower-case, de-duplicate and sort domain names."""
    return sorted({d.strip().lower() for d in domains if d and d.strip()})


def get_stage_a_config(
    infrastructure_profile: str | None = None,
    target_profile: str | None = None,
    distribution_prefix: str | None = None,
    target_region: str | None = None,
    target_vpc_id: str | None = None,
    env_path: Path = Path(".env"),
) -> StageAConfig:
    """Merge CLI options over .env defaults and validate the result."""
    env = load_env_file(env_path)

    infra = infrastructure_profile or env.get("INFRA_PROFILE", "")
    target = target_profile or env.get("TARGET_PROFILE", "")
    prefix = distribution_prefix or env.get("DISTRIBUTION_PREFIX", "")
    region = target_region or env.get("TARGET_REGION", "us-east-1")
    vpc_id = target_vpc_id or env.get("TARGET_VPC_ID", "")

    errors = []

    if not infra:
        errors.append("INFRA_PROFILE is not set (use --infra-profile or .env)")
    if not target:
        errors.append("TARGET_PROFILE is not set (use --target-profile or .env)")

    for value, name, validator in (
        (prefix, "DISTRIBUTION_PREFIX", validate_distribution_prefix),
        (region, "TARGET_REGION", validate_aws_region),
        (vpc_id, "TARGET_VPC_ID", validate_vpc_id),
    ):
        if not value:
            errors.append(f"{name} is not set")
            continue
        try:
            validator(value)
        except ConfigurationError as e:
            errors.append(str(e))

    if errors:
        for error in errors:
            print_error(error)
        raise ConfigurationError("Configuration validation failed")

    return StageAConfig(
        infrastructure_profile=infra,
        target_profile=target,
        distribution_prefix=prefix,
        target_region=region,
        target_vpc_id=vpc_id,
    )


def get_domains(
    domains: list[str] | None = None, env_path: Path = Path(".env")
) -> list[str]:
    """Resolve Stage B domains from --domain options or DOMAINS in .env."""
    if not domains:
        raw = load_env_file(env_path).get("DOMAINS", "")
        domains = [d for d in raw.split(",") if d.strip()]

    normalized = normalize_domains(domains)
    if not normalized:
        print_error("No domains given (use --domain or DOMAINS in .env)")
        raise ConfigurationError("Configuration validation failed")

    errors = []
    for domain in normalized:
        try:
            validate_domain(domain)
        except ConfigurationError as e:
            errors.append(str(e))

    if errors:
        for error in errors:
            print_error(error)
        raise ConfigurationError("Configuration validation failed")

    return normalized
