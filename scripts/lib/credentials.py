"""Check AWS profiles and credentials, offering SSO login when expired."""

import logging

import boto3
import typer
from botocore.exceptions import (
    ClientError,
    NoCredentialsError,
    ProfileNotFound,
    SSOError,
    TokenRetrievalError,
)

from .commands import run_sso_login
from .config import ConfigurationError
from .console import console, print_error, print_success, print_warning

logger = logging.getLogger(__name__)

EXPIRED_TOKEN_CODES = {"ExpiredToken", "ExpiredTokenException", "InvalidClientTokenId"}


def available_profiles() -> list[str]:
    """Profiles configured in ~/.aws/config and ~/.aws/credentials."""
    return boto3.Session().available_profiles


def is_sso_error(error: Exception) -> bool:
    """Check if error means the SSO session is missing or expired."""
    if isinstance(error, (SSOError, TokenRetrievalError)):
        return True
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "") in EXPIRED_TOKEN_CODES
    message = str(error).lower()
    return any(word in message for word in ("sso", "token has expired", "refresh"))


def _caller_account(profile: str) -> str:
    session = boto3.Session(profile_name=profile)
    return session.client("sts").get_caller_identity()["Account"]


def check_profile(profile: str, interactive: bool = True) -> str:
    """
    Verify a profile exists and its credentials work.

    Args:
        profile: AWS CLI profile name.
        interactive: If True, offer ``aws sso login`` when the session expired.

    Returns:
        The profile's account id.

    Raises:
        ConfigurationError: If the profile is unknown or its credentials fail.
    """
    if profile not in available_profiles():
        print_error(f"AWS profile '{profile}' not found")
        console.print("   List profiles with: aws configure list-profiles")
        raise ConfigurationError(f"Unknown AWS profile: {profile}")

    try:
        account_id = _caller_account(profile)
    except ProfileNotFound as e:
        print_error(str(e))
        raise ConfigurationError(f"Unknown AWS profile: {profile}") from e
    except NoCredentialsError as e:
        print_error(f"No credentials for profile '{profile}'")
        raise ConfigurationError(str(e)) from e
    except (ClientError, SSOError, TokenRetrievalError) as e:
        if not is_sso_error(e):
            print_error(f"AWS credentials for '{profile}' are invalid: {e}")
            raise ConfigurationError(str(e)) from e
        account_id = _refresh_sso(profile, interactive, e)

    print_success(f"Profile {profile} -> account {account_id}")
    return account_id


def _refresh_sso(profile: str, interactive: bool, error: Exception) -> str:
    """Run SSO login and retry the identity check once."""
    print_warning(f"AWS SSO session for '{profile}' has expired")
    logger.info("SSO error for %s: %s", profile, error)

    if not interactive or not typer.confirm("   Run aws sso login now?", default=True):
        console.print(f"   To refresh, run: aws sso login --profile {profile}")
        raise ConfigurationError(f"Expired SSO session for profile {profile}") from error

    result = run_sso_login(profile)
    if not result.success:
        print_error("SSO login failed")
        raise ConfigurationError(f"SSO login failed for profile {profile}") from error

    try:
        return _caller_account(profile)
    except (ClientError, SSOError, TokenRetrievalError) as e:
        print_error(f"Credentials still invalid after SSO login: {e}")
        raise ConfigurationError(str(e)) from e
