"""
Stage B: custom domains with an ACM certificate.

The certificate lives in the target account (us-east-1, next to CloudFront),
while the hosted zones that prove ownership live in the infrastructure
account. The stage requests the certificate, publishes the DNS validation
records across accounts, then attaches the domains to the Stage A
distribution.
"""

import time
from typing import Annotated

import typer

from .lib.aws import (
    certificate_attached,
    delete_stack_and_wait,
    distribution_aliases,
    get_distribution,
    get_session,
    update_distribution_config,
    with_certificate,
    without_certificate,
)
from .lib.commands import check_required_commands
from .lib.config import get_domains
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
from .lib.dns import (
    CERTIFICATE_REGION,
    delete_certificate,
    delete_validation_records,
    describe_certificate,
    find_certificate,
    find_hosted_zones,
    request_certificate,
    resolves,
    upsert_validation_records,
    validation_records,
)
from .lib.pipeline import Step, ensure_no_distribution_in_progress, exit_on_error, run_steps
from .lib.polling import (
    PollTimeoutError,
    wait_for_certificate,
    wait_for_distribution_deployed,
    wait_for_validation_records,
)
from .lib.probes import status_of
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

app = typer.Typer(help="Stage B: SSL certificate and custom domains")

# Any HTTP answer over TLS proves the certificate is served
HTTPS_OK_STATUSES = (200, 301, 302, 403, 404)

EXIT_PENDING = 2


def gather_inputs(data: StageData, stage_a: dict, domains: list[str]) -> dict:
    """Combine the requested domains with Stage A's identifiers."""
    inputs = {
        "domains": domains,
        "primaryDomain": domains[0],
        "distributionId": lookup(stage_a, "distributionId", "stageA"),
        "distributionDomainName": lookup(stage_a, "distributionDomainName", "stageA"),
        "distributionPrefix": lookup(stage_a, "distributionPrefix", "stageA"),
        "targetRegion": lookup(stage_a, "targetRegion", "stageA"),
        "infrastructureProfile": lookup(stage_a, "infrastructureProfile", "stageA"),
        "targetProfile": lookup(stage_a, "targetProfile", "stageA"),
        "infrastructureAccountId": lookup(stage_a, "infrastructureAccountId", "stageA"),
        "targetAccountId": lookup(stage_a, "targetAccountId", "stageA"),
        "timestamp": utc_timestamp(),
    }
    missing = [key for key, value in inputs.items() if value in (None, "")]
    if missing:
        print_error(f"Stage A outputs are missing: {', '.join(missing)}")
        raise typer.Exit(1)

    data.write(INPUTS, inputs)
    print_success(f"Domains: {', '.join(domains)}")
    return inputs


def discover(data: StageData) -> dict:
    """Find the hosted zone for every domain and any reusable certificate."""
    inputs = data.read(INPUTS)
    infra = get_session(inputs["infrastructureProfile"])
    target = get_session(inputs["targetProfile"], CERTIFICATE_REGION)

    matches, missing = find_hosted_zones(infra, inputs["domains"])
    for match in matches:
        print_success(f"{match['domain']} -> zone {match['zoneName']} ({match['zoneId']})")
    if missing:
        for domain in missing:
            print_error(f"No public hosted zone in the infrastructure account for {domain}")
        raise typer.Exit(1)

    certificate = find_certificate(target, inputs["domains"])
    if certificate:
        print_success(
            f"Existing certificate {certificate['CertificateArn']} ({certificate['Status']})"
        )
    else:
        print_info("No existing certificate; a new one will be requested")

    discovery = {
        "hostedZones": matches,
        "existingCertificateArn": certificate["CertificateArn"] if certificate else None,
        "existingCertificateStatus": certificate["Status"] if certificate else None,
        "timestamp": utc_timestamp(),
    }
    data.write(DISCOVERY, discovery)
    return discovery


def deploy_certificate(data: StageData) -> str:
    """Reuse or request the certificate, then deploy the stack importing it."""
    inputs = data.read(INPUTS)
    discovery = data.read(DISCOVERY)
    target = get_session(inputs["targetProfile"], CERTIFICATE_REGION)

    arn = discovery.get("existingCertificateArn")
    if arn and describe_certificate(target, arn) is None:
        print_warning(f"Certificate {arn} no longer exists")
        arn = None
    if not arn:
        arn = request_certificate(target, inputs["domains"], inputs["distributionPrefix"])
        print_success(f"Certificate requested: {arn}")

    status = describe_certificate(target, arn)["Status"]
    data.update(OUTPUTS, certificateArn=arn, certificateStatus=status)

    deploy_stage_stack(
        data,
        context={
            "domains": ",".join(inputs["domains"]),
            "distribution_id": inputs["distributionId"],
            "distribution_domain_name": inputs["distributionDomainName"],
            "infra_account_id": inputs["infrastructureAccountId"],
            "target_account_id": inputs["targetAccountId"],
            "certificate_arn": arn,
        },
        session=target,
        region=CERTIFICATE_REGION,
        profile=inputs["targetProfile"],
    )
    return arn


def validate_dns(data: StageData) -> str:
    """Publish the validation CNAMEs and wait for the certificate to issue."""
    inputs = data.read(INPUTS)
    discovery = data.read(DISCOVERY)
    arn = data.read(OUTPUTS)["certificateArn"]
    infra = get_session(inputs["infrastructureProfile"])
    target = get_session(inputs["targetProfile"], CERTIFICATE_REGION)

    records = wait_for_validation_records(target, arn)
    upsert_validation_records(infra, records, discovery["hostedZones"])
    data.update(OUTPUTS, validationRecords=records)

    console.print("   Waiting for ACM to issue the certificate (up to 30 minutes)...")
    status = wait_for_certificate(target, arn)
    data.update(OUTPUTS, certificateStatus=status, certificateIssuedTimestamp=utc_timestamp())
    print_success(f"Certificate {status}")
    return status


def configure_cloudfront(data: StageData) -> bool:
    """Attach the domains and certificate to the distribution."""
    inputs = data.read(INPUTS)
    arn = data.read(OUTPUTS)["certificateArn"]
    session = get_session(inputs["targetProfile"])

    changed = update_distribution_config(
        session,
        inputs["distributionId"],
        lambda config: with_certificate(config, inputs["domains"], arn),
    )
    if changed:
        print_success(f"Distribution {inputs['distributionId']} updated with custom domains")
    else:
        print_success("Distribution already uses the certificate")
    return changed


def print_dns_instructions(inputs: dict) -> None:
    """Tell the user which alias records to create."""
    console.print("\n[blue]DNS records to create in the infrastructure account:[/blue]")
    for domain in inputs["domains"]:
        console.print(f"   {domain}  A/AAAA (alias)  ->  {inputs['distributionDomainName']}")


def validate(data: StageData) -> str:
    """
    Check the certificate, the distribution and the domains.

    Returns:
        "passed", "pending" or "failed". Pending exits with code 2 and
        failed with code 1, after outputs.json is written.
    """
    inputs = data.read(INPUTS)
    outputs = data.read_optional(OUTPUTS)
    arn = outputs.get("certificateArn")
    target = get_session(inputs["targetProfile"], CERTIFICATE_REGION)
    failures = []
    data.clear_ready()

    certificate = describe_certificate(target, arn) if arn else None
    certificate_status = certificate["Status"] if certificate else "MISSING"
    if certificate_status == "ISSUED":
        print_success("Certificate ISSUED")
    elif certificate_status == "PENDING_VALIDATION":
        print_warning("Certificate still PENDING_VALIDATION")
    else:
        print_error(f"Certificate status: {certificate_status}")
        failures.append("certificate")

    distribution_id = inputs["distributionId"]
    distribution = get_distribution(target, distribution_id)
    if distribution is None:
        print_error(f"Distribution {distribution_id} not found")
        failures.append("distribution")
    else:
        try:
            wait_for_distribution_deployed(target, distribution_id)
            print_success(f"Distribution {distribution_id} Deployed")
        except (PollTimeoutError, LookupError) as e:
            print_error(str(e))
            failures.append("distribution")

    if distribution is not None:
        if certificate_attached(distribution, arn):
            print_success("Certificate attached to the distribution")
        else:
            print_warning("Distribution does not use this certificate")

    aliases = distribution_aliases(distribution) if distribution else []
    for domain in inputs["domains"]:
        if domain not in aliases:
            print_warning(f"{domain} is not an alias of the distribution")
        if not resolves(domain):
            print_warning(f"{domain} does not resolve yet")
            continue
        code = status_of(f"https://{domain}")
        if code in HTTPS_OK_STATUSES:
            print_success(f"https://{domain} reachable ({code})")
        else:
            print_warning(f"https://{domain} not reachable yet ({code})")

    if failures:
        status = "failed"
    elif certificate_status != "ISSUED":
        status = "pending"
    else:
        status = "passed"

    stage_b = {
        "certificateArn": arn,
        "certificateStatus": certificate_status,
        "domains": inputs["domains"],
        "primaryDomain": inputs["primaryDomain"],
        "distributionId": distribution_id,
        "distributionDomainName": inputs["distributionDomainName"],
        "distributionUrl": f"https://{inputs['primaryDomain']}",
    }
    data.update(
        OUTPUTS,
        stageB=stage_b,
        **stage_b,
        deploymentTimestamp=utc_timestamp(),
        validationStatus=status,
        readyForStageC=status == "passed",
    )

    if status == "pending":
        console.print("   Run 'validate' again once ACM has issued the certificate.")
        raise typer.Exit(EXIT_PENDING)
    if status == "failed":
        raise typer.Exit(1)
    print_success("Stage B validated")
    print_dns_instructions(inputs)
    return status


def show_status(data: StageData) -> None:
    inputs = data.read(INPUTS)
    outputs = data.read_optional(OUTPUTS)
    target = get_session(inputs["targetProfile"], CERTIFICATE_REGION)

    arn = outputs.get("certificateArn")
    certificate = describe_certificate(target, arn) if arn else None
    distribution = get_distribution(target, inputs["distributionId"])

    rows = [
        ["Certificate", arn or "-", certificate["Status"] if certificate else "not found"],
        [
            "Distribution",
            inputs["distributionId"],
            distribution["Status"] if distribution else "not found",
        ],
    ]
    for domain in inputs["domains"]:
        rows.append(["Domain", domain, "resolves" if resolves(domain) else "no DNS"])
    print_table("Stage B", ["Resource", "Id", "Status"], rows)
    console.print(f"Ready for Stage C: {outputs.get('readyForStageC', False)}")


@app.callback()
def main_options(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Stage B: SSL certificate and custom domains."""
    configure_logging(verbose)


@app.command()
def go(
    domain: Annotated[
        list[str] | None, typer.Option("--domain", "-d", help="Domain to serve (repeatable)")
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
    force: Annotated[bool, typer.Option("--force", help="Re-run completed steps")] = False,
) -> None:
    """
    Deploy Stage B end to end.

    1. Read Stage A outputs and the requested domains

    2. Match each domain to a hosted zone

    3. Request or reuse the certificate (us-east-1)

    4. Publish DNS validation records and wait for ISSUED

    5. Attach the domains to the distribution

    6. Validate and write outputs.json
    """
    with exit_on_error():
        stage_a = require_ready("a")
        check_required_commands(["cdk"])
        data = StageData("b")

        reuse_inputs = data.exists(INPUTS) and not force
        if reuse_inputs and domain:
            print_warning(
                f"Ignoring --domain: reusing domains from {data.path(INPUTS)} "
                "(pass --force to replace them)"
            )
        domains = None if reuse_inputs else get_domains(domain)
        infra_profile = lookup(stage_a, "infrastructureProfile", "stageA")
        target_profile = lookup(stage_a, "targetProfile", "stageA")
        print_config(
            {
                "Domains": ", ".join(domains) if domains else None,
                "Distribution": lookup(stage_a, "distributionId", "stageA"),
                "Infra profile": infra_profile,
                "Target profile": target_profile,
            }
        )

        print_header("Stage B: SSL Certificate")
        check_profile(infra_profile, interactive=not yes)
        check_profile(target_profile, interactive=not yes)
        ensure_no_distribution_in_progress(get_session(target_profile))

        steps = [
            Step(
                "inputs",
                "Gathering inputs...",
                lambda: gather_inputs(data, stage_a, domains),
                lambda: data.exists(INPUTS),
                "Pass --domain or set DOMAINS in .env.",
            ),
            Step(
                "discovery",
                "Discovering hosted zones and certificates...",
                lambda: discover(data),
                lambda: data.exists(DISCOVERY),
                "Each domain needs a public hosted zone in the infrastructure account.",
            ),
            Step(
                "certificate",
                "Requesting certificate and deploying stack...",
                lambda: deploy_certificate(data),
                lambda: data.exists(CDK_STACK_OUTPUTS),
                "Check ACM quotas and the StageBSslCertificateStack events in us-east-1.",
            ),
            Step(
                "dns",
                "Validating certificate through DNS...",
                lambda: validate_dns(data),
                lambda: data.field_equals(OUTPUTS, "certificateStatus", "ISSUED"),
                "Check the CNAME records in Route53 and re-run 'dns'.",
            ),
            Step(
                "cloudfront",
                "Attaching domains to CloudFront...",
                lambda: configure_cloudfront(data),
                hint="Another distribution may already use one of the domains as an alias.",
            ),
            Step(
                "validation",
                "Validating deployment...",
                lambda: validate(data),
                lambda: data.field_equals(OUTPUTS, "validationStatus", "passed"),
                "Certificate issuance and DNS can take a while; run 'validate' again later.",
            ),
        ]
        run_steps(steps, force=force)

        print_final_success("Stage B complete!")
        print_next_steps(["Next: python -m scripts.stage_c go"])


@app.command()
def inputs(
    domain: Annotated[list[str] | None, typer.Option("--domain", "-d")] = None,
) -> None:
    """Record the domains and Stage A identifiers."""
    with exit_on_error():
        stage_a = require_ready("a")
        gather_inputs(StageData("b"), stage_a, get_domains(domain))


@app.command()
def discovery() -> None:
    """Match domains to hosted zones and look for a reusable certificate."""
    with exit_on_error():
        require_ready("a")
        discover(StageData("b"))


@app.command()
def certificate() -> None:
    """Request or reuse the certificate and deploy the stack."""
    with exit_on_error():
        require_ready("a")
        check_required_commands(["cdk"])
        deploy_certificate(StageData("b"))


@app.command()
def dns() -> None:
    """Publish validation records and wait for the certificate."""
    with exit_on_error():
        require_ready("a")
        validate_dns(StageData("b"))


@app.command()
def cloudfront() -> None:
    """Attach the domains and certificate to the distribution."""
    with exit_on_error():
        require_ready("a")
        configure_cloudfront(StageData("b"))


@app.command("validate")
def validate_command() -> None:
    """Validate Stage B and write outputs.json."""
    with exit_on_error():
        require_ready("a")
        validate(StageData("b"))


@app.command()
def status(
    watch: Annotated[bool, typer.Option("--watch", "-w", help="Refresh until Ctrl-C")] = False,
    interval: Annotated[int, typer.Option("--interval")] = 30,
) -> None:
    """Show the certificate, distribution and domain status."""
    with exit_on_error("Status cancelled."):
        data = StageData("b")
        while True:
            print_header("Stage B Status", emoji="📊")
            show_status(data)
            if not watch:
                break
            time.sleep(interval)


@app.command()
def undo(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not prompt")] = False,
) -> None:
    """Detach the domains, then remove the stack, certificate and validation records."""
    with exit_on_error("Cleanup cancelled."):
        data = StageData("b")
        inputs = data.read(INPUTS)
        discovery = data.read_optional(DISCOVERY)
        outputs = data.read_optional(OUTPUTS)

        print_header("Stage B Cleanup", emoji="🗑️")
        if not yes and not typer.confirm("   Remove the custom domains and certificate?"):
            raise typer.Exit(1)

        infra = get_session(inputs["infrastructureProfile"])
        target = get_session(inputs["targetProfile"], CERTIFICATE_REGION)
        distribution_id = inputs["distributionId"]

        if get_distribution(target, distribution_id):
            if update_distribution_config(target, distribution_id, without_certificate):
                print_success("Distribution reverted to the default certificate")
            console.print("   Waiting for the distribution to deploy...")
            wait_for_distribution_deployed(target, distribution_id)

        delete_stack_and_wait(target, STACK_NAMES["b"], CERTIFICATE_REGION)

        arn = outputs.get("certificateArn")
        records = outputs.get("validationRecords", [])
        if arn:
            certificate = describe_certificate(target, arn)
            if certificate and not records:
                records = validation_records(certificate)
            delete_certificate(target, arn)
        if records and discovery.get("hostedZones"):
            delete_validation_records(infra, records, discovery["hostedZones"])

        removed = data.remove(CDK_OUTPUTS, CDK_STACK_OUTPUTS, OUTPUTS)
        print_success(f"Removed data files: {', '.join(removed) or 'none'}")
        print_final_success("Stage B removed")


def main() -> None:
    """Entry point for the Stage B script."""
    app()


if __name__ == "__main__":
    main()
