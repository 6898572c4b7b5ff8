"""Route53 hosted zones and ACM certificates for custom domains."""

import hashlib
import logging
import socket
from typing import Any

import boto3
from botocore.exceptions import ClientError

from .aws import error_code
from .console import print_success, print_warning

logger = logging.getLogger(__name__)

# CloudFront only accepts certificates from us-east-1
CERTIFICATE_REGION = "us-east-1"
VALIDATION_RECORD_TTL = 300

USABLE_CERTIFICATE_STATUSES = ("ISSUED", "PENDING_VALIDATION")
FAILED_CERTIFICATE_STATUSES = ("FAILED", "VALIDATION_TIMED_OUT", "REVOKED")


def normalize_zone_name(name: str) -> str:
    """Strip the trailing dot Route53 puts on zone names."""
    return name.rstrip(".").lower()


def match_hosted_zone(domain: str, zones: list[dict[str, Any]]) -> dict[str, Any] | None:
    """
    Pick the hosted zone that owns ``domain``.

    A zone owns a domain when the domain equals the zone name or ends with
    ``.<zone name>``. The longest matching zone wins, so a delegated
    ``sub.example.com`` zone beats ``example.com``.
    """
    domain = domain.lower()
    best = None
    for zone in zones:
        name = normalize_zone_name(zone["Name"])
        if domain == name or domain.endswith(f".{name}"):
            if best is None or len(name) > len(normalize_zone_name(best["Name"])):
                best = zone
    return best


def list_public_hosted_zones(session: boto3.Session) -> list[dict[str, Any]]:
    route53 = session.client("route53")
    zones = []
    for page in route53.get_paginator("list_hosted_zones").paginate():
        zones.extend(
            z for z in page.get("HostedZones", []) if not z.get("Config", {}).get("PrivateZone")
        )
    return zones


def zone_id(zone: dict[str, Any]) -> str:
    """Bare zone id without the /hostedzone/ prefix."""
    return zone["Id"].split("/")[-1]


def find_hosted_zones(
    session: boto3.Session, domains: list[str]
) -> tuple[list[dict[str, str]], list[str]]:
    """
    Match each domain to a public hosted zone.

    Returns:
        (matches, missing) where matches are {domain, zoneId, zoneName} dicts
        and missing lists domains with no owning zone.
    """
    zones = list_public_hosted_zones(session)
    matches = []
    missing = []
    for domain in domains:
        zone = match_hosted_zone(domain, zones)
        if zone is None:
            missing.append(domain)
            continue
        matches.append(
            {
                "domain": domain,
                "zoneId": zone_id(zone),
                "zoneName": normalize_zone_name(zone["Name"]),
            }
        )
    return matches, missing


def zone_for_record(record_name: str, hosted_zones: list[dict[str, str]]) -> str | None:
    """Zone id whose name is the longest suffix of a DNS record name."""
    name = normalize_zone_name(record_name)
    best_id = None
    best_len = -1
    for zone in hosted_zones:
        zone_name = zone["zoneName"]
        if (name == zone_name or name.endswith(f".{zone_name}")) and len(zone_name) > best_len:
            best_id = zone["zoneId"]
            best_len = len(zone_name)
    return best_id


def describe_certificate(session: boto3.Session, arn: str) -> dict[str, Any] | None:
    acm = session.client("acm", region_name=CERTIFICATE_REGION)
    try:
        return acm.describe_certificate(CertificateArn=arn)["Certificate"]
    except ClientError as e:
        if error_code(e) == "ResourceNotFoundException":
            return None
        raise


def certificate_domains(certificate: dict[str, Any]) -> list[str]:
    names = set(certificate.get("SubjectAlternativeNames", []))
    names.add(certificate["DomainName"])
    return sorted(n.lower() for n in names)


def find_certificate(
    session: boto3.Session,
    domains: list[str],
    statuses: tuple[str, ...] = USABLE_CERTIFICATE_STATUSES,
) -> dict[str, Any] | None:
    """Find a us-east-1 certificate covering exactly ``domains``."""
    acm = session.client("acm", region_name=CERTIFICATE_REGION)
    wanted = sorted(d.lower() for d in domains)

    paginator = acm.get_paginator("list_certificates")
    for page in paginator.paginate(CertificateStatuses=list(statuses)):
        for summary in page.get("CertificateSummaryList", []):
            certificate = describe_certificate(session, summary["CertificateArn"])
            if certificate and certificate_domains(certificate) == wanted:
                logger.info(
                    "Found certificate %s (%s)",
                    certificate["CertificateArn"],
                    certificate["Status"],
                )
                return certificate
    return None


def request_certificate(session: boto3.Session, domains: list[str], prefix: str) -> str:
    """Request a DNS-validated certificate; the first sorted domain is primary."""
    acm = session.client("acm", region_name=CERTIFICATE_REGION)
    ordered = sorted(domains)
    token = hashlib.sha256(",".join(ordered).encode()).hexdigest()[:32]

    kwargs: dict[str, Any] = {
        "DomainName": ordered[0],
        "ValidationMethod": "DNS",
        "IdempotencyToken": token,
        "Tags": [
            {"Key": "Stage", "Value": "B-SSL"},
            {"Key": "DistributionPrefix", "Value": prefix},
        ],
    }
    if len(ordered) > 1:
        kwargs["SubjectAlternativeNames"] = ordered[1:]

    arn = acm.request_certificate(**kwargs)["CertificateArn"]
    logger.info("Requested certificate %s for %s", arn, ordered)
    return arn


def validation_records(certificate: dict[str, Any]) -> list[dict[str, str]]:
    """Distinct DNS validation CNAMEs published by ACM."""
    records = {}
    for option in certificate.get("DomainValidationOptions", []):
        record = option.get("ResourceRecord")
        if not record:
            continue
        records[record["Name"]] = {
            "domain": option["DomainName"],
            "name": record["Name"],
            "type": record["Type"],
            "value": record["Value"],
        }
    return list(records.values())


def record_matches(
    session: boto3.Session, hosted_zone_id: str, name: str, record_type: str, value: str
) -> bool:
    """True when the zone already holds this exact record."""
    route53 = session.client("route53")
    response = route53.list_resource_record_sets(
        HostedZoneId=hosted_zone_id,
        StartRecordName=name,
        StartRecordType=record_type,
        MaxItems="1",
    )
    for record_set in response.get("ResourceRecordSets", []):
        if normalize_zone_name(record_set["Name"]) != normalize_zone_name(name):
            continue
        if record_set["Type"] != record_type:
            continue
        values = {r["Value"] for r in record_set.get("ResourceRecords", [])}
        return value in values
    return False


def change_validation_record(
    session: boto3.Session, hosted_zone_id: str, record: dict[str, str], action: str
) -> None:
    route53 = session.client("route53")
    route53.change_resource_record_sets(
        HostedZoneId=hosted_zone_id,
        ChangeBatch={
            "Comment": f"ACM validation for {record['domain']}",
            "Changes": [
                {
                    "Action": action,
                    "ResourceRecordSet": {
                        "Name": record["name"],
                        "Type": record["type"],
                        "TTL": VALIDATION_RECORD_TTL,
                        "ResourceRecords": [{"Value": record["value"]}],
                    },
                }
            ],
        },
    )


def upsert_validation_records(
    session: boto3.Session,
    records: list[dict[str, str]],
    hosted_zones: list[dict[str, str]],
) -> int:
    """
    Publish validation CNAMEs in the owning hosted zones.

    Records already present with the same value are left alone.

    Returns:
        Number of records written.

    Raises:
        LookupError: If a record has no owning hosted zone.
    """
    written = 0
    for record in records:
        hosted_zone_id = zone_for_record(record["name"], hosted_zones)
        if hosted_zone_id is None:
            raise LookupError(f"No hosted zone found for validation record {record['name']}")

        if record_matches(session, hosted_zone_id, record["name"], record["type"], record["value"]):
            print_success(f"Validation record for {record['domain']} already present")
            continue

        change_validation_record(session, hosted_zone_id, record, "UPSERT")
        print_success(f"Validation record created for {record['domain']}")
        written += 1
    return written


def delete_validation_records(
    session: boto3.Session,
    records: list[dict[str, str]],
    hosted_zones: list[dict[str, str]],
) -> int:
    """Remove validation CNAMEs; missing records are skipped with a warning."""
    deleted = 0
    for record in records:
        hosted_zone_id = zone_for_record(record["name"], hosted_zones)
        if hosted_zone_id is None:
            print_warning(f"No hosted zone for {record['name']}, skipping")
            continue
        try:
            change_validation_record(session, hosted_zone_id, record, "DELETE")
        except ClientError as e:
            if error_code(e) == "InvalidChangeBatch":
                print_warning(f"Validation record for {record['domain']} not found, skipping")
                continue
            raise
        print_success(f"Validation record removed for {record['domain']}")
        deleted += 1
    return deleted


def delete_certificate(session: boto3.Session, arn: str) -> bool:
    """Delete a certificate unless something still uses it."""
    certificate = describe_certificate(session, arn)
    if certificate is None:
        print_warning("Certificate not found, skipping")
        return False

    in_use = certificate.get("InUseBy", [])
    if in_use:
        print_warning(f"Certificate still in use by {', '.join(in_use)}, keeping it")
        return False

    acm = session.client("acm", region_name=CERTIFICATE_REGION)
    acm.delete_certificate(CertificateArn=arn)
    print_success(f"Certificate deleted: {arn}")
    return True


def resolves(domain: str) -> bool:
    """True when the name resolves to at least one address."""
    try:
        return bool(socket.getaddrinfo(domain, 443))
    except socket.gaierror:
        return False
