"""
CDK stack for the Stage B SSL certificate.

The certificate must live in us-east-1 for CloudFront to use it. The stage
script usually requests it through the ACM API first, because DNS validation
records go into a hosted zone in a different account and a CloudFormation
managed certificate would block the deploy until it is validated. In that case
the stack imports the certificate and only records the stage outputs.

Usage:
    cdk deploy StageBSslCertificateStack \\
        --context stage=b \\
        --context domains="example.com,www.example.com" \\
        --context distribution_id="E1ABCDEF2GHIJK" \\
        --context infra_account_id="111111111111" \\
        --context target_account_id="222222222222" \\
        --context certificate_arn="arn:aws:acm:us-east-1:..."
"""

import re

from aws_cdk import CfnOutput, Stack, Tags
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_ssm as ssm
from constructs import Construct

from .constants import CERTIFICATE_ARN_PATTERN, DISTRIBUTION_ID_PATTERN


def certificate_name(domains: list[str]) -> str:
    """Stable certificate name derived from the sorted domain list."""
    return "stage-b-ssl-" + "-".join(d.replace(".", "-") for d in sorted(domains))


class SslCertificateStack(Stack):
    """
    Stack owning (or importing) the CloudFront certificate.

    Attributes:
        certificate: The ACM certificate, created or imported.
        distribution: The imported Stage A distribution.
        certificate_parameter: SSM parameter holding the certificate ARN.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        domains: list[str],
        distribution_id: str,
        infra_account_id: str,
        target_account_id: str,
        existing_certificate_arn: str | None = None,
        distribution_domain_name: str | None = None,
        **kwargs,
    ) -> None:
        """
        Initialize the SslCertificateStack.

        Args:
            scope: CDK app or stage scope.
            construct_id: Unique identifier for this stack.
            domains: Domain names; the first in sorted order is the primary name.
            distribution_id: Stage A CloudFront distribution id.
            infra_account_id: Account holding the Route53 hosted zones.
            target_account_id: Account holding the distribution.
            existing_certificate_arn: Import this certificate instead of creating one.
            distribution_domain_name: The distribution's *.cloudfront.net name.
            **kwargs: Additional stack properties (env, etc.).

        Raises:
            ValueError: If domains is empty or an id/ARN is malformed.
        """
        super().__init__(scope, construct_id, **kwargs)

        sorted_domains = sorted({d.strip().lower() for d in domains if d.strip()})
        if not sorted_domains:
            raise ValueError("domains cannot be empty")
        if not re.match(DISTRIBUTION_ID_PATTERN, distribution_id or ""):
            raise ValueError(f"Invalid distribution_id: {distribution_id}")
        if existing_certificate_arn and not re.match(
            CERTIFICATE_ARN_PATTERN, existing_certificate_arn
        ):
            raise ValueError(
                f"Invalid certificate ARN (must be in us-east-1): {existing_certificate_arn}"
            )

        if existing_certificate_arn:
            self.certificate = acm.Certificate.from_certificate_arn(
                self, "Certificate", existing_certificate_arn
            )
        else:
            self.certificate = acm.Certificate(
                self,
                "Certificate",
                domain_name=sorted_domains[0],
                subject_alternative_names=sorted_domains[1:] or None,
                validation=acm.CertificateValidation.from_dns(),
                certificate_name=certificate_name(sorted_domains),
            )

        distribution_domain = (
            distribution_domain_name or f"{distribution_id.lower()}.cloudfront.net"
        )
        self.distribution = cloudfront.Distribution.from_distribution_attributes(
            self,
            "ImportedDistribution",
            distribution_id=distribution_id,
            domain_name=distribution_domain,
        )

        # An imported certificate adds no resources; the stack needs at least one
        self.certificate_parameter = ssm.StringParameter(
            self,
            "CertificateArnParameter",
            parameter_name=f"/{certificate_name(sorted_domains)}/certificate-arn",
            string_value=self.certificate.certificate_arn,
            description="CloudFront certificate ARN",
        )

        Tags.of(self).add("Stage", "B-SSL")
        Tags.of(self).add("Component", "SSL-Certificate")
        Tags.of(self).add("InfraAccount", infra_account_id)
        Tags.of(self).add("TargetAccount", target_account_id)

        CfnOutput(
            self,
            "CertificateArnOutput",
            value=self.certificate.certificate_arn,
            description="ARN of the SSL certificate",
        )
        CfnOutput(
            self,
            "DistributionIdOutput",
            value=distribution_id,
            description="CloudFront distribution ID",
        )
        CfnOutput(
            self,
            "DistributionDomainNameOutput",
            value=distribution_domain,
            description="CloudFront distribution domain name",
        )
        CfnOutput(
            self,
            "DomainsOutput",
            value=",".join(sorted_domains),
            description="Domains covered by the certificate",
        )
        CfnOutput(self, "InfraAccountIdOutput", value=infra_account_id)
        CfnOutput(self, "TargetAccountIdOutput", value=target_account_id)
        CfnOutput(
            self,
            "ValidationMethodOutput",
            value="DNS",
            description="Certificate validation method",
        )
