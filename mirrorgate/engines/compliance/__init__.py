"""Compliance engine — transitive license walk."""

from mirrorgate.engines.compliance.licenses import (
    DEFAULT_ALLOWED_LICENSES,
    LicensePolicy,
    MissingLicensePolicy,
    parse_license_expression,
)
from mirrorgate.engines.compliance.walker import ComplianceWalker, VisitedSet, WalkReport

__all__ = [
    "DEFAULT_ALLOWED_LICENSES",
    "ComplianceWalker",
    "LicensePolicy",
    "MissingLicensePolicy",
    "VisitedSet",
    "WalkReport",
    "parse_license_expression",
]
