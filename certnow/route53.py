"""
Route53 hosted zone lookup.

DNS-01 validation only works for a zone the operator controls, so a run
refuses to start when neither the domain nor its base domain has a hosted
zone in the selected account.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import Route53Error, ZoneNotFoundError
from .helpers import get_base_domain, strip_wildcard
from .logger import get_logger


@dataclass(frozen=True)
class HostedZone:
    """A Route53 hosted zone."""
    id: str
    name: str
    private: bool = False

    @classmethod
    def from_api(cls, data: dict) -> "HostedZone":
        """Build a HostedZone from a ListHostedZones entry."""
        return cls(
            id=data["Id"].split("/")[-1],
            name=normalize_zone_name(data["Name"]),
            private=bool(data.get("Config", {}).get("PrivateZone", False)),
        )


def normalize_zone_name(name: str) -> str:
    """Lower-case a zone name and drop the trailing root dot."""
    return name.strip().rstrip(".").lower()


def find_hosted_zone(zones: Iterable[HostedZone], domain: str) -> Optional[HostedZone]:
    """
    Find the hosted zone that owns a domain.

    The domain (without a wildcard label) is matched exactly against zone
    names first, then its base domain (last two labels) is tried.

    Args:
        zones: Hosted zones visible in the account
        domain: Requested domain, possibly "*.example.com"

    Returns:
        Matching HostedZone or None
    """
    zones = list(zones)
    candidate = normalize_zone_name(strip_wildcard(domain))

    for name in (candidate, get_base_domain(candidate)):
        for zone in zones:
            if zone.name == name:
                return zone

    return None


class Route53Client:
    """
    Client for the Route53 zone listing.

    Uses a boto3 session for the given profile so that lookups run in the
    same account certbot later writes the challenge record to.
    """

    def __init__(self, profile: str, region: str, session: Optional[boto3.session.Session] = None):
        self.profile = profile
        self.region = region
        self.logger = get_logger()
        self._session = session
        self._client = None

    @property
    def client(self):
        """Get the route53 client, creating it if necessary."""
        if self._client is None:
            session = self._session or boto3.session.Session(
                profile_name=self.profile, region_name=self.region
            )
            self._client = session.client("route53")
        return self._client

    def list_hosted_zones(self) -> List[HostedZone]:
        """
        List every hosted zone in the account.

        Returns:
            List of HostedZone records

        Raises:
            Route53Error: If the API call fails
        """
        zones = []
        try:
            paginator = self.client.get_paginator("list_hosted_zones")
            for page in paginator.paginate():
                for data in page.get("HostedZones", []):
                    zones.append(HostedZone.from_api(data))
        except (ClientError, BotoCoreError) as e:
            raise Route53Error(f"Failed to list Route53 hosted zones: {e}")

        self.logger.debug(f"Found {len(zones)} hosted zone(s)")
        return zones

    def resolve_zone(self, domain: str) -> HostedZone:
        """
        Resolve the hosted zone for a domain.

        Args:
            domain: Requested domain

        Returns:
            The matching HostedZone

        Raises:
            ZoneNotFoundError: If neither the domain nor its base domain has a zone
        """
        zone = find_hosted_zone(self.list_hosted_zones(), domain)
        if zone is None:
            bare = strip_wildcard(domain)
            raise ZoneNotFoundError(bare, get_base_domain(bare))

        if zone.private:
            self.logger.warning(
                f"Hosted zone {zone.name} is private; public DNS-01 validation may fail"
            )
        return zone
