"""Route53 adapter for certificate validation and alias records."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ...utils.cache import TTLCache, make_cache_key
from ...utils.errors import invalid_input
from ...utils.naming import ensure_trailing_dot
from .base import CNAME
from .session import BotoAdapter

logger = logging.getLogger(__name__)

HOSTED_ZONE_CACHE_TTL_SECONDS = 7 * 60.0
RECORD_CACHE_TTL_SECONDS = 10 * 60.0
RECORD_TTL = 600


class Route53DNSService(BotoAdapter):
    """DNSService backed by boto3.

    Lookups are cached per ``cache_namespace`` (the assumed role ARN) since the
    same zone names can exist in several accounts.
    """

    service = "route53"

    def __init__(
        self,
        client: Any,
        cache: Optional[TTLCache] = None,
        cache_namespace: str = "",
        metrics: Any = None,
    ) -> None:
        super().__init__(client, metrics)
        self.cache = cache
        self.cache_namespace = cache_namespace

    def find_hosted_zone(self, domain: str, public: bool = True) -> str:
        cache_key = make_cache_key("route53-zone", self.cache_namespace, domain, str(public))
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        wanted = ensure_trailing_dot(domain)
        response = self._call("list_hosted_zones_by_name", DNSName=domain, MaxItems="100")
        for zone in response.get("HostedZones", []):
            private = zone.get("Config", {}).get("PrivateZone", False)
            if zone.get("Name") == wanted and private != public:
                zone_id = zone["Id"].split("/")[-1]
                if self.cache is not None:
                    self.cache.set(cache_key, zone_id, ttl=HOSTED_ZONE_CACHE_TTL_SECONDS)
                return zone_id
        raise invalid_input(f"hosted zone for {domain} (public={public}) not found")

    def upsert_cname(self, zone_id: str, record: CNAME) -> None:
        cache_key = make_cache_key("route53-record", self.cache_namespace, zone_id, record.name)
        if self.cache is not None and self.cache.get(cache_key) == record.value:
            logger.debug(f"CNAME {record.name} is up to date")
            return

        self._call(
            "change_resource_record_sets",
            HostedZoneId=zone_id,
            ChangeBatch={
                "Changes": [
                    {
                        "Action": "UPSERT",
                        "ResourceRecordSet": {
                            "Name": record.name,
                            "Type": "CNAME",
                            "TTL": RECORD_TTL,
                            "ResourceRecords": [{"Value": record.value}],
                        },
                    },
                ],
            },
        )
        logger.info(f"Upserted CNAME {record.name} -> {record.value}")
        if self.cache is not None:
            self.cache.set(cache_key, record.value, ttl=RECORD_CACHE_TTL_SECONDS)
