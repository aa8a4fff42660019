"""
Enrichment Stage - derive device, geo and client metadata for a raw event

enrich() is pure: identical inputs and resolvers give identical output.
Geolocation and user-agent parsing are injected so tests can stub them.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import geoip2.database
import geoip2.errors
from user_agents import parse as parse_user_agent

from analytics_engine.schemas.event import EnrichedEvent, EventCreate, EventMetadata
from analytics_engine.utils.timeutils import parse_timestamp

logger = logging.getLogger(__name__)

UNKNOWN_IP = "0.0.0.0"


@dataclass(frozen=True)
class GeoLocation:
    country: Optional[str] = None
    city: Optional[str] = None


@dataclass(frozen=True)
class AgentInfo:
    device: Optional[str] = None  # mobile, desktop, tablet; None when inconclusive
    browser: Optional[str] = None
    os: Optional[str] = None
    platform: Optional[str] = None


GeoResolver = Callable[[str], Optional[GeoLocation]]
AgentParser = Callable[[str], AgentInfo]


def null_geo_resolver(ip_address: str) -> Optional[GeoLocation]:
    """Resolver used when no GeoIP database is configured."""
    return None


class MaxMindGeoResolver:
    """
    Coarse IP → country/city lookup backed by a MaxMind City database.
    Unknown or private addresses resolve to None.
    """

    def __init__(self, db_path: str):
        self._reader = geoip2.database.Reader(db_path)

    def __call__(self, ip_address: str) -> Optional[GeoLocation]:
        try:
            response = self._reader.city(ip_address)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None
        return GeoLocation(
            country=response.country.iso_code,
            city=response.city.name,
        )

    def close(self):
        self._reader.close()


def build_geo_resolver(db_path: Optional[str]) -> GeoResolver:
    """MaxMind resolver when a database path is configured, else null resolver."""
    if not db_path:
        return null_geo_resolver
    try:
        return MaxMindGeoResolver(db_path)
    except (OSError, ValueError) as e:
        logger.warning(f"GeoIP database unavailable ({db_path}): {e}. Geolocation disabled.")
        return null_geo_resolver


def parse_agent(user_agent: str) -> AgentInfo:
    """Classify a user-agent string with the user-agents library."""
    if not user_agent:
        return AgentInfo()

    agent = parse_user_agent(user_agent)
    if agent.is_tablet:
        device = "tablet"
    elif agent.is_mobile:
        device = "mobile"
    elif agent.is_pc:
        device = "desktop"
    else:
        device = None

    browser = agent.browser.family if agent.browser.family != "Other" else None
    os_name = agent.os.family if agent.os.family != "Other" else None
    platform = agent.device.family if agent.device.family != "Other" else None
    return AgentInfo(device=device, browser=browser, os=os_name, platform=platform)


def _first_language(accept_language: Optional[str]) -> Optional[str]:
    if not accept_language:
        return None
    first = accept_language.split(",")[0].split(";")[0].strip()
    return first or None


def enrich(
    raw: EventCreate,
    user_agent: Optional[str],
    ip_address: Optional[str],
    received_at: datetime,
    accept_language: Optional[str] = None,
    geo_resolver: GeoResolver = null_geo_resolver,
    agent_parser: AgentParser = parse_agent,
) -> EnrichedEvent:
    """
    Build the stored form of a raw event.

    Args:
        raw: Validated client payload
        user_agent: Request User-Agent header (payload value wins)
        ip_address: Connection address (payload value wins)
        received_at: Server receipt time, used when the payload timestamp
            is missing or unparseable
        accept_language: Request Accept-Language header
        geo_resolver: IP → GeoLocation lookup
        agent_parser: user-agent → AgentInfo parser

    Returns:
        EnrichedEvent
    """
    agent_string = raw.user_agent or user_agent
    ip = raw.ip_address or ip_address or UNKNOWN_IP
    agent = agent_parser(agent_string) if agent_string else AgentInfo()
    geo = geo_resolver(ip) or GeoLocation()

    supplied = raw.metadata
    metadata = EventMetadata(
        browser=supplied.browser or agent.browser,
        os=supplied.os or agent.os,
        screen_size=supplied.screen_size,
        country=supplied.country or geo.country,
        city=supplied.city or geo.city,
        language=supplied.language or _first_language(accept_language),
        platform=supplied.platform or agent.platform,
    )

    return EnrichedEvent(
        event=raw.event,
        url=raw.url,
        referrer=raw.referrer,
        device=raw.device or agent.device or "desktop",
        user_id=raw.user_id,
        session_id=raw.session_id,
        ip_address=ip,
        user_agent=agent_string,
        metadata=metadata,
        timestamp=parse_timestamp(raw.timestamp) or received_at,
    )
