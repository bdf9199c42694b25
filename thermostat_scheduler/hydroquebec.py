# SPDX-License-Identifier: MPL-2.0
"""
Hydro-Québec Peak Event Feed Client

Fetches winter peak demand events (Flex D / CPC-D offer) from the
Hydro-Québec open data portal, caching the response on disk so the feed is
queried at most once per cache period.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from thermostat_scheduler.peak import PeakEvent

logger = logging.getLogger(__name__)


class HydroQuebecAPIError(Exception):
    """Custom exception for peak event feed errors."""
    pass


def _parse_timestamp(value: str) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"Invalid timestamp: {value!r}")
    dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class WinterPeakOffer:
    """A peak event entry as published in the open data feed."""
    offer: str  # Offer in effect during the event, e.g. CPC-D
    start: datetime
    end: datetime
    period: str  # AM or PM
    duration: str  # ISO 8601 duration, e.g. PT03H00MS
    sector: str  # Residentiel or Affaires

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WinterPeakOffer":
        """Create from feed entry."""
        return cls(
            offer=data.get("offre", ""),
            start=_parse_timestamp(data["datedebut"]),
            end=_parse_timestamp(data["datefin"]),
            period=data.get("plagehoraire", ""),
            duration=data.get("duree", ""),
            sector=data.get("secteurclient", ""),
        )


def _parse_offers(entries: List[Dict[str, Any]]) -> List[WinterPeakOffer]:
    """Parse feed entries, raising ValueError on the first malformed one."""
    try:
        return [WinterPeakOffer.from_dict(entry) for entry in entries]
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"malformed entry: {e!r}")


def convert_to_peak_events(offers: List[WinterPeakOffer]) -> List[PeakEvent]:
    """
    Convert feed offers to peak events in chronological order.

    Offers that do not start strictly before they end are skipped.
    """
    events = []
    for offer in offers:
        if offer.start >= offer.end:
            logger.warning(f"Skipping invalid peak event: {offer}")
            continue
        events.append(PeakEvent(start=offer.start, end=offer.end))
    events.sort(key=lambda e: e.start)
    return events


class HydroQuebecClient:
    """
    Client for the Hydro-Québec peak events open data feed.

    Attributes:
        url (str): Feed export URL, already filtered to the relevant offer
        timeout (int): Request timeout in seconds
        session (requests.Session): HTTP session for connection pooling
    """

    def __init__(self, url: str, timeout: int = 30):
        """
        Initialize the feed client.

        Args:
            url: Feed export URL returning a JSON list of events
            timeout: Request timeout in seconds (default: 30)
        """
        self.url = url
        self.timeout = timeout
        self.session = requests.Session()

    def fetch_offers(self) -> List[WinterPeakOffer]:
        """
        Fetch the peak events from the feed.

        Returns:
            List of WinterPeakOffer objects

        Raises:
            HydroQuebecAPIError: If the request fails or the response is invalid
        """
        raw = self._fetch_raw()
        try:
            return _parse_offers(raw)
        except ValueError as e:
            raise HydroQuebecAPIError(f"Invalid peak event data: {e}")

    def _fetch_raw(self) -> List[Dict[str, Any]]:
        try:
            logger.debug(f"Fetching peak events from {self.url}")
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()

            data = response.json()
            if not isinstance(data, list):
                raise ValueError(f"expected a list of events, got {type(data).__name__}")
            logger.debug(f"Successfully retrieved {len(data)} peak events")
            return data

        except requests.exceptions.Timeout:
            error_msg = f"Request to {self.url} timed out after {self.timeout} seconds"
            logger.error(error_msg)
            raise HydroQuebecAPIError(error_msg)

        except requests.exceptions.HTTPError as e:
            error_msg = f"HTTP error occurred: {e.response.status_code} - {e.response.text}"
            logger.error(error_msg)
            raise HydroQuebecAPIError(error_msg)

        except requests.exceptions.RequestException as e:
            error_msg = f"Request failed: {str(e)}"
            logger.error(error_msg)
            raise HydroQuebecAPIError(error_msg)

        except ValueError as e:
            error_msg = f"Invalid JSON response: {str(e)}"
            logger.error(error_msg)
            raise HydroQuebecAPIError(error_msg)

    def get_peak_events(self, cache_file: Optional[str] = None, cache_ttl: timedelta = timedelta(hours=25)) -> List[PeakEvent]:
        """
        Get peak events, from the cache if it is fresh enough.

        A cache holding entries that cannot be parsed is treated like a
        missing one. The cache is only refreshed after a successful fetch
        whose entries all parse. Failing to write the cache is logged but not
        fatal.

        Args:
            cache_file: Path to the JSON cache file, or None to disable caching
            cache_ttl: Maximum age of the cache file

        Returns:
            List of PeakEvent objects in chronological order

        Raises:
            HydroQuebecAPIError: If the cache is unusable and fetching fails
                or returns invalid entries
        """
        if cache_file:
            cached = read_cache(cache_file, cache_ttl)
            if cached is not None:
                try:
                    return convert_to_peak_events(_parse_offers(cached))
                except ValueError as e:
                    logger.warning(f"Ignoring invalid peak event cache {cache_file}: {e}")

        raw = self._fetch_raw()
        try:
            offers = _parse_offers(raw)
        except ValueError as e:
            raise HydroQuebecAPIError(f"Invalid peak event data: {e}")

        if cache_file:
            write_cache(cache_file, raw)

        events = convert_to_peak_events(offers)
        now = datetime.now(timezone.utc)
        for event in events:
            if event.start > now:
                logger.info(f"Upcoming peak event: {event}")
        return events

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
        logger.debug("Peak event feed session closed")

    def __enter__(self) -> 'HydroQuebecClient':
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()


def read_cache(cache_file: str, max_age: timedelta) -> Optional[List[Dict[str, Any]]]:
    """
    Read cached feed data.

    Returns:
        The cached entries, or None if the cache is missing, stale or corrupt
    """
    try:
        age = time.time() - os.path.getmtime(cache_file)
    except OSError as e:
        logger.debug(f"No usable peak event cache: {e}")
        return None

    if age > max_age.total_seconds():
        logger.debug(f"Peak event cache is too old ({timedelta(seconds=int(age))})")
        return None

    try:
        with open(cache_file) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read peak event cache {cache_file}: {e}")
        return None

    if not isinstance(data, list):
        logger.warning(f"Ignoring malformed peak event cache {cache_file}")
        return None

    logger.debug(f"Using {len(data)} cached peak events from {cache_file}")
    return data


def write_cache(cache_file: str, data: List[Dict[str, Any]]) -> None:
    """Write feed data to the cache, logging failures."""
    try:
        Path(cache_file).parent.mkdir(parents=True, exist_ok=True)
        with open(cache_file, 'w') as f:
            json.dump(data, f)
    except OSError as e:
        logger.error(f"Failed to write peak event cache {cache_file}: {e}")
