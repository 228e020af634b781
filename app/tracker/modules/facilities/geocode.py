from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tracker.modules.facilities.models import Facility

logger = logging.getLogger(__name__)


class GeocodeError(RuntimeError):
    """Geocoder is not usable (e.g. no access token configured)."""


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    confidence: str  # high | medium | low


def build_address(address: str | None, city: str | None, state: str | None, zip_code: str | None) -> str:
    return ", ".join(p for p in (address, city, state, zip_code) if p)


def confidence_for(relevance: float) -> str:
    if relevance > 0.9:
        return "high"
    if relevance > 0.7:
        return "medium"
    return "low"


@dataclass(frozen=True)
class MapboxGeocoder:
    token: str
    base_url: str = "https://api.mapbox.com"
    timeout_seconds: int = 15

    def _url(self, query: str) -> str:
        path = "/geocoding/v5/mapbox.places/" + urllib.parse.quote(query, safe="") + ".json"
        params = {"access_token": self.token, "limit": 1, "country": "US"}
        return self.base_url.rstrip("/") + path + "?" + urllib.parse.urlencode(params)

    def _request_json(self, url: str) -> dict[str, Any] | None:
        req = urllib.request.Request(url, method="GET")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            logger.warning("Geocoding API error: HTTP %s", e.code)
            return None
        except (urllib.error.URLError, OSError, ValueError) as e:
            logger.warning("Geocoding fetch error: %s", e)
            return None

    def geocode(
        self,
        address: str | None,
        city: str | None = None,
        state: str | None = None,
        zip_code: str | None = None,
    ) -> GeocodeResult | None:
        """
        Forward-geocode one address. Returns None when the address is blank,
        the API errors, or there are no matches. Raises GeocodeError without a token.
        """
        if not self.token:
            raise GeocodeError("MAPBOX_TOKEN is not configured")

        query = build_address(address, city, state, zip_code)
        if not query.strip():
            return None

        data = self._request_json(self._url(query))
        features = (data or {}).get("features") or []
        if not features:
            logger.warning("No geocoding results for: %s", query)
            return None

        feature = features[0]
        try:
            lon, lat = feature["center"][0], feature["center"][1]
            return GeocodeResult(
                latitude=float(lat),
                longitude=float(lon),
                confidence=confidence_for(float(feature.get("relevance") or 0)),
            )
        except (KeyError, IndexError, TypeError, ValueError):
            logger.warning("Malformed geocoding feature for: %s", query)
            return None


def geocoder_from_config(config: dict) -> MapboxGeocoder:
    return MapboxGeocoder(token=(config.get("MAPBOX_TOKEN") or "").strip())


@dataclass
class GeocodeRowStatus:
    facility_id: int
    facility_name: str
    status: str  # success | failed
    message: str


@dataclass
class GeocodeRunResult:
    total: int = 0
    success: int = 0
    failed: int = 0
    rows: list[GeocodeRowStatus] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.success + self.failed


def unconfigured_run(
    facilities: Iterable["Facility"], reason: str = "MAPBOX_TOKEN is not configured"
) -> GeocodeRunResult:
    """All-failed result for when no request can be made at all."""
    items = list(facilities)
    run = GeocodeRunResult(total=len(items), failed=len(items))
    run.rows = [GeocodeRowStatus(f.id, f.facility_name, "failed", reason) for f in items]
    logger.warning("GEOCODE: skipped %d facilities: %s", len(items), reason)
    return run


def geocode_facilities(
    s: "Session",
    facilities: Iterable["Facility"],
    geocoder: MapboxGeocoder,
    *,
    delay_seconds: float = 0.2,
    sleep: Callable[[float], None] = time.sleep,
) -> GeocodeRunResult:
    """
    Sequentially geocode facilities, committing each coordinate update on its own.
    A failing row never stops the run; its reason is recorded and the loop moves on.
    The pause between rows only follows rows that actually hit the API.
    """
    items = list(facilities)
    run = GeocodeRunResult(total=len(items))

    for i, facility in enumerate(items):
        fid, name = facility.id, facility.facility_name
        requested = bool(build_address(facility.address, facility.city, facility.state, facility.zip))
        try:
            result = geocoder.geocode(facility.address, facility.city, facility.state, facility.zip)
        except GeocodeError as e:
            requested = False
            run.failed += 1
            run.rows.append(GeocodeRowStatus(fid, name, "failed", str(e)))
            logger.warning("GEOCODE: facility=%s error=%s", fid, e)
        except Exception as e:
            run.failed += 1
            run.rows.append(GeocodeRowStatus(fid, name, "failed", str(e) or "Unknown error"))
            logger.warning("GEOCODE: facility=%s error=%s", fid, e)
        else:
            if result is None:
                run.failed += 1
                run.rows.append(GeocodeRowStatus(fid, name, "failed", "No coordinates found"))
            else:
                try:
                    facility.latitude = result.latitude
                    facility.longitude = result.longitude
                    s.add(facility)
                    s.commit()
                except SQLAlchemyError as e:
                    s.rollback()
                    run.failed += 1
                    run.rows.append(GeocodeRowStatus(fid, name, "failed", "Database update failed"))
                    logger.error("GEOCODE: facility=%s update failed: %s", fid, e)
                else:
                    run.success += 1
                    run.rows.append(GeocodeRowStatus(fid, name, "success", f"{result.confidence} confidence"))

        if requested and delay_seconds and i < len(items) - 1:
            sleep(delay_seconds)

    logger.info("GEOCODE: processed=%d success=%d failed=%d", run.processed, run.success, run.failed)
    return run
