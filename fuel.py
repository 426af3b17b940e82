"""
Tamil Nadu fuel prices.

A daily job fetches per-city prices from the external provider and upserts one
document per (date, state). Cities whose fetch fails fall back to static mock
prices; read endpoints fall back to a full mock snapshot when nothing is stored
for today.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests
from fastapi import APIRouter, HTTPException, Request
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings
from database import COLL_FUEL_PRICE, utcnow
from schemas import CityPrice, FuelPrice

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fuel", tags=["fuel"])

STATE = "Tamil Nadu"
STATE_SLUG = "tamil-nadu"
TARGET_CITIES = ["Chennai", "Coimbatore", "Madurai", "Tiruchirappalli", "Salem"]

MOCK_PRICES: List[Dict[str, Any]] = [
    {"city": "Chennai", "petrol": 102.34, "diesel": 94.56, "cng": 72.50},
    {"city": "Coimbatore", "petrol": 102.71, "diesel": 94.31, "cng": 73.10},
    {"city": "Madurai", "petrol": 102.86, "diesel": 94.46, "cng": None},
    {"city": "Tiruchirappalli", "petrol": 102.53, "diesel": 94.14, "cng": None},
    {"city": "Salem", "petrol": 103.02, "diesel": 94.61, "cng": None},
]


class FuelFetchError(Exception):
    """A single city's price could not be fetched from the provider."""


class RunInProgressError(Exception):
    """Another update for the same date is already running."""


def date_key(now: datetime) -> str:
    return now.date().isoformat()


def parse_city_payload(payload: Dict[str, Any], now: datetime) -> Optional[Dict[str, Any]]:
    """
    Normalize a provider payload into a city price entry. Returns None when the
    payload carries no fuel data; raises FuelFetchError on malformed prices.
    """
    fuel = payload.get("fuel")
    if not isinstance(fuel, dict):
        return None

    def retail(kind: str) -> Optional[float]:
        entry = fuel.get(kind)
        if not isinstance(entry, dict) or entry.get("retailPrice") is None:
            return None
        return float(entry["retailPrice"])

    try:
        return CityPrice(
            city=payload.get("cityName") or "",
            petrol=retail("petrol") or 0,
            diesel=retail("diesel") or 0,
            cng=retail("cng"),
            last_updated=now,
        ).model_dump()
    except (TypeError, ValueError) as e:
        raise FuelFetchError(f"Malformed price data: {e}")


class FuelPriceService:

    def __init__(
        self,
        db: Database,
        settings: Settings,
        fetch: Optional[Callable[[str], Dict[str, Any]]] = None,
        mock_prices: Optional[List[Dict[str, Any]]] = None,
        cities: Optional[List[str]] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.settings = settings
        self._fetch = fetch or self.fetch_city
        self.mock_prices = MOCK_PRICES if mock_prices is None else mock_prices
        self.cities = list(cities or TARGET_CITIES)
        self._now = now
        self._run_locks: Dict[str, threading.Lock] = {}
        self._run_locks_guard = threading.Lock()

    @property
    def collection(self):
        return self.db[COLL_FUEL_PRICE]

    # ---------------------- Provider ----------------------
    def fetch_city(self, city: str) -> Dict[str, Any]:
        host = self.settings.fuel_api_host
        url = f"https://{host}/v1/fuel-prices/today/india/{STATE_SLUG}/{quote(city.lower())}"
        headers = {"x-rapidapi-key": self.settings.fuel_api_key or "", "x-rapidapi-host": host}
        try:
            resp = requests.get(url, headers=headers, timeout=self.settings.fuel_api_timeout)
        except requests.Timeout:
            raise FuelFetchError("API request timed out")
        except requests.RequestException as e:
            raise FuelFetchError(f"API request failed: {e}")

        body = resp.text.strip()
        if "text/html" in resp.headers.get("content-type", "") or body.lower().startswith(("<!doctype", "<html")):
            raise FuelFetchError("API returned HTML instead of JSON")
        try:
            payload = resp.json()
        except ValueError:
            raise FuelFetchError("Failed to parse API response as JSON")
        if not isinstance(payload, dict):
            raise FuelFetchError("Unexpected API response")
        if payload.get("message"):
            raise FuelFetchError(str(payload["message"]))
        if resp.status_code >= 400:
            raise FuelFetchError(f"API returned HTTP {resp.status_code}")
        return payload

    def mock_city(self, city: str, now: datetime) -> Optional[Dict[str, Any]]:
        for entry in self.mock_prices:
            if entry["city"].lower() == city.lower():
                return CityPrice(**entry, last_updated=now).model_dump()
        return None

    def mock_snapshot(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or self._now()
        cities = [CityPrice(**entry, last_updated=now).model_dump() for entry in self.mock_prices]
        return FuelPrice(date=date_key(now), state=STATE, cities=cities).model_dump()

    # ---------------------- Ingestion ----------------------
    def _run_lock(self, key: str) -> threading.Lock:
        with self._run_locks_guard:
            lock = self._run_locks.get(key)
            if lock is None:
                # drop idle locks left from earlier dates
                self._run_locks = {k: v for k, v in self._run_locks.items() if v.locked()}
                lock = self._run_locks[key] = threading.Lock()
            return lock

    def collect(self, now: datetime) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
        collected: List[Dict[str, Any]] = []
        sources: Dict[str, str] = {}
        for city in self.cities:
            try:
                entry = parse_city_payload(self._fetch(city), now)
                if entry is None:
                    raise FuelFetchError("response has no fuel data")
                entry["city"] = entry["city"] or city
                collected.append(entry)
                sources[city] = "api"
                logger.info("Collected fuel prices for %s", city)
            except FuelFetchError as e:
                logger.warning("Fuel price request for %s failed: %s", city, e)
                mock = self.mock_city(city, now)
                if mock is not None:
                    collected.append(mock)
                    sources[city] = "mock"
                    logger.info("Used mock fuel prices for %s", city)
        return collected, sources

    def run_update(self) -> Dict[str, Any]:
        """Fetch every target city and upsert today's snapshot."""
        now = self._now()
        key = date_key(now)
        lock = self._run_lock(key)
        if not lock.acquire(blocking=False):
            raise RunInProgressError(f"Fuel price update for {key} is already running")
        try:
            cities, sources = self.collect(now)
            if not cities:
                logger.error("No fuel price data collected for %s", key)
                return {"success": False, "date": key, "message": "No data collected"}
            self.collection.update_one(
                {"date": key, "state": STATE},
                {"$set": {"cities": cities, "updated_at": utcnow()}},
                upsert=True,
            )
            logger.info("Stored fuel prices for %d cities on %s", len(cities), key)
            return {"success": True, "date": key, "cities_count": len(cities), "sources": sources}
        finally:
            lock.release()

    # ---------------------- Reads ----------------------
    def today_key(self) -> str:
        return date_key(self._now())

    def stored_for_today(self) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"date": self.today_key(), "state": STATE}, {"_id": 0, "updated_at": 0})

    def today_snapshot(self) -> Dict[str, Any]:
        try:
            stored = self.stored_for_today()
        except PyMongoError:
            logger.exception("Reading stored fuel prices failed, serving mock data")
            stored = None
        if stored:
            return {"source": "database", "data": stored}
        return {"source": "mock", "data": self.mock_snapshot()}

    def store_city(self, entry: Dict[str, Any]) -> bool:
        """Merge one city into today's snapshot; skipped while a run holds the date lock."""
        key = self.today_key()
        lock = self._run_lock(key)
        if not lock.acquire(blocking=False):
            logger.info("Fuel price update for %s in progress, not storing %s", key, entry["city"])
            return False
        try:
            doc = self.collection.find_one({"date": key, "state": STATE}) or {}
            cities = [c for c in doc.get("cities", []) if c["city"].lower() != entry["city"].lower()]
            cities.append(entry)
            self.collection.update_one(
                {"date": key, "state": STATE},
                {"$set": {"cities": cities, "updated_at": utcnow()}},
                upsert=True,
            )
            return True
        finally:
            lock.release()

    def canonical_city(self, city: str) -> Optional[str]:
        for target in self.cities:
            if target.lower() == city.strip().lower():
                return target
        return None

    def city_price(self, city: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        stored = self.stored_for_today()
        if stored:
            for entry in stored.get("cities", []):
                if entry["city"].lower() == city.lower():
                    return "database", entry
        now = self._now()
        try:
            entry = parse_city_payload(self._fetch(city), now)
        except FuelFetchError as e:
            logger.warning("Fuel price request for %s failed: %s", city, e)
            entry = None
        if entry is not None:
            entry["city"] = entry["city"] or city
            self.store_city(entry)
            return "api", entry
        mock = self.mock_city(city, now)
        if mock is not None:
            return "mock", mock
        return None


def seconds_until(now: datetime, hour: int, minute: int) -> float:
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class DailyScheduler:
    """Runs a job once a day at a fixed local time on a daemon thread."""

    def __init__(self, job: Callable[[], Any], hour: int, minute: int):
        self.job = job
        self.hour = hour
        self.minute = minute
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="fuel-scheduler", daemon=True)
        self._thread.start()
        logger.info("Fuel price scheduler started (daily at %02d:%02d)", self.hour, self.minute)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(seconds_until(datetime.now(), self.hour, self.minute)):
            logger.info("Running scheduled fuel price update")
            try:
                logger.info("Scheduled fuel price update result: %s", self.job())
            except RunInProgressError as e:
                logger.warning("Skipped scheduled fuel price update: %s", e)
            except Exception:
                logger.exception("Scheduled fuel price update failed")


# ---------------------- Routes ----------------------
def _service(request: Request) -> FuelPriceService:
    return request.app.state.fuel_service


@router.post("/trigger-update")
def trigger_update(request: Request):
    logger.info("Manually triggering fuel price update")
    try:
        result = _service(request).run_update()
    except RunInProgressError:
        raise HTTPException(status_code=409, detail="A fuel price update is already running")
    if result["success"]:
        message = f"Successfully updated {result['cities_count']} cities for {result['date']}"
    else:
        message = "Failed to update fuel prices"
    return {**result, "message": message}


@router.get("/tamilnadu")
def tamilnadu(request: Request):
    snapshot = _service(request).today_snapshot()
    message = "Using stored fuel prices data" if snapshot["source"] == "database" else "Using mock data as fallback"
    return {"success": True, "message": message, "last_updated": utcnow(), **snapshot}


@router.get("/stored")
def stored(request: Request):
    service = _service(request)
    data = service.stored_for_today()
    if not data:
        raise HTTPException(status_code=404, detail=f"No stored data found for {service.today_key()}")
    cities = [c for c in data.get("cities", []) if service.canonical_city(c["city"])]
    return {"success": True, "count": len(cities), "date": data["date"], "cities": cities}


@router.get("/city/{city_name}")
def city(city_name: str, request: Request):
    service = _service(request)
    name = service.canonical_city(city_name)
    if name is None:
        raise HTTPException(
            status_code=400,
            detail=f"Data for {city_name} is not available. Available cities: {', '.join(service.cities)}",
        )
    found = service.city_price(name)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Fuel price data for {city_name} not found")
    source, entry = found
    return {"success": True, "source": source, "city": entry}


@router.get("/cities")
def cities(request: Request):
    return {"success": True, "cities": sorted(_service(request).cities)}
