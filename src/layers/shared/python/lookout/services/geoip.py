"""IP geolocation backed by a lazily provisioned MaxMind-format database.

The resolver is an owned object; handlers in one process share a single
instance through ``get_resolver()``. Its reader reference is the only shared
mutable state: lookups hold the read side of a reader/writer
lock, and a reload holds the write side only long enough to swap the
reference. Downloads and extraction happen in temporary files beside the
configured path, and the new file is validated by opening it before it is
moved into place.
"""

import gzip
import ipaddress
import os
import tarfile
import tempfile
import threading
import time
import urllib.request
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import IO, Any

import geoip2.database
import geoip2.errors
import maxminddb
import structlog

from lookout.config import AnalyticsConfig
from lookout.models.base import utc_now
from lookout.utils.exceptions import GeoIPError
from lookout.utils.rwlock import ReadWriteLock

logger = structlog.get_logger()

MAXMIND_URL_TEMPLATE = (
    "https://download.maxmind.com/app/geoip_download"
    "?edition_id=GeoLite2-Country&license_key={license_key}&suffix=tar.gz"
)
DBIP_FILE_NAME = "dbip-country-lite.mmdb.gz"
DBIP_MONTHS_TO_TRY = 3

CHUNK_SIZE = 64 * 1024
GZIP_MAGIC = b"\x1f\x8b"

# Lookups give up quickly instead of queueing behind a reload
READ_LOCK_TIMEOUT = 0.05

# Minimum gap between provisioning attempts made from the request path
RETRY_INTERVAL = 60.0


class GeoIPState(str, Enum):
    """Lifecycle of the geolocation database."""

    UNINITIALIZED = "uninitialized"
    MISSING = "missing"
    DOWNLOADING = "downloading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class CountryInfo:
    """Resolved country for an IP address."""

    code: str
    name: str


UNKNOWN_COUNTRY = CountryInfo(code="Unknown", name="Unknown")
LOCAL_COUNTRY = CountryInfo(code="Local", name="Local Network")


@dataclass
class GeoIPStatus:
    """Point-in-time view of the resolver, for the admin status endpoint."""

    state: GeoIPState
    db_path: str
    enabled: bool = False
    source: str = ""
    last_error: str = ""
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        data = asdict(self)
        data["state"] = self.state.value
        data["updated_at"] = self.updated_at.isoformat()
        return data


class GeoIPDownloadCancelled(GeoIPError):
    """Raised inside a download when it is cancelled or runs out of time."""


def expand_download_urls(url: str, now: datetime | None = None) -> list[str]:
    """Expand a db-ip "latest" URL into the last few monthly file names.

    db-ip publishes ``dbip-country-lite-YYYY-MM.mmdb.gz``; the current month
    may not be out yet, so earlier months are tried in turn. Other URLs are
    returned unchanged.
    """
    if DBIP_FILE_NAME not in url:
        return [url]

    now = now or utc_now()
    year, month = now.year, now.month
    candidates = []
    for _ in range(DBIP_MONTHS_TO_TRY):
        monthly = f"dbip-country-lite-{year:04d}-{month:02d}.mmdb.gz"
        candidates.append(url.replace(DBIP_FILE_NAME, monthly, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return candidates


def _filter_countries(countries: list[CountryInfo], search: str | None) -> list[CountryInfo]:
    query = (search or "").strip().lower()
    if not query:
        return list(countries)
    return [c for c in countries if query in c.code.lower() or query in c.name.lower()]


class GeoIPResolver:
    """Resolves IP addresses to countries and manages the database lifecycle."""

    def __init__(
        self,
        db_path: str,
        download_url: str = "",
        maxmind_license_key: str = "",
        enabled: bool = False,
        auto_enable: bool = False,
        download_timeout: float = 30.0,
        retry_interval: float = RETRY_INTERVAL,
        read_lock_timeout: float = READ_LOCK_TIMEOUT,
    ):
        """Initialize resolver. Nothing is loaded until ensure_available().

        Args:
            db_path: Where the .mmdb file lives (and is downloaded to).
            download_url: Direct archive URL (db-ip, mirror, ...).
            maxmind_license_key: Used to build a MaxMind URL when no URL is set.
            enabled: Whether lookups and downloads are allowed.
            auto_enable: Let sync_requirement() switch GeoIP on and off.
            download_timeout: Default overall download deadline in seconds.
            retry_interval: Seconds between provision() attempts after a failure.
            read_lock_timeout: How long a lookup waits for the reader.
        """
        self.db_path = db_path
        self.download_url = download_url
        self.maxmind_license_key = maxmind_license_key
        self.auto_enable = auto_enable
        self.download_timeout = download_timeout
        self.retry_interval = retry_interval
        self.read_lock_timeout = read_lock_timeout
        self._last_attempt: float | None = None

        self._enabled = enabled
        self._reader: geoip2.database.Reader | None = None
        self._reader_lock = ReadWriteLock()
        self._download_lock = threading.Lock()

        self._status_lock = threading.Lock()
        self._status = GeoIPStatus(
            state=GeoIPState.UNINITIALIZED, db_path=db_path, enabled=enabled
        )

        # Country list cache, invalidated whenever a new reader is loaded
        self._generation = 0
        self._countries_lock = threading.Lock()
        self._countries: list[CountryInfo] | None = None
        self._countries_generation = -1

    @classmethod
    def from_config(cls, config: AnalyticsConfig) -> "GeoIPResolver":
        """Build a resolver from runtime configuration."""
        return cls(
            db_path=config.geoip_db_path,
            download_url=config.geoip_download_url,
            maxmind_license_key=config.maxmind_license_key,
            enabled=config.geoip_enabled,
            auto_enable=config.geoip_auto,
            download_timeout=config.geoip_download_timeout,
            retry_interval=config.geoip_retry_seconds,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        """Whether lookups and downloads are allowed."""
        return self._enabled

    def status(self) -> GeoIPStatus:
        """Get a copy of the current status."""
        with self._status_lock:
            return GeoIPStatus(**asdict(self._status))

    def _set_status(self, state: GeoIPState, source: str = "", last_error: str = "") -> GeoIPStatus:
        with self._status_lock:
            self._status = GeoIPStatus(
                state=state,
                db_path=self.db_path,
                enabled=self._enabled,
                source=source,
                last_error=last_error,
            )
            return GeoIPStatus(**asdict(self._status))

    def set_enabled(self, enabled: bool) -> None:
        """Turn lookups and downloads on or off.

        Disabling keeps any loaded reader in memory but stops using it.
        """
        self._enabled = enabled
        if enabled:
            state = GeoIPState.READY if self.has_reader() else GeoIPState.UNINITIALIZED
            self._set_status(state, source=self.status().source)
        else:
            self._set_status(GeoIPState.MISSING, last_error="GeoIP is disabled")
        logger.info("GeoIP enabled flag changed", enabled=enabled)

    def sync_requirement(self, required: bool) -> None:
        """Follow whether any site needs country data.

        Only applies in automatic mode; a pinned GEOIP_ENABLED wins.
        """
        if self.auto_enable and required != self._enabled:
            self.set_enabled(required)

    def has_reader(self) -> bool:
        """Check whether a database is loaded."""
        with self._reader_lock.read_locked():
            return self._reader is not None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def resolve_country(self, ip: str | None) -> CountryInfo:
        """Resolve an IP address to a country.

        Never raises and never waits on a reload: anything short of a
        successful lookup degrades to UNKNOWN_COUNTRY.

        Args:
            ip: Client IP address.

        Returns:
            CountryInfo; LOCAL_COUNTRY for private, loopback and link-local
            addresses.
        """
        if not ip or not self._enabled:
            return UNKNOWN_COUNTRY

        try:
            address = ipaddress.ip_address(ip.strip())
        except ValueError:
            return UNKNOWN_COUNTRY

        if address.is_private or address.is_loopback or address.is_link_local:
            return LOCAL_COUNTRY

        if not self._reader_lock.acquire_read(timeout=self.read_lock_timeout):
            logger.debug("GeoIP reader busy, skipping lookup")
            return UNKNOWN_COUNTRY
        try:
            reader = self._reader
            if reader is None:
                return UNKNOWN_COUNTRY
            try:
                response = reader.country(str(address))
            except (geoip2.errors.AddressNotFoundError, ValueError):
                return UNKNOWN_COUNTRY
        finally:
            self._reader_lock.release_read()

        code = response.country.iso_code or response.registered_country.iso_code
        if not code:
            return UNKNOWN_COUNTRY
        name = (
            response.country.names.get("en")
            or response.registered_country.names.get("en")
            or code
        )
        return CountryInfo(code=code, name=name)

    def list_countries(self, search: str | None = None) -> list[CountryInfo]:
        """List every country present in the loaded database.

        The full list is built once per loaded database and cached.

        Args:
            search: Case-insensitive substring of the code or name.

        Returns:
            Countries sorted by name, or an empty list when not ready.
        """
        if not self._enabled or not self.has_reader():
            return []

        generation = self._generation
        with self._countries_lock:
            if self._countries is not None and self._countries_generation == generation:
                return _filter_countries(self._countries, search)

        countries = self._read_countries()

        with self._countries_lock:
            self._countries = countries
            self._countries_generation = generation
        return _filter_countries(countries, search)

    def _read_countries(self) -> list[CountryInfo]:
        seen: dict[str, str] = {}
        with maxminddb.open_database(self.db_path) as db:
            for _network, record in db:
                if not isinstance(record, dict):
                    continue
                for key in ("country", "registered_country"):
                    country = record.get(key) or {}
                    code = country.get("iso_code")
                    if code:
                        if code not in seen:
                            seen[code] = (country.get("names") or {}).get("en") or code
                        break

        countries = [CountryInfo(code=code, name=name) for code, name in seen.items()]
        countries.sort(key=lambda c: (c.name, c.code))
        return countries

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def ensure_available(
        self,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> GeoIPStatus:
        """Make sure a database is loaded, downloading one if needed.

        Safe to call while lookups are running. When another call is already
        downloading, this returns the current status without waiting.

        Args:
            cancel: Set to abort an in-flight download.
            timeout: Overall download deadline in seconds.

        Returns:
            Status after the attempt. Failures are reported through the
            ``error`` state and ``last_error``, never raised.
        """
        if not self._enabled:
            return self._set_status(GeoIPState.MISSING, last_error="GeoIP is disabled")

        if self.has_reader():
            return self._set_status(GeoIPState.READY, source=self.status().source or "file")

        if os.path.isfile(self.db_path):
            try:
                self._swap_reader(self._open_reader(self.db_path))
                logger.info("GeoIP database loaded from file", db_path=self.db_path)
                return self._set_status(GeoIPState.READY, source="file")
            except Exception as e:
                logger.warning("GeoIP database file unreadable", db_path=self.db_path, error=str(e))

        if not self._download_configured():
            return self._set_status(
                GeoIPState.MISSING, last_error="GeoIP download source is not configured"
            )

        return self._download_exclusive(cancel, timeout, force=False)

    def refresh(
        self,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> GeoIPStatus:
        """Download a fresh database even if one is already loaded.

        The current reader keeps serving lookups until the new file has been
        validated and swapped in; a failed refresh leaves it in place.
        """
        if not self._enabled:
            return self._set_status(GeoIPState.MISSING, last_error="GeoIP is disabled")

        if not self._download_configured():
            state = GeoIPState.READY if self.has_reader() else GeoIPState.MISSING
            return self._set_status(state, last_error="GeoIP download source is not configured")

        return self._download_exclusive(cancel, timeout, force=True)

    def provision(self) -> GeoIPStatus:
        """Load or download the database on behalf of a request.

        Does nothing while ready or downloading. Otherwise (uninitialized,
        missing or a failed attempt) calls ensure_available(), at most once
        per ``retry_interval`` so a broken source does not slow every request.
        """
        status = self.status()
        if not self._enabled or status.state in (GeoIPState.READY, GeoIPState.DOWNLOADING):
            return status

        now = time.monotonic()
        if self._last_attempt is not None and now - self._last_attempt < self.retry_interval:
            return status
        self._last_attempt = now

        status = self.ensure_available()
        logger.info("GeoIP provisioned", state=status.state.value, last_error=status.last_error)
        return status

    def close(self) -> None:
        """Release the loaded reader."""
        with self._reader_lock.write_locked():
            reader, self._reader = self._reader, None
        if reader is not None:
            reader.close()

    def _download_configured(self) -> bool:
        return bool(self.download_url or self.maxmind_license_key)

    def _download_source(self) -> tuple[list[str], str]:
        if self.download_url:
            source = "dbip" if "db-ip.com" in self.download_url else "download-url"
            return expand_download_urls(self.download_url), source
        return [MAXMIND_URL_TEMPLATE.format(license_key=self.maxmind_license_key)], "maxmind"

    def _download_exclusive(
        self,
        cancel: threading.Event | None,
        timeout: float | None,
        force: bool,
    ) -> GeoIPStatus:
        if not self._download_lock.acquire(blocking=False):
            logger.debug("GeoIP download already in progress")
            return self.status()

        try:
            if not force and self.has_reader():
                return self._set_status(GeoIPState.READY, source=self.status().source or "file")
            return self._download_and_load(cancel, timeout)
        finally:
            self._download_lock.release()

    def _download_and_load(
        self,
        cancel: threading.Event | None,
        timeout: float | None,
    ) -> GeoIPStatus:
        urls, source = self._download_source()
        deadline = time.monotonic() + (timeout if timeout is not None else self.download_timeout)

        self._set_status(GeoIPState.DOWNLOADING, source=source)
        logger.info("GeoIP download started", source=source, candidates=len(urls))

        reader = None
        last_error = ""
        for url in urls:
            try:
                reader = self._download(url, cancel, deadline)
                break
            except GeoIPDownloadCancelled as e:
                logger.warning("GeoIP download aborted", source=source, error=e.message)
                return self._set_status(GeoIPState.ERROR, source=source, last_error=e.message)
            except Exception as e:
                # Try the next candidate (older db-ip month)
                last_error = str(e)
                logger.warning("GeoIP download failed", source=source, error=last_error)

        if reader is None:
            return self._set_status(GeoIPState.ERROR, source=source, last_error=last_error)

        self._swap_reader(reader)
        logger.info("GeoIP database ready", source=source, db_path=self.db_path)
        return self._set_status(GeoIPState.READY, source=source)

    def _download(
        self,
        url: str,
        cancel: threading.Event | None,
        deadline: float,
    ) -> geoip2.database.Reader:
        """Fetch, extract, validate and move one database into place.

        Returns:
            A reader opened on the new database.
        """
        directory = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(directory, mode=0o750, exist_ok=True)

        fd, download_path = tempfile.mkstemp(prefix="geoip-", suffix=".download", dir=directory)
        extracted_path = None
        try:
            request = urllib.request.Request(url, headers={"User-Agent": "lookout-geoip/1.0"})
            socket_timeout = min(self.download_timeout, self._remaining(deadline))
            with os.fdopen(fd, "wb") as out:
                with urllib.request.urlopen(request, timeout=socket_timeout) as response:
                    status = getattr(response, "status", 200)
                    if status < 200 or status >= 300:
                        raise GeoIPError(f"Unexpected GeoIP download status {status}")
                    self._copy(response, out, cancel, deadline)

            extracted_path = self._extract(download_path, directory, cancel, deadline)

            # Validate before anything replaces the current file
            reader = self._open_reader(extracted_path)
            try:
                os.chmod(extracted_path, 0o600)
                os.replace(extracted_path, self.db_path)
            except OSError:
                reader.close()
                raise
            extracted_path = None
            return reader
        finally:
            for path in {download_path, extracted_path}:
                if path and os.path.exists(path):
                    os.remove(path)

    def _extract(
        self,
        archive_path: str,
        directory: str,
        cancel: threading.Event | None,
        deadline: float,
    ) -> str:
        """Turn a downloaded file into a plain .mmdb file.

        ``.tar.gz`` yields its first ``.mmdb`` member, plain gzip is
        decompressed, and anything else is taken as-is.

        Returns:
            Path of the extracted database (may be ``archive_path`` itself).
        """
        with open(archive_path, "rb") as f:
            magic = f.read(2)
        if magic != GZIP_MAGIC:
            return archive_path

        try:
            with tarfile.open(archive_path, "r:gz") as tar:
                for member in tar:
                    if not member.isreg() or not member.name.endswith(".mmdb"):
                        continue
                    source = tar.extractfile(member)
                    if source is None:
                        continue
                    return self._write_temp(source, directory, cancel, deadline)
            raise GeoIPError("GeoIP archive did not contain an .mmdb file")
        except tarfile.ReadError:
            pass

        with gzip.open(archive_path, "rb") as source:
            return self._write_temp(source, directory, cancel, deadline)

    def _write_temp(
        self,
        source: IO[bytes],
        directory: str,
        cancel: threading.Event | None,
        deadline: float,
    ) -> str:
        fd, path = tempfile.mkstemp(prefix="geoip-", suffix=".mmdb.tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as out:
                self._copy(source, out, cancel, deadline)
        except BaseException:
            os.remove(path)
            raise
        return path

    def _copy(
        self,
        source: IO[bytes],
        out: IO[bytes],
        cancel: threading.Event | None,
        deadline: float,
    ) -> None:
        while True:
            self._check_cancelled(cancel, deadline)
            chunk = source.read(CHUNK_SIZE)
            if not chunk:
                return
            out.write(chunk)

    @staticmethod
    def _check_cancelled(cancel: threading.Event | None, deadline: float) -> None:
        if cancel is not None and cancel.is_set():
            raise GeoIPDownloadCancelled("GeoIP download cancelled", state=GeoIPState.ERROR.value)
        if time.monotonic() >= deadline:
            raise GeoIPDownloadCancelled("GeoIP download timed out", state=GeoIPState.ERROR.value)

    @staticmethod
    def _remaining(deadline: float) -> float:
        return max(0.1, deadline - time.monotonic())

    @staticmethod
    def _open_reader(path: str) -> geoip2.database.Reader:
        # In-memory mode so a later os.replace of the file cannot affect it
        return geoip2.database.Reader(path, mode=maxminddb.MODE_MEMORY)

    def _swap_reader(self, reader: geoip2.database.Reader) -> None:
        with self._reader_lock.write_locked():
            old, self._reader = self._reader, reader
            self._generation += 1
        if old is not None:
            old.close()


_shared_resolver: GeoIPResolver | None = None
_shared_resolver_lock = threading.Lock()


def get_resolver(config: AnalyticsConfig | None = None) -> GeoIPResolver:
    """Get the process-wide resolver, building it on first use.

    Ingestion and the admin endpoints share this instance, so a refresh or
    an enable is seen by the lookups served from the same process.
    """
    global _shared_resolver
    with _shared_resolver_lock:
        if _shared_resolver is None:
            _shared_resolver = GeoIPResolver.from_config(config or AnalyticsConfig.from_env())
        return _shared_resolver
