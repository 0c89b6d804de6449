import ipaddress
import logging
import threading
from dataclasses import dataclass, asdict
from pathlib import Path

import geoip2.database
import geoip2.errors
import maxminddb

logger = logging.getLogger(__name__)


class GeoDatabaseError(Exception):
	"""Base class for GeoIP2 database failures."""


class DatabaseOpenError(GeoDatabaseError):
	"""The database file is missing, unreadable or corrupt."""


class MalformedAddressError(GeoDatabaseError):
	"""The address handed to a lookup is not a valid IP address."""


class GeoLookupError(GeoDatabaseError):
	"""The database failed while resolving an otherwise valid address."""


class DatabaseClosedError(GeoLookupError):
	"""A lookup was attempted after the database was closed."""


@dataclass(frozen=True)
class CityRecord:
	"""Geographic metadata for a single IP address."""

	country: str | None = None
	country_code: str | None = None
	city: str | None = None
	subdivision: str | None = None
	latitude: float | None = None
	longitude: float | None = None

	def to_dict(self) -> dict:
		"""JSON representation; fields the database left empty are omitted."""
		return {key: value for key, value in asdict(self).items() if value is not None}


def _english_name(record) -> str | None:
	names = getattr(record, "names", None)
	if not names:
		return None
	return names.get("en")


def city_record_from_response(city) -> CityRecord:
	"""Map a geoip2 City model onto a CityRecord."""
	region = city.subdivisions.most_specific if city.subdivisions else None

	return CityRecord(
		country=_english_name(city.country) if city.country else None,
		country_code=city.country.iso_code if city.country else None,
		city=_english_name(city.city) if city.city else None,
		subdivision=_english_name(region) if region else None,
		latitude=city.location.latitude if city.location else None,
		longitude=city.location.longitude if city.location else None,
	)


class GeoDatabase:
	"""Read-only GeoIP2 city database shared by all request threads."""

	def __init__(self, reader, path: str | Path) -> None:
		self._reader = reader
		self._path = Path(path)
		self._close_lock = threading.Lock()
		self._closed = False

	@classmethod
	def open(cls, path: str | Path) -> "GeoDatabase":
		"""Open the database file at path.

		Raises:
			DatabaseOpenError: if the file is missing, unreadable or not a valid
				MaxMind database.
		"""
		try:
			reader = geoip2.database.Reader(str(path))
		except FileNotFoundError as e:
			raise DatabaseOpenError(f"database file not found: {path}") from e
		except (maxminddb.InvalidDatabaseError, ValueError) as e:
			raise DatabaseOpenError(f"corrupt database {path}: {e}") from e
		except OSError as e:
			raise DatabaseOpenError(f"can't read database {path}: {e}") from e

		return cls(reader, path)

	@property
	def path(self) -> Path:
		return self._path

	@property
	def closed(self) -> bool:
		return self._closed

	@property
	def database_type(self) -> str | None:
		try:
			return self._reader.metadata().database_type
		except Exception as e:
			logger.debug("metadata_unavailable db=%s err=%s", self._path, e)
			return None

	def lookup(self, ip: str) -> CityRecord | None:
		"""Resolve ip to a CityRecord, or None if the database has no entry for it."""
		try:
			ipaddress.ip_address(ip)
		except ValueError as e:
			raise MalformedAddressError(str(e)) from e

		if self._closed:
			raise DatabaseClosedError(f"database {self._path} is closed")

		try:
			city = self._reader.city(ip)
		except geoip2.errors.AddressNotFoundError:
			return None
		except ValueError as e:
			# the address is valid; maxminddb also raises ValueError once closed
			# and for IPv6 lookups in an IPv4-only database
			if self._closed:
				raise DatabaseClosedError(f"database {self._path} closed during lookup") from e
			raise GeoLookupError(f"city lookup failed for {ip}: {e}") from e
		except Exception as e:
			raise GeoLookupError(f"city lookup failed for {ip}: {e}") from e

		return city_record_from_response(city)

	def close(self) -> None:
		"""Close the underlying reader; later calls are no-ops."""
		with self._close_lock:
			if self._closed:
				return
			self._closed = True
		self._reader.close()

	def __enter__(self):
		return self

	def __exit__(self, *args):
		self.close()
