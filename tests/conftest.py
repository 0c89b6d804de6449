import threading

import pytest

from config import Settings
from geoip_resolver import CityRecord

TEST_IP = "203.0.113.5"
TEST_RECORD = CityRecord(country="Testland", city="Testville", latitude=1.0, longitude=2.0)


class FakeDatabase:
	"""In-memory stand-in for GeoDatabase."""

	def __init__(self, records=None, error=None):
		self.records = dict(records or {})
		self.error = error
		self.closed = False
		self.close_calls = 0
		self.lookups = []

	def lookup(self, ip):
		self.lookups.append(ip)
		if self.error is not None:
			raise self.error
		return self.records.get(ip)

	def close(self):
		self.close_calls += 1
		self.closed = True


class BlockingDatabase(FakeDatabase):
	"""Lookups park until release is set, to hold a request in flight."""

	def __init__(self, records=None):
		super().__init__(records)
		self.entered = threading.Event()
		self.release = threading.Event()
		self.active = 0
		self.active_at_close = None

	def lookup(self, ip):
		self.active += 1
		self.entered.set()
		try:
			self.release.wait(10)
			return super().lookup(ip)
		finally:
			self.active -= 1

	def close(self):
		self.active_at_close = self.active
		super().close()


@pytest.fixture
def fake_db():
	return FakeDatabase({TEST_IP: TEST_RECORD})


@pytest.fixture
def test_settings():
	return Settings(
		addr="127.0.0.1:0",
		db_path="test-city.mmdb",
		trust_forwarded_for=False,
		read_timeout_seconds=5.0,
		shutdown_timeout_seconds=10.0,
	)
