"""
Tests for settings and listen-address parsing
"""

import pytest

from config import Settings, parse_addr, parse_args


@pytest.mark.parametrize(
	"addr, expected",
	[
		(":8080", ("0.0.0.0", 8080)),
		("127.0.0.1:0", ("127.0.0.1", 0)),
		("localhost:5000", ("localhost", 5000)),
		("[::1]:8080", ("::1", 8080)),
		("[::]:8080", ("::", 8080)),
	],
)
def test_parse_addr(addr, expected):
	assert parse_addr(addr) == expected


@pytest.mark.parametrize("addr", ["8080", "host:", ":http", "::1:8080", "[]:80", ":70000"])
def test_parse_addr_rejects(addr):
	with pytest.raises(ValueError):
		parse_addr(addr)


def test_defaults():
	s = Settings(addr=":8080", db_path="GeoLite2-City.mmdb")

	assert s.read_timeout_seconds == 5.0
	assert s.shutdown_timeout_seconds == 10.0
	assert s.trust_forwarded_for is False


def test_parse_args_keeps_base_without_flags():
	base = Settings(addr=":9000", db_path="base.mmdb", log_level="DEBUG")

	assert parse_args([], base=base) == base


def test_parse_args_overrides():
	base = Settings(addr=":9000", db_path="base.mmdb")

	s = parse_args(
		["--addr", "127.0.0.1:8081", "--db", "/data/city.mmdb", "--trust-forwarded-for"],
		base=base,
	)

	assert s.addr == "127.0.0.1:8081"
	assert s.db_path == "/data/city.mmdb"
	assert s.trust_forwarded_for is True
	assert s.shutdown_timeout_seconds == base.shutdown_timeout_seconds
