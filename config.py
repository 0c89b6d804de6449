# config.py

import argparse
import dataclasses
import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
	"""Read a boolean value from environment variables."""
	raw = os.getenv(name)
	if raw is None:
		return default
	return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
	"""Central application settings loaded from environment variables."""

	# HTTP listener
	addr: str = os.getenv("GEOSERVE_ADDR", ":8080")
	read_timeout_seconds: float = 5.0
	shutdown_timeout_seconds: float = 10.0

	# GeoIP2 city database
	db_path: str = os.getenv("GEOSERVE_DB", "GeoLite2-City.mmdb")

	# Client address extraction
	trust_forwarded_for: bool = _env_bool("GEOSERVE_TRUST_FORWARDED_FOR", False)

	log_level: str = os.getenv("GEOSERVE_LOG_LEVEL", "INFO")


settings = Settings()


def parse_addr(addr: str) -> tuple[str, int]:
	"""Split a listen address (host:port, :port or [v6]:port) into host and port.

	An empty host means all IPv4 interfaces.
	"""
	host, sep, port = addr.rpartition(":")
	if not sep or not port.isdigit():
		raise ValueError(f"invalid listen address: {addr!r}")

	if host.startswith("[") and host.endswith("]"):
		host = host[1:-1]
		if not host:
			raise ValueError(f"invalid listen address: {addr!r}")
	elif ":" in host:
		raise ValueError(f"IPv6 host must be bracketed: {addr!r}")

	port_num = int(port)
	if port_num > 65535:
		raise ValueError(f"port out of range: {addr!r}")

	# an empty host binds IPv4 only; "[::]:port" is needed for IPv6
	return host or "0.0.0.0", port_num


def parse_args(argv=None, base: Settings = settings) -> Settings:
	"""Apply command-line flags on top of environment settings."""
	parser = argparse.ArgumentParser(
		prog="geoserve",
		description="Serve GeoIP2 city lookups for the calling IP address.",
	)
	parser.add_argument("--addr", default=base.addr, help="HTTP listen address")
	parser.add_argument("--db", default=base.db_path, help="GeoIP2 city database file")
	parser.add_argument("--log-level", default=base.log_level, help="logging level name")
	parser.add_argument(
		"--trust-forwarded-for",
		action="store_true",
		default=base.trust_forwarded_for,
		help="use the X-Forwarded-For header as the client address",
	)

	args = parser.parse_args(argv)
	return dataclasses.replace(
		base,
		addr=args.addr,
		db_path=args.db,
		log_level=args.log_level,
		trust_forwarded_for=args.trust_forwarded_for,
	)
