import enum
import logging
import signal
import sys
import threading
import time

from werkzeug.serving import WSGIRequestHandler, make_server

from app import create_app
from config import Settings, parse_addr, parse_args
from geoip_resolver import DatabaseOpenError, GeoDatabase
from inflight import InFlightTracker
from logging_config import setup_logging

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)
SIGNAL_POLL_SECONDS = 0.2


class LifecycleState(enum.Enum):
	STARTING = "starting"
	SERVING = "serving"
	DRAINING = "draining"
	STOPPED = "stopped"


def _request_handler(read_timeout: float):
	"""Request handler class whose connections time out while reading."""

	class TimeoutRequestHandler(WSGIRequestHandler):
		timeout = read_timeout

	return TimeoutRequestHandler


class GeoServer:
	"""Owns the database handle, the listener and the shutdown sequence."""

	def __init__(self, settings: Settings, open_database=GeoDatabase.open) -> None:
		self.settings = settings
		self._open_database = open_database
		self._stop = threading.Event()
		self._serve_failed = False
		self.ready = threading.Event()
		self.state = LifecycleState.STARTING
		self.tracker = InFlightTracker()
		self.httpd = None

	@property
	def port(self) -> int | None:
		return self.httpd.server_port if self.httpd is not None else None

	def stop(self) -> None:
		"""Request shutdown; safe to call from any thread."""
		self._stop.set()

	def _handle_signal(self, signum, _frame) -> None:
		self.stop()

	def run(self, install_signals: bool = True) -> int:
		"""Serve until stopped, then drain. Returns the process exit code."""
		self.state = LifecycleState.STARTING
		db_path = self.settings.db_path

		try:
			database = self._open_database(db_path)
		except DatabaseOpenError as e:
			logger.error("can't open GeoIP2 database err=%s db=%s", e, db_path)
			self.state = LifecycleState.STOPPED
			return 1
		logger.info(
			"Opened GeoIP2 database db=%s type=%s",
			db_path,
			getattr(database, "database_type", None),
		)

		app = create_app(database, self.settings, tracker=self.tracker)
		try:
			host, port = parse_addr(self.settings.addr)
			self.httpd = make_server(
				host,
				port,
				app,
				threaded=True,
				request_handler=_request_handler(self.settings.read_timeout_seconds),
			)
		except (ValueError, OSError, SystemExit) as e:
			# werkzeug reports bind failures with sys.exit(1)
			logger.error("can't start HTTP server err=%s addr=%s", e, self.settings.addr)
			self._close_database(database)
			self.state = LifecycleState.STOPPED
			return 1

		previous_handlers = {}
		if install_signals and threading.current_thread() is threading.main_thread():
			for signum in SHUTDOWN_SIGNALS:
				previous_handlers[signum] = signal.signal(signum, self._handle_signal)

		serve_thread = threading.Thread(target=self._serve, name="http-server", daemon=True)
		logger.info("Starting HTTP server addr=%s db=%s", self.settings.addr, db_path)
		self.state = LifecycleState.SERVING
		serve_thread.start()
		self.ready.set()

		try:
			# Python signal handlers only run on the main thread between waits
			while not self._stop.wait(SIGNAL_POLL_SECONDS):
				pass
		finally:
			for signum, handler in previous_handlers.items():
				signal.signal(signum, handler)

		self._drain(serve_thread)
		self._close_database(database)

		logger.info("Server exiting")
		self.state = LifecycleState.STOPPED
		return 1 if self._serve_failed else 0

	def _serve(self) -> None:
		try:
			self.httpd.serve_forever()
		except Exception as e:
			logger.error("HTTP server error err=%s", e)
			self._serve_failed = True
			self._stop.set()

	def _drain(self, serve_thread: threading.Thread) -> None:
		"""Stop accepting, then give in-flight requests until the deadline."""
		self.state = LifecycleState.DRAINING
		logger.info("Shutting down server...")
		deadline = time.monotonic() + self.settings.shutdown_timeout_seconds

		self.httpd.shutdown()
		serve_thread.join(max(0.0, deadline - time.monotonic()))
		try:
			self.httpd.server_close()
		except OSError as e:
			logger.warning("can't close listener err=%s", e)

		if not self.tracker.wait_idle(max(0.0, deadline - time.monotonic())):
			logger.warning("Server forced to shutdown in_flight=%d", self.tracker.active)

	def _close_database(self, database) -> None:
		try:
			database.close()
		except Exception as e:
			logger.warning("can't close GeoIP2 database err=%s db=%s", e, self.settings.db_path)


def main(argv=None) -> int:
	settings = parse_args(argv)
	setup_logging(settings)
	return GeoServer(settings).run()


if __name__ == "__main__":
	sys.exit(main())
