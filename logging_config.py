import logging
import sys
from config import Settings, settings as default_settings


def setup_logging(settings: Settings = default_settings) -> None:
	"""Configure the root logger for the service process."""
	level = getattr(logging, settings.log_level.upper(), logging.INFO)

	# Request threads log concurrently; keep the thread name on each line
	logging.basicConfig(
		level=level,
		format="%(asctime)s %(levelname)s [%(name)s] [%(threadName)s] %(message)s",
		stream=sys.stdout,
	)

	# werkzeug writes one access line per request; only keep its warnings
	logging.getLogger("werkzeug").setLevel(logging.WARNING)
