import ipaddress
import logging

from flask import Flask, jsonify, request

from config import Settings, settings as default_settings
from geoip_resolver import GeoDatabaseError, MalformedAddressError
from inflight import InFlightTracker

logger = logging.getLogger(__name__)

NOT_FOUND_BODY = "404 page not found\n"


def client_address(trust_forwarded_for: bool = False):
	"""Parse the caller's IP address from the current request.

	Raises ValueError if the remote address is missing or malformed.
	"""
	raw = request.remote_addr
	if trust_forwarded_for:
		forwarded = request.headers.get("X-Forwarded-For", "")
		first = forwarded.split(",")[0].strip()
		if first:
			raw = first

	if not raw:
		raise ValueError("request has no remote address")
	return ipaddress.ip_address(raw)


def create_app(database, settings: Settings = default_settings, tracker: InFlightTracker | None = None) -> Flask:
	"""Build the Flask application serving lookups from database.

	database is anything with a lookup(ip) -> CityRecord | None method.
	"""
	app = Flask(__name__)
	app.config["GEO_DATABASE"] = database
	app.config["TRUST_FORWARDED_FOR"] = settings.trust_forwarded_for

	if tracker is not None:
		app.wsgi_app = tracker.wrap(app.wsgi_app)

	@app.route("/", methods=["GET"], provide_automatic_options=False)
	def ip_info():
		"""Look up the calling address in the GeoIP2 city database."""
		try:
			address = client_address(app.config["TRUST_FORWARDED_FOR"])
		except ValueError as e:
			logger.warning("invalid_client_address remote_addr=%s err=%s", request.remote_addr, e)
			return jsonify({"error": "invalid_ip"}), 400

		ip = str(address)
		try:
			record = database.lookup(ip)
		except MalformedAddressError as e:
			logger.warning("invalid_client_address ip=%s err=%s", ip, e)
			return jsonify({"error": "invalid_ip"}), 400
		except GeoDatabaseError as e:
			logger.error("lookup_failed ip=%s err=%s", ip, e)
			return jsonify({"error": "lookup_failed"}), 500

		if record is None:
			logger.warning("ip_not_found ip=%s", ip)
			return jsonify({"error": "ip_not_found", "ip": ip}), 404

		return jsonify(record.to_dict())

	@app.errorhandler(404)
	@app.errorhandler(405)
	def not_found(_error):
		return NOT_FOUND_BODY, 404, {"Content-Type": "text/plain; charset=utf-8"}

	return app
