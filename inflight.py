import threading
import time

from werkzeug.wsgi import ClosingIterator


class InFlightTracker:
	"""Count requests currently being served so shutdown can wait for them."""

	def __init__(self) -> None:
		self._cond = threading.Condition()
		self._active = 0

	@property
	def active(self) -> int:
		with self._cond:
			return self._active

	def enter(self) -> None:
		with self._cond:
			self._active += 1

	def leave(self) -> None:
		with self._cond:
			self._active -= 1
			if self._active == 0:
				self._cond.notify_all()

	def wait_idle(self, timeout: float | None = None) -> bool:
		"""Block until no request is in flight; False if timeout elapsed first."""
		deadline = None if timeout is None else time.monotonic() + timeout
		with self._cond:
			while self._active > 0:
				if deadline is None:
					self._cond.wait()
					continue
				remaining = deadline - time.monotonic()
				if remaining <= 0:
					return False
				self._cond.wait(remaining)
			return True

	def wrap(self, wsgi_app):
		"""WSGI middleware; a request stays in flight until its body is fully written."""

		def middleware(environ, start_response):
			self.enter()
			try:
				app_iter = wsgi_app(environ, start_response)
			except BaseException:
				self.leave()
				raise
			return ClosingIterator(app_iter, self.leave)

		return middleware
