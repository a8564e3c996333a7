"""Exceptions raised by the import, reconciliation and attendance code."""


class CarreVertError(Exception):
	"""Base class for all project errors."""


class ParseError(CarreVertError):
	"""A CSV row (or the whole document) could not be turned into attendance rows."""

	def __init__(self, message: str, line: int | None = None):
		self.line = line
		self.message = message
		super().__init__(f"line {line}: {message}" if line is not None else message)


class ResolutionConflict(CarreVertError):
	"""A name or date maps to more than one existing record."""


class StoreWriteError(CarreVertError):
	"""A single create/update/delete against the record store failed."""


class ValidationError(CarreVertError):
	"""Input rejected before any write was attempted."""


class ReconciliationCancelled(CarreVertError):
	"""Raised inside a run when its cancellation token has been set."""


class ReconciliationInProgress(CarreVertError):
	"""Another reconciliation run holds the run lock."""
