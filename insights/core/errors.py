"""Error taxonomy shared by services and the HTTP layer.

Services raise these; ``main.py`` maps them onto JSON responses using
``status_code``. Export processing never lets them escape the worker: they are
recorded on the job instead.
"""


class InsightsError(Exception):
    status_code = 500

    def __init__(self, message: str, detail=None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFound(InsightsError):
    status_code = 404


class BadFilter(InsightsError):
    """Malformed filter JSON or an invalid embedded ``/pattern/``."""

    status_code = 400


class ValidationError(InsightsError):
    status_code = 400


class ExportNotReady(InsightsError):
    status_code = 409


class BackendError(InsightsError):
    status_code = 500


class DatabaseConnectionError(BackendError):
    """The document store could not be reached."""
