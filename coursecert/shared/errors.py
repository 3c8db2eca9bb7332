from __future__ import annotations


class CertificateError(RuntimeError):
    """Base error for the certificate workflow.

    ``status_code`` is the HTTP status a route should answer with and
    ``message`` is safe to show to the client.
    """

    status_code = 500
    default_message = "Certificate error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class CertificateNotFoundError(CertificateError):
    status_code = 404
    default_message = "Not found"


class CertificatePreconditionError(CertificateError):
    """Raised when the learner has not completed the course."""

    status_code = 403
    default_message = "Course not completed"


class CertificateForbiddenError(CertificateError):
    status_code = 403
    default_message = "Unauthorized"


class CertificateUpstreamError(CertificateError):
    """Template download or object storage failed."""

    status_code = 502
    default_message = "Upstream service failed"


class CertificateRenderError(CertificateError):
    status_code = 500
    default_message = "Certificate rendering failed"


class TemplateUploadError(ValueError):
    """Raised when an uploaded template file is unusable."""
