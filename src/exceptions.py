"""
Exceptions raised at or above the document composer.

Failures below the composer (fetch errors, empty collections) never surface
as exceptions; they are absorbed into the placeholder policy.
"""


class IPSExporterError(Exception):
    """Base class for IPS exporter errors."""


class MissingIdentityContext(IPSExporterError):
    """Raised when the current patient or practitioner cannot be resolved."""


class BundleIntegrityError(IPSExporterError):
    """Raised when a packaged document Bundle is not reference-closed."""

    def __init__(self, unresolved: list) -> None:
        self.unresolved = unresolved
        super().__init__(
            f"Document Bundle has unresolved references: {', '.join(unresolved)}"
        )
