from __future__ import annotations


class PolicyKitError(Exception):
    """Base class for errors raised by policykit."""


class PolicyDocumentError(PolicyKitError):
    """A single policy document could not be used.

    These are isolated per document: batch operations log them and carry on
    with the remaining documents.
    """

    def __init__(self, message: str, *, file_name: str | None = None):
        super().__init__(message)
        self.file_name = file_name


class PolicyParseError(PolicyDocumentError):
    """The document body is not well-formed XML."""


class MissingPolicyIdError(PolicyDocumentError):
    """The root element carries no PolicyId attribute."""


class EmptyPolicySetError(PolicyKitError):
    """An operation that needs at least one policy received none."""


class SettingsFileError(PolicyKitError):
    """appsettings.json is missing or cannot be read."""


class AuthenticationError(PolicyKitError):
    """An access token for Microsoft Graph could not be acquired."""


class PolicyUploadError(PolicyKitError):
    """Microsoft Graph rejected a policy upload."""

    def __init__(self, policy_id: str, status_code: int, detail: str = ""):
        message = f"Upload of {policy_id} failed with HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.policy_id = policy_id
        self.status_code = status_code
        self.detail = detail
