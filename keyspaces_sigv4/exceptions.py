"""Errors raised by the SigV4 SASL authenticator."""

from typing import Optional


class SigV4AuthError(Exception):
    """
    Base class for authenticator errors.

    Each error carries a stable ``code`` that is rendered in brackets at the
    start of the message, e.g. ``[SIGV4_MISSING_NONCE] ...``.

    Attributes:
        code: Stable error code
        detail: Human readable description without the code
        message: Code and detail combined
    """

    code = "SIGV4_ERROR"

    def __init__(self, detail: str):
        self.detail = detail
        self.message = f"[{self.code}] {detail}"
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"Error: {self.message}"


class MissingRegionError(SigV4AuthError):
    """No region was configured and none could be found in the environment."""

    code = "SIGV4_MISSING_REGION"

    def __init__(self, env_var: str = "AWS_REGION"):
        self.env_var = env_var
        super().__init__(
            "No region provided. You must either provide a region or set "
            f"environment variable [{env_var}]"
        )


class MissingNonceError(SigV4AuthError):
    """The server challenge did not contain a ``nonce=`` token."""

    code = "SIGV4_MISSING_NONCE"

    def __init__(self, challenge: str):
        self.challenge = challenge
        super().__init__(f"Did not find nonce in SigV4 challenge:[{challenge}]")


class AuthenticatorStateError(SigV4AuthError):
    """A SASL step was invoked out of order or more than once."""

    code = "SIGV4_INVALID_STATE"

    def __init__(self, operation: str, state: Optional[str] = None):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot call {operation} in state [{state}]")
