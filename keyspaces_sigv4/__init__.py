"""Keyspaces SigV4 - SASL authentication with AWS SigV4 credentials."""

__version__ = "0.1.0"

from .config import SigV4Config, region_from_env, session_region_provider
from .exceptions import (
    AuthenticatorStateError,
    MissingNonceError,
    MissingRegionError,
    SigV4AuthError,
)
from .metrics import get_metrics_emitter, init_metrics, MetricsEmitter, AuthMetricName
from .provider import (
    INITIAL_RESPONSE,
    AuthenticatorState,
    SigV4Authenticator,
    SigV4AuthProvider,
)
from .auth import AWSCredentials, CredentialChain, extract_nonce

__all__ = [
    "__version__",
    # Provider and authenticator
    "SigV4AuthProvider",
    "SigV4Authenticator",
    "AuthenticatorState",
    "INITIAL_RESPONSE",
    "extract_nonce",
    # Credentials
    "AWSCredentials",
    "CredentialChain",
    # Configuration
    "SigV4Config",
    "region_from_env",
    "session_region_provider",
    # Errors
    "SigV4AuthError",
    "MissingRegionError",
    "MissingNonceError",
    "AuthenticatorStateError",
    # Metrics
    "get_metrics_emitter",
    "init_metrics",
    "MetricsEmitter",
    "AuthMetricName",
]
