"""Configuration for the SigV4 authenticator."""

import os
from dataclasses import dataclass
from typing import Callable, Optional

from dotenv import load_dotenv

# Environment variables consulted for the default region, in order
REGION_ENV_VARS = ("AWS_REGION", "AWS_DEFAULT_REGION")

RegionProvider = Callable[[], Optional[str]]


@dataclass(frozen=True)
class SigV4Config:
    """Options accepted by the auth provider."""

    region: Optional[str] = None

    # Static credentials; when access_key_id is unset the default chain is used
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None

    # Named profile from the shared config/credentials files
    profile_name: Optional[str] = None

    # Print EMF handshake metrics through the shared emitter
    emit_metrics: bool = False

    @classmethod
    def from_env(cls) -> "SigV4Config":
        """Load configuration from environment variables (and a .env file)."""
        load_dotenv()
        return cls(
            region=region_from_env(),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID") or None,
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY") or None,
            session_token=os.getenv("AWS_SESSION_TOKEN") or None,
            profile_name=os.getenv("AWS_PROFILE") or None,
            emit_metrics=os.getenv("SIGV4_EMIT_METRICS", "").lower() in ("1", "true"),
        )

    def __repr__(self) -> str:
        # Secrets stay out of logs and tracebacks
        return (
            f"SigV4Config(region={self.region!r}, "
            f"access_key_id={self.access_key_id!r}, "
            f"profile_name={self.profile_name!r}, "
            f"emit_metrics={self.emit_metrics!r})"
        )


def region_from_env() -> Optional[str]:
    """Return the first non-empty region found in the environment."""
    for name in REGION_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return None


def session_region_provider(session) -> RegionProvider:
    """
    Build a region provider backed by a boto3 session.

    The session's configured region wins; the environment is consulted when
    the session has none.

    Args:
        session: A ``boto3.Session``

    Returns:
        Callable returning the region or None
    """
    def provider() -> Optional[str]:
        return session.region_name or region_from_env()

    return provider
