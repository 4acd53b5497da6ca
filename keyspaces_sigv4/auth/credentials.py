"""
AWS credential sources for the SigV4 authenticator.

Credentials are always obtained through a botocore ``CredentialResolver`` so
that explicit keys, a boto3 session and the default discovery chain
(environment, shared config files, container and instance metadata) are
resolved the same way.

Usage:
    from keyspaces_sigv4.auth import CredentialChain

    chain = CredentialChain.from_static("AKID", "secret")
    chain = CredentialChain.default()

    credentials = chain.resolve()
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import botocore.session
from botocore.credentials import (
    CredentialProvider,
    CredentialResolver,
    Credentials,
    create_credential_resolver,
)
from botocore.exceptions import NoCredentialsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AWSCredentials:
    """AWS credentials for SigV4 signing."""
    access_key: Optional[str]
    secret_key: Optional[str] = field(default=None, repr=False)
    session_token: Optional[str] = field(default=None, repr=False)


class StaticCredentialProvider(CredentialProvider):
    """Credential provider returning explicitly configured keys verbatim."""

    METHOD = "static"
    CANONICAL_NAME = "Static"

    def __init__(
        self,
        access_key: Optional[str],
        secret_key: Optional[str] = None,
        session_token: Optional[str] = None,
    ):
        super().__init__()
        self.access_key = access_key
        self.secret_key = secret_key
        self.session_token = session_token

    def load(self) -> Credentials:
        return Credentials(
            self.access_key,
            self.secret_key,
            self.session_token,
            method=self.METHOD,
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, StaticCredentialProvider):
            return NotImplemented
        return (
            self.access_key == other.access_key
            and self.secret_key == other.secret_key
            and self.session_token == other.session_token
        )

    def __repr__(self) -> str:
        return f"StaticCredentialProvider(access_key={self.access_key!r})"


class SessionCredentialProvider(CredentialProvider):
    """Credential provider delegating to a boto3 session."""

    METHOD = "boto3-session"
    CANONICAL_NAME = "Boto3Session"

    def __init__(self, boto3_session):
        super().__init__()
        self.boto3_session = boto3_session

    def load(self) -> Optional[Credentials]:
        return self.boto3_session.get_credentials()


class CredentialChain:
    """
    Ordered credential providers queried until one yields credentials.

    Attributes:
        resolver: The underlying botocore resolver
        source: Short description of where credentials come from
    """

    def __init__(self, resolver: CredentialResolver, source: str = "custom"):
        self.resolver = resolver
        self.source = source

    @classmethod
    def from_static(
        cls,
        access_key: Optional[str],
        secret_key: Optional[str] = None,
        session_token: Optional[str] = None,
    ) -> "CredentialChain":
        """Build a chain holding exactly one set of explicit credentials."""
        provider = StaticCredentialProvider(access_key, secret_key, session_token)
        return cls(CredentialResolver(providers=[provider]), source="static")

    @classmethod
    def from_session(cls, boto3_session) -> "CredentialChain":
        """Build a chain that resolves through a boto3 session."""
        provider = SessionCredentialProvider(boto3_session)
        return cls(CredentialResolver(providers=[provider]), source="session")

    @classmethod
    def default(cls, session: Optional[botocore.session.Session] = None) -> "CredentialChain":
        """
        Build botocore's default discovery chain.

        Args:
            session: Optional botocore session to read configuration from

        Returns:
            CredentialChain over the default providers
        """
        session = session or botocore.session.get_session()
        return cls(create_credential_resolver(session), source="default")

    @property
    def providers(self) -> list:
        return self.resolver.providers

    @property
    def is_static(self) -> bool:
        """True when resolution needs no I/O."""
        return bool(self.providers) and all(
            isinstance(p, StaticCredentialProvider) for p in self.providers
        )

    def resolve(self) -> AWSCredentials:
        """
        Resolve a credential snapshot.

        Returns:
            AWSCredentials frozen at the time of the call

        Raises:
            NoCredentialsError: If no provider in the chain yields credentials
        """
        credentials = self.resolver.load_credentials()
        if credentials is None:
            raise NoCredentialsError()

        frozen = credentials.get_frozen_credentials()
        logger.debug(
            "Resolved credentials from %s chain via %s",
            self.source,
            getattr(credentials, "method", None),
        )
        return AWSCredentials(
            access_key=frozen.access_key,
            secret_key=frozen.secret_key,
            session_token=frozen.token,
        )
