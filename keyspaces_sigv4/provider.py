"""
SigV4 SASL auth provider and authenticator.

The provider resolves a region and a credential chain once, then hands out one
authenticator per connection attempt. The authenticator drives the two SASL
steps: a fixed initial response, then a signed reply to the server's nonce
challenge.

Usage:
    from keyspaces_sigv4 import SigV4AuthProvider

    provider = SigV4AuthProvider(region="us-east-1")
    authenticator = provider.new_authenticator()

    first = authenticator.initial_response()
    reply = await authenticator.evaluate_challenge(challenge)
"""

import asyncio
import datetime
import logging
import time
from enum import Enum
from typing import Optional

import boto3
from botocore.exceptions import PartialCredentialsError
from opentelemetry import trace

from .auth.credentials import AWSCredentials, CredentialChain
from .auth.sigv4 import SigV4Signer, extract_nonce, to_utc
from .config import RegionProvider, SigV4Config, region_from_env, session_region_provider
from .exceptions import AuthenticatorStateError, MissingNonceError, MissingRegionError
from .metrics import MetricsEmitter, get_metrics_emitter
from .tracing import add_sasl_span_attributes, traced

logger = logging.getLogger(__name__)

INITIAL_RESPONSE = b"SigV4\x00\x00"


class AuthenticatorState(str, Enum):
    """Lifecycle of a single SASL exchange."""
    CREATED = "created"
    AWAITING_CHALLENGE = "awaiting_challenge"
    COMPLETED = "completed"
    FAILED = "failed"


class SigV4Authenticator:
    """
    Per-connection SigV4 SASL authenticator.

    Each instance services exactly one exchange. The signing time is captured
    at construction (truncated to whole seconds) unless one is injected.

    Attributes:
        region: Signing region
        chain: Credential chain consulted during challenge evaluation
        date: Signing time in UTC
        state: Current AuthenticatorState
    """

    def __init__(
        self,
        region: str,
        chain: CredentialChain,
        date: Optional[datetime.datetime] = None,
        metrics: Optional[MetricsEmitter] = None,
    ):
        if not region:
            raise MissingRegionError()

        self.region = region
        self.chain = chain
        if date is None:
            date = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
        self.date = to_utc(date)
        self.state = AuthenticatorState.CREATED
        self._metrics = metrics
        self._challenge_taken = False
        self._signing = False
        self._started: Optional[float] = None

    def initial_response(self) -> bytes:
        """Return the fixed 7 byte ``SigV4\\0\\0`` preamble."""
        if self.state is not AuthenticatorState.CREATED:
            raise AuthenticatorStateError("initial_response", self.state.value)

        self.state = AuthenticatorState.AWAITING_CHALLENGE
        return INITIAL_RESPONSE

    def prepare_challenge(self, challenge: bytes) -> bytes:
        """
        Validate the state and extract the nonce from a challenge.

        This is the synchronous half of ``evaluate_challenge``.

        Args:
            challenge: Raw challenge bytes from the server

        Returns:
            The nonce bytes

        Raises:
            AuthenticatorStateError: If a challenge was already taken
            MissingNonceError: If the challenge has no ``nonce=`` token
        """
        if self._challenge_taken or self.state not in (
            AuthenticatorState.CREATED,
            AuthenticatorState.AWAITING_CHALLENGE,
        ):
            raise AuthenticatorStateError("evaluate_challenge", self.state.value)

        self._challenge_taken = True
        self._started = time.monotonic()

        nonce = extract_nonce(challenge)
        if nonce is None:
            text = bytes(challenge).decode("utf-8", errors="replace")
            logger.warning("No nonce in SigV4 challenge of %d bytes", len(challenge))
            error = MissingNonceError(text)
            self._fail(error)
            raise error
        return nonce

    @traced("sasl.evaluate_challenge")
    async def complete_challenge(self, nonce: bytes) -> bytes:
        """
        Resolve credentials and sign the nonce.

        This is the asynchronous half of ``evaluate_challenge``; credential
        resolution is its only suspension point.

        Args:
            nonce: Nonce returned by ``prepare_challenge``

        Returns:
            The challenge response buffer
        """
        if self._signing or not self._challenge_taken or self.state in (
            AuthenticatorState.COMPLETED,
            AuthenticatorState.FAILED,
        ):
            raise AuthenticatorStateError("complete_challenge", self.state.value)
        self._signing = True

        span = trace.get_current_span()
        try:
            credentials = await self._resolve_credentials()
            _check_credentials(credentials)
            response = SigV4Signer(
                region=self.region,
                credentials=credentials,
            ).sign_challenge(nonce, self.date)
        except Exception as e:
            add_sasl_span_attributes(
                span,
                region=self.region,
                credential_source=self.chain.source,
                state=AuthenticatorState.FAILED.value,
            )
            self._fail(e)
            raise

        self.state = AuthenticatorState.COMPLETED
        add_sasl_span_attributes(
            span,
            region=self.region,
            access_key=credentials.access_key,
            credential_source=self.chain.source,
            state=self.state.value,
        )
        self._record_handshake(success=True)
        logger.debug("SigV4 challenge signed for %s in %s", credentials.access_key, self.region)
        return response

    async def evaluate_challenge(self, challenge: bytes) -> bytes:
        """
        Answer a server challenge with a signed response.

        Args:
            challenge: Raw challenge bytes containing ``nonce=<token>``

        Returns:
            ``signature=...,access_key=...,amzdate=...,session_token=...``

        Raises:
            MissingNonceError: If the challenge has no nonce
            AuthenticatorStateError: If called out of order
            Exception: Credential chain errors, unaltered
        """
        nonce = self.prepare_challenge(challenge)
        return await self.complete_challenge(nonce)

    async def _resolve_credentials(self) -> AWSCredentials:
        if self.chain.is_static:
            return self.chain.resolve()

        started = time.monotonic()
        try:
            credentials = await asyncio.to_thread(self.chain.resolve)
        except Exception as e:
            logger.warning("Credential resolution via %s chain failed: %s", self.chain.source, e)
            if self._metrics:
                self._metrics.record_credential_resolution(
                    success=False,
                    latency_ms=(time.monotonic() - started) * 1000,
                    source=self.chain.source,
                    error_type=type(e).__name__,
                )
            raise

        if self._metrics:
            self._metrics.record_credential_resolution(
                success=True,
                latency_ms=(time.monotonic() - started) * 1000,
                source=self.chain.source,
            )
        return credentials

    def _fail(self, error: BaseException) -> None:
        self.state = AuthenticatorState.FAILED
        self._record_handshake(success=False, error_type=type(error).__name__)

    def _record_handshake(self, success: bool, error_type: Optional[str] = None) -> None:
        if not self._metrics:
            return
        latency_ms = (time.monotonic() - (self._started or time.monotonic())) * 1000
        self._metrics.record_handshake(
            success=success,
            latency_ms=latency_ms,
            region=self.region,
            error_type=error_type,
        )

    def __repr__(self) -> str:
        return (
            f"SigV4Authenticator(region={self.region!r}, "
            f"state={self.state.value!r}, date={self.date.isoformat()!r})"
        )


def _check_credentials(credentials: AWSCredentials) -> None:
    if not credentials.access_key:
        raise PartialCredentialsError(provider="credential chain", cred_var="access_key_id")
    if not credentials.secret_key:
        raise PartialCredentialsError(provider="credential chain", cred_var="secret_access_key")


class SigV4AuthProvider:
    """
    Factory for SigV4 authenticators.

    Region resolution: explicit ``region`` first, then the region provider
    (environment by default, or the boto3 session's region when one is in
    use). Credentials: explicit ``access_key_id`` gives a single static
    entry; otherwise a boto3 session (injected or from ``profile_name``);
    otherwise botocore's default discovery chain.

    Attributes:
        config: The options the provider was built from
        region: Resolved region
        chain: Credential chain shared by all authenticators
    """

    extract_nonce = staticmethod(extract_nonce)

    def __init__(
        self,
        config: Optional[SigV4Config] = None,
        *,
        region_provider: Optional[RegionProvider] = None,
        session: Optional[boto3.Session] = None,
        metrics: Optional[MetricsEmitter] = None,
        **options,
    ):
        """
        Initialize the provider.

        Args:
            config: SigV4Config; when omitted one is built from ``options``
            region_provider: Callable returning a default region
            session: boto3 session used for credentials and default region
            metrics: EMF emitter passed to authenticators; the shared one is
                used when omitted and ``config.emit_metrics`` is set
            **options: SigV4Config fields (region, access_key_id, ...)

        Raises:
            MissingRegionError: If no region can be resolved
        """
        if config is None:
            config = SigV4Config(**options)
        elif options:
            raise TypeError("Pass either a SigV4Config or keyword options, not both")

        if session is None and config.profile_name and not config.access_key_id:
            session = boto3.Session(profile_name=config.profile_name)

        if region_provider is None:
            region_provider = (
                session_region_provider(session) if session is not None else region_from_env
            )

        region = config.region or region_provider()
        if not region:
            raise MissingRegionError()

        if config.access_key_id:
            chain = CredentialChain.from_static(
                config.access_key_id,
                config.secret_access_key,
                config.session_token,
            )
        elif session is not None:
            chain = CredentialChain.from_session(session)
        else:
            chain = CredentialChain.default()

        self.config = config
        self.region = region
        self.chain = chain
        if metrics is None and config.emit_metrics:
            metrics = get_metrics_emitter()
        self._metrics = metrics

        logger.debug("SigV4 auth provider using region %s with %s credentials", region, chain.source)

    @classmethod
    def from_env(cls, **kwargs) -> "SigV4AuthProvider":
        """Build a provider from environment variables (and a .env file)."""
        return cls(SigV4Config.from_env(), **kwargs)

    def new_authenticator(self, date: Optional[datetime.datetime] = None) -> SigV4Authenticator:
        """
        Create an authenticator for one connection attempt.

        Args:
            date: Optional signing time; defaults to now

        Returns:
            A fresh SigV4Authenticator
        """
        return SigV4Authenticator(
            region=self.region,
            chain=self.chain,
            date=date,
            metrics=self._metrics,
        )

    def __repr__(self) -> str:
        return f"SigV4AuthProvider(region={self.region!r}, source={self.chain.source!r})"
