"""
AWS SigV4 signing for the Keyspaces SASL challenge.

The server sends a challenge containing ``nonce=<token>``. The client answers
with a SigV4 signature computed over a fixed pseudo-request
(``PUT /authenticate`` against host ``cassandra``) whose payload is the nonce.
This is not a general HTTP request signer: the canonical request layout is
fixed by the protocol.

Usage:
    from keyspaces_sigv4.auth import AWSCredentials, SigV4Signer, extract_nonce

    signer = SigV4Signer(region="us-west-2", credentials=credentials)
    nonce = extract_nonce(challenge)
    response = signer.sign_challenge(nonce, timestamp)
"""

import datetime
import hashlib
import hmac
from typing import Optional, Union
from urllib.parse import quote

from .credentials import AWSCredentials

NONCE_PREFIX = b"nonce="
NONCE_DELIMITER = b","

SERVICE_NAME = "cassandra"
EXPIRES_SECONDS = 900


def extract_nonce(challenge: Union[bytes, bytearray, memoryview]) -> Optional[bytes]:
    """
    Pull the server nonce out of a challenge buffer.

    Args:
        challenge: Raw challenge bytes, e.g. ``b"nonce=abc,other=1"``

    Returns:
        The bytes between ``nonce=`` and the next comma (or the end of the
        buffer), or None when ``nonce=`` does not occur.
    """
    buf = bytes(challenge)
    start = buf.find(NONCE_PREFIX)
    if start == -1:
        return None

    start += len(NONCE_PREFIX)
    end = buf.find(NONCE_DELIMITER, start)
    if end == -1:
        return buf[start:]
    return buf[start:end]


def to_utc(t: datetime.datetime) -> datetime.datetime:
    """Normalize a datetime to UTC; naive values are taken as UTC."""
    if t.tzinfo is None:
        return t.replace(tzinfo=datetime.timezone.utc)
    return t.astimezone(datetime.timezone.utc)


def format_timestamp(t: datetime.datetime) -> str:
    """Format as ISO 8601 with milliseconds, e.g. 2020-06-09T22:41:51.000Z."""
    t = to_utc(t)
    return t.strftime("%Y-%m-%dT%H:%M:%S.") + f"{t.microsecond // 1000:03d}Z"


def format_response(
    signature: str,
    access_key: str,
    amz_date: str,
    session_token: Optional[str] = None,
) -> bytes:
    """Build the challenge response; session_token is always present."""
    return (
        f"signature={signature},"
        f"access_key={access_key},"
        f"amzdate={amz_date},"
        f"session_token={session_token or ''}"
    ).encode("utf-8")


class SigV4Signer:
    """
    SigV4 signer for the SASL nonce.

    Attributes:
        region: AWS region (e.g., "us-west-2")
        service: Signing service name, "cassandra" for Keyspaces
        credentials: AWS credentials for signing
    """

    ALGORITHM = "AWS4-HMAC-SHA256"

    def __init__(
        self,
        region: str,
        credentials: AWSCredentials,
        service: str = SERVICE_NAME,
    ):
        self.region = region
        self.service = service
        self.credentials = credentials

    def _sign(self, key: bytes, msg: str) -> bytes:
        """Create HMAC-SHA256 signature."""
        return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()

    def _get_signature_key(self, date_stamp: str) -> bytes:
        """
        Derive the signing key for SigV4.

        Args:
            date_stamp: Date in YYYYMMDD format

        Returns:
            Derived signing key
        """
        k_date = self._sign(
            f"AWS4{self.credentials.secret_key}".encode("utf-8"),
            date_stamp
        )
        k_region = self._sign(k_date, self.region)
        k_service = self._sign(k_region, self.service)
        k_signing = self._sign(k_service, "aws4_request")
        return k_signing

    def _hash_payload(self, payload: bytes) -> str:
        """Create SHA256 hash of the payload."""
        return hashlib.sha256(payload).hexdigest()

    def _credential_scope(self, date_stamp: str) -> str:
        return f"{date_stamp}/{self.region}/{self.service}/aws4_request"

    def _create_canonical_request(
        self,
        amz_date: str,
        credential_scope: str,
        payload_hash: str,
    ) -> str:
        """
        Create the canonical request string for the authenticate call.

        Args:
            amz_date: Timestamp in ISO 8601 format
            credential_scope: date/region/service/aws4_request
            payload_hash: SHA256 hash of the nonce

        Returns:
            Canonical request string
        """
        query = "&".join([
            f"X-Amz-Algorithm={self.ALGORITHM}",
            f"X-Amz-Credential={self.credentials.access_key}%2F{quote(credential_scope, safe='')}",
            f"X-Amz-Date={quote(amz_date, safe='')}",
            f"X-Amz-Expires={EXPIRES_SECONDS}",
        ])

        return "\n".join([
            "PUT",
            "/authenticate",
            query,
            f"host:{self.service}",
            "",
            "host",
            payload_hash,
        ])

    def _create_string_to_sign(
        self,
        amz_date: str,
        credential_scope: str,
        canonical_request: str,
    ) -> str:
        """Create the string to sign for SigV4."""
        return "\n".join([
            self.ALGORITHM,
            amz_date,
            credential_scope,
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ])

    def compute_signature(self, nonce: bytes, t: datetime.datetime) -> str:
        """
        Compute the lowercase hex signature for a nonce.

        Args:
            nonce: Nonce bytes taken from the server challenge
            t: Signing time

        Returns:
            64 character hex signature
        """
        t = to_utc(t)
        amz_date = format_timestamp(t)
        date_stamp = t.strftime("%Y%m%d")
        credential_scope = self._credential_scope(date_stamp)

        canonical_request = self._create_canonical_request(
            amz_date=amz_date,
            credential_scope=credential_scope,
            payload_hash=self._hash_payload(nonce),
        )
        string_to_sign = self._create_string_to_sign(
            amz_date=amz_date,
            credential_scope=credential_scope,
            canonical_request=canonical_request,
        )

        signing_key = self._get_signature_key(date_stamp)
        return hmac.new(
            signing_key,
            string_to_sign.encode("utf-8"),
            hashlib.sha256
        ).hexdigest()

    def sign_challenge(self, nonce: bytes, t: datetime.datetime) -> bytes:
        """
        Produce the full challenge response buffer.

        Args:
            nonce: Nonce bytes taken from the server challenge
            t: Signing time

        Returns:
            ``signature=...,access_key=...,amzdate=...,session_token=...``
        """
        return format_response(
            signature=self.compute_signature(nonce, t),
            access_key=self.credentials.access_key,
            amz_date=format_timestamp(t),
            session_token=self.credentials.session_token,
        )


def sign_nonce(
    nonce: bytes,
    region: str,
    credentials: AWSCredentials,
    t: datetime.datetime,
) -> bytes:
    """
    Convenience function to sign a nonce in one call.

    Args:
        nonce: Nonce bytes
        region: AWS region
        credentials: AWS credentials
        t: Signing time

    Returns:
        Challenge response buffer
    """
    return SigV4Signer(region=region, credentials=credentials).sign_challenge(nonce, t)
