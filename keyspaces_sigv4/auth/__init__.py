"""
Authentication primitives for the Keyspaces SigV4 authenticator.

This module provides credential resolution and SigV4 signing of the SASL nonce.
"""

from .credentials import (
    AWSCredentials,
    CredentialChain,
    SessionCredentialProvider,
    StaticCredentialProvider,
)
from .sigv4 import (
    SigV4Signer,
    extract_nonce,
    format_response,
    format_timestamp,
    sign_nonce,
)

__all__ = [
    "AWSCredentials",
    "CredentialChain",
    "SessionCredentialProvider",
    "StaticCredentialProvider",
    "SigV4Signer",
    "extract_nonce",
    "format_response",
    "format_timestamp",
    "sign_nonce",
]
