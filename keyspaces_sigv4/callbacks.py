"""
Callback-style driving of the SASL steps.

Transports that expect ``callback(error, buffer)`` completion can use these
helpers instead of awaiting the authenticator. The callback is invoked exactly
once, either with an error or with the response buffer, never both.
"""

import asyncio
import logging
from typing import Callable, Optional

from .exceptions import SigV4AuthError
from .provider import SigV4Authenticator

logger = logging.getLogger(__name__)

SaslCallback = Callable[[Optional[BaseException], Optional[bytes]], None]


def initial_response(authenticator: SigV4Authenticator, callback: SaslCallback) -> None:
    """Invoke ``callback`` synchronously with the initial response."""
    try:
        buffer = authenticator.initial_response()
    except SigV4AuthError as e:
        callback(e, None)
        return
    callback(None, buffer)


def evaluate_challenge(
    authenticator: SigV4Authenticator,
    challenge: bytes,
    callback: SaslCallback,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> Optional[asyncio.Task]:
    """
    Evaluate a challenge and report the result through ``callback``.

    A challenge without a nonce is reported synchronously and nothing is
    scheduled. Otherwise credential resolution and signing run as a task on
    ``loop`` (the running loop by default) and the callback fires when it
    finishes.

    Args:
        authenticator: Authenticator for this connection
        challenge: Raw challenge bytes from the server
        callback: Called as ``callback(error, None)`` or ``callback(None, buffer)``
        loop: Event loop to schedule on

    Returns:
        The scheduled task, or None if the challenge was rejected up front
    """
    # Without a loop the authenticator is left untouched
    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            callback(e, None)
            return None

    try:
        nonce = authenticator.prepare_challenge(challenge)
    except SigV4AuthError as e:
        callback(e, None)
        return None

    task = loop.create_task(authenticator.complete_challenge(nonce))

    def deliver(done: asyncio.Task) -> None:
        if done.cancelled():
            callback(asyncio.CancelledError(), None)
            return
        error = done.exception()
        if error is not None:
            callback(error, None)
        else:
            callback(None, done.result())

    task.add_done_callback(deliver)
    logger.debug("Scheduled SigV4 challenge evaluation")
    return task
