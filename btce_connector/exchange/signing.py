"""
Request signing for the authenticated trade API.

Every trade call carries a ``nonce`` the exchange requires to grow strictly
from one request to the next for a given key, and a ``Sign`` header holding
the hex HMAC-SHA512 of the exact form body, keyed by the API secret.
"""

from __future__ import annotations

import hashlib
import hmac
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=UTF-8"

# Nonces are wall-clock deciseconds counted from 2024-01-01 UTC. The trade
# API rejects anything above NONCE_MAX, which this epoch reaches in 2037.
NONCE_RESOLUTION = 10
NONCE_OFFSET = 1_704_067_200 * NONCE_RESOLUTION
NONCE_MAX = 4_294_967_294


class NonceGenerator:
    """
    Strictly increasing nonce source seeded from wall-clock time.

    When two nonces are requested inside the same clock tick (or the clock
    steps backwards) the generator hands out ``last + 1`` instead, so the
    sequence never repeats or goes down for the lifetime of the process.
    """

    def __init__(self, resolution: int = NONCE_RESOLUTION, offset: int = NONCE_OFFSET):
        self.resolution = resolution
        self.offset = offset
        self._last = 0
        self._lock = threading.Lock()

    def _from_clock(self) -> int:
        return int(time.time() * self.resolution) - self.offset

    def next(self) -> int:
        with self._lock:
            nonce = max(self._from_clock(), self._last + 1)
            if nonce > NONCE_MAX:
                raise OverflowError(f"nonce {nonce} exceeds exchange maximum {NONCE_MAX}")
            self._last = nonce
            return nonce


# Shared by all clients in the process so that two instances using the
# same key cannot hand out the same nonce.
default_nonce_generator = NonceGenerator()


def sign_body(body: str, secret: str) -> str:
    """Hex HMAC-SHA512 of ``body`` keyed by ``secret``."""
    return hmac.new(
        secret.encode("utf-8"),
        body.encode("utf-8"),
        digestmod=hashlib.sha512,
    ).hexdigest()


@dataclass(frozen=True)
class SignedEnvelope:
    """One ready-to-send trade request: the form body and its headers."""
    method: str
    nonce: int
    body: str
    headers: Dict[str, str]


def build_signed_envelope(
    params: Mapping[str, Any],
    api_key: str,
    api_secret: str,
    nonce_generator: Optional[NonceGenerator] = None,
) -> SignedEnvelope:
    """Stamp a fresh nonce onto ``params``, encode and sign the result."""
    generator = nonce_generator or default_nonce_generator
    payload = dict(params)
    payload["nonce"] = generator.next()
    body = urlencode(payload)
    headers = {
        "Content-Type": FORM_CONTENT_TYPE,
        "Sign": sign_body(body, api_secret),
        "Key": api_key,
    }
    return SignedEnvelope(
        method=str(payload.get("method", "")),
        nonce=payload["nonce"],
        body=body,
        headers=headers,
    )
