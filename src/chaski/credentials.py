"""GitHub credential loading.

The token is fetched once at startup from a public JSON document, where it
sits in scrambled form under a fixed key, and unscrambled with the seed
from config. The resulting Credential is immutable and handed to every
component that talks to GitHub; nothing else holds or recomputes it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from chaski.config import ChaskiConfig
from chaski.decoder import DecoderRing
from chaski.errors import CredentialLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """Plaintext GitHub token. Never logged."""

    token: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("credential token must be non-empty")

    @property
    def authorization(self) -> str:
        return f"token {self.token}"


@dataclass(frozen=True)
class CredentialResult:
    """Startup outcome: either a credential or the reason there is none."""

    credential: Credential | None = None
    error: CredentialLoadError | None = None

    @property
    def ok(self) -> bool:
        return self.credential is not None


async def fetch_credential(config: ChaskiConfig, client: httpx.AsyncClient) -> Credential:
    """Fetch and unscramble the token. Raises CredentialLoadError on any failure."""
    logger.info("Fetching GitHub token from %s (key: %s)", config.token_url, config.token_key)
    try:
        response = await client.get(config.token_url)
        response.raise_for_status()
        document = response.json()
    except httpx.HTTPStatusError as exc:
        raise CredentialLoadError(
            f"Token document returned HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise CredentialLoadError(f"Token document unreachable: {exc}") from exc
    except ValueError as exc:
        raise CredentialLoadError("Token document is not valid JSON") from exc

    if not isinstance(document, dict):
        raise CredentialLoadError("Token document is not a JSON object")
    scrambled = document.get(config.token_key)
    if not isinstance(scrambled, str) or not scrambled:
        raise CredentialLoadError(f"Token document has no usable {config.token_key!r} field")

    credential = Credential(DecoderRing(config.shuffle_seed).decode(scrambled))
    logger.info("GitHub token loaded")
    return credential


async def load_credential(
    config: ChaskiConfig,
    client: httpx.AsyncClient | None = None,
) -> CredentialResult:
    """Load the credential as a typed result; the caller picks the failure policy."""
    try:
        if client is not None:
            return CredentialResult(credential=await fetch_credential(config, client))
        async with httpx.AsyncClient(timeout=config.http_timeout) as own_client:
            return CredentialResult(credential=await fetch_credential(config, own_client))
    except CredentialLoadError as exc:
        logger.error("Failed to fetch or decode GitHub token: %s", exc)
        return CredentialResult(error=exc)
