"""PAT token loading and rotation.

Rate-limit state is not tracked here: every response carries its own quota
headers and the verifier reads them per request.
"""

import asyncio
import logging
import os

from dotenv import load_dotenv

from . import config

logger = logging.getLogger(__name__)


def load_tokens(env_var: str = config.TOKEN_ENV_VAR) -> list[str]:
    """Read one or more comma-separated tokens from the environment (and .env)."""
    load_dotenv()
    raw = os.environ.get(env_var, "")
    return [t.strip() for t in raw.split(",") if t.strip()]


class TokenRotator:
    def __init__(self, tokens: list[str] = None):
        if tokens is None:
            tokens = load_tokens()
        if not tokens:
            raise RuntimeError(f"{config.TOKEN_ENV_VAR} must be set (in the environment or .env)")
        self.tokens = list(tokens)
        self._index = 0
        self._lock = asyncio.Lock()
        self._total_used = 0
        logger.info(f"Loaded {len(self.tokens)} token(s)")

    @property
    def total_used(self) -> int:
        return self._total_used

    async def get_token(self) -> str:
        async with self._lock:
            token = self.tokens[self._index]
            self._index = (self._index + 1) % len(self.tokens)
            self._total_used += 1
            return token
