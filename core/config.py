"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TokenGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. token_length -> TOKEN_LENGTH). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Bad values stop the process at startup
      rather than surfacing later as a bcrypt or length-check failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokengate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'tokengate.db'}"

# bcrypt accepts log2 rounds in this closed range only.
_BCRYPT_MIN_COST = 4
_BCRYPT_MAX_COST = 31


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    range rules at startup.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `token_length` reads from TOKEN_LENGTH, `bcrypt_cost` from BCRYPT_COST.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Every issued plaintext is padded or truncated to exactly this length,
    # and the authenticator rejects any other length before touching the DB.
    token_length: int = 26
    # Default lifetime for tokens issued by login and the CLI (24 hours).
    token_ttl_seconds: int = 86400

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_cost: int = 12

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_ranges(self) -> "Settings":
        """Reject values that would only fail later, deep inside a request.

        token_length < 1 would make every header fail the length check.
        bcrypt_cost outside 4..31 makes bcrypt.gensalt() raise on first use.
        A non-positive default TTL would issue tokens that are already expired.
        """
        if self.token_length < 1:
            raise ValueError("TOKEN_LENGTH must be at least 1.")
        if not _BCRYPT_MIN_COST <= self.bcrypt_cost <= _BCRYPT_MAX_COST:
            raise ValueError(f"BCRYPT_COST must be between {_BCRYPT_MIN_COST} and {_BCRYPT_MAX_COST}.")
        if self.token_ttl_seconds <= 0:
            raise ValueError("TOKEN_TTL_SECONDS must be positive.")
        if self.debug and self.bcrypt_cost < 10:
            logger.warning("WARNING: BCRYPT_COST=%d is below 10. Use this for tests only.", self.bcrypt_cost)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
