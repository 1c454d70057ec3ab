"""Settings for the ViaggiaTreno client."""

import os
from dataclasses import dataclass
from typing import Self

BASE_URL = "http://www.viaggiatreno.it/infomobilita/resteasy/viaggiatreno"
USER_AGENT = "viaggiatreno-mcp/0.1.0"
CATEGORIES = "ES*,IC,EXP,EC,EN,REG"


@dataclass(frozen=True)
class ViaggiaTrenoSettings:
    """Immutable configuration shared by every request the client makes."""

    base_url: str = BASE_URL
    timeout: float = 30.0
    user_agent: str = USER_AGENT
    categories: str = CATEGORIES
    # None means one worker per segment (unbounded fan-out)
    max_concurrency: int | None = 8

    @classmethod
    def from_env(cls) -> Self:
        """Build settings from VIAGGIATRENO_* environment variables."""
        base_url = os.environ.get("VIAGGIATRENO_BASE_URL", cls.base_url)
        timeout = float(os.environ.get("VIAGGIATRENO_TIMEOUT", cls.timeout))

        raw_limit = os.environ.get("VIAGGIATRENO_MAX_CONCURRENCY")
        if raw_limit is None:
            max_concurrency = cls.max_concurrency
        elif raw_limit.strip() in ("", "0"):
            max_concurrency = None
        else:
            max_concurrency = int(raw_limit)
            if max_concurrency < 0:
                raise ValueError(
                    f"VIAGGIATRENO_MAX_CONCURRENCY must be positive, got {raw_limit!r}"
                )

        return cls(base_url=base_url, timeout=timeout, max_concurrency=max_concurrency)
