"""Connection configuration for the Storyblok Content Delivery API.

Reads connection settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    STORYBLOK_ACCESS_TOKEN: Content Delivery API access token (required)
    STORYBLOK_REGION: Space region: eu, us, ap, ca or cn (optional, default: eu)
    STORYBLOK_API_URL: Explicit API base URL, overrides region (optional)
    STORYBLOK_TIMEOUT: Request timeout in seconds (optional, default: 30)
    STORYBLOK_MAX_PARALLEL_REQUESTS: Max parallel HTTP requests (optional, default: 5)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

REGION_URLS: dict[str, str] = {
    "eu": "https://api.storyblok.com/v2",
    "us": "https://api-us.storyblok.com/v2",
    "ap": "https://api-ap.storyblok.com/v2",
    "ca": "https://api-ca.storyblok.com/v2",
    "cn": "https://app.storyblokchina.cn/v2",
}


@dataclass
class Config:
    access_token: str
    region: str = "eu"
    api_url: str | None = None
    timeout: float = 30.0
    max_parallel_requests: int = 5
    per_page: int = 100

    @property
    def base_url(self) -> str:
        """API base URL: the explicit ``api_url`` or the region default."""
        if self.api_url:
            return self.api_url.rstrip("/")
        return REGION_URLS[self.region]


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the token is empty, the region is unknown, the API
            URL is malformed, or a numeric setting is out of range.
    """
    config.access_token = config.access_token.strip()
    if not config.access_token:
        raise ValueError(
            "Storyblok access token cannot be empty. "
            "Set STORYBLOK_ACCESS_TOKEN environment variable."
        )

    config.region = config.region.strip().lower()
    if config.region not in REGION_URLS:
        raise ValueError(
            f"Invalid Storyblok region '{config.region}': "
            f"must be one of {', '.join(sorted(REGION_URLS))}"
        )

    if config.api_url:
        config.api_url = config.api_url.strip()
        if not config.api_url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid API URL '{config.api_url}': must start with http:// or https://"
            )
        if not urlparse(config.api_url).hostname:
            raise ValueError(
                f"Invalid API URL '{config.api_url}': URL must include a hostname"
            )
        config.api_url = config.api_url.removesuffix("/")

    if config.timeout <= 0:
        raise ValueError(
            f"Invalid timeout '{config.timeout}': must be a positive number of seconds"
        )

    if not (1 <= config.max_parallel_requests <= 100):
        raise ValueError(
            f"Invalid max_parallel_requests '{config.max_parallel_requests}': "
            "must be a number between 1 and 100"
        )

    if not (1 <= config.per_page <= 100):
        raise ValueError(
            f"Invalid per_page '{config.per_page}': must be a number between 1 and 100"
        )


def _env_number(key: str, cast, fallback):
    """Return *key* from the environment cast with *cast*, else *fallback*."""
    raw = os.getenv(key)
    if raw is None:
        return fallback
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be a number") from None


def load_config(
    access_token: str | None = None,
    region: str | None = None,
    api_url: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        access_token: Override access token (takes precedence over env var and YAML).
        region: Override region (takes precedence over env var and YAML).
        api_url: Override API base URL.
        yaml_fallbacks: Dict of values from the YAML ``storyblok`` section.
            Used as fallback when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the access token is missing after checking all
            sources, or any value fails validation.
    """
    fb = yaml_fallbacks or {}

    token = (
        access_token
        or os.getenv("STORYBLOK_ACCESS_TOKEN")
        or fb.get("access_token")
    )
    if not token:
        raise ValueError(
            "Storyblok access token not found. Set STORYBLOK_ACCESS_TOKEN "
            "environment variable, pass --token CLI argument, or add "
            "'access_token' to config.yml."
        )

    final_region = (
        region or os.getenv("STORYBLOK_REGION") or fb.get("region") or "eu"
    )
    final_api_url = (
        api_url or os.getenv("STORYBLOK_API_URL") or fb.get("api_url")
    )

    # Numeric fields: env > YAML > default (no CLI args for these)
    timeout = _env_number(
        "STORYBLOK_TIMEOUT", float, float(fb.get("timeout", 30.0))
    )
    max_parallel = _env_number(
        "STORYBLOK_MAX_PARALLEL_REQUESTS",
        int,
        int(fb.get("max_parallel_requests", 5)),
    )

    config = Config(
        access_token=token,
        region=final_region,
        api_url=final_api_url,
        timeout=timeout,
        max_parallel_requests=max_parallel,
        per_page=int(fb.get("per_page", 100)),
    )

    validate_config(config)

    return config
