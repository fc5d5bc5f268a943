"""Unified configuration schema for storyblok_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the Storyblok connection, state persistence, logging and the
collections to synchronise.

Usage:
    from storyblok_sync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    for name, collection in unified.collections.items():
        ...
"""

from __future__ import annotations

import importlib
import logging
from typing import Annotated, Any, Callable, Literal, Union

from pydantic import BaseModel, Field, field_validator

from .sync.models import SortBy
from .sync.ordering import parse_sort_by

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StoryblokConfig(BaseModel):
    """Storyblok connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    access_token: str | None = Field(
        default=None, description="Content Delivery API access token"
    )
    region: str | None = Field(
        default=None, description="Space region (eu, us, ap, ca, cn)"
    )
    api_url: str | None = Field(
        default=None, description="Explicit API base URL (overrides region)"
    )
    timeout: float = Field(
        default=30.0, gt=0, description="Request timeout in seconds"
    )
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent requests to the Storyblok API (1-100)",
    )
    per_page: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Page size used when paginating list endpoints (1-100)",
    )

    model_config = {"frozen": True}


class StateConfig(BaseModel):
    """Where collection state files are kept."""

    dir: str = Field(
        default=".storyblok_sync/state",
        description="Directory holding one JSON state file per collection",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Collection models
# ---------------------------------------------------------------------------


def _import_callable(path: str) -> Callable[..., Any]:
    """Import ``package.module:attribute`` and return the attribute."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(
            f"custom_sort '{path}' must use the form 'package.module:function'"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"custom_sort '{path}': {e}") from None
    try:
        target = getattr(module, attr)
    except AttributeError:
        raise ValueError(
            f"custom_sort '{path}': module '{module_name}' has no attribute '{attr}'"
        ) from None
    if not callable(target):
        raise ValueError(f"custom_sort '{path}' is not callable")
    return target


class StoriesCollectionConfig(BaseModel):
    """A collection fed from ``cdn/stories``.

    Attributes:
        content_types: Content types (component names) fetched one after
            another.  ``None`` fetches all stories in a single pass.
        use_uuids: Key entries by ``uuid`` instead of ``full_slug``.
        sort_by: ``field:asc|desc`` descriptor used to keep the collection
            ordered across incremental updates.  Standard descriptors
            come back as ``SortBy`` members.
        custom_sort: Three-way comparison ``(a, b) -> int``; either a
            callable or a ``package.module:function`` import path.  Wins
            over every ``sort_by``.
        storyblok_params: Extra query parameters sent with every stories
            request (``version``, ``starts_with``, legacy ``sort_by`` ...).
    """

    kind: Literal["stories"] = "stories"
    content_types: list[str] | None = None
    use_uuids: bool = False
    sort_by: SortBy | str | None = None
    custom_sort: Callable[[dict, dict], int] | None = None
    storyblok_params: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("sort_by")
    @classmethod
    def _check_sort_by(cls, value: str | None) -> SortBy | str | None:
        if value is None:
            return None
        if parse_sort_by(value) is None:
            raise ValueError(
                f"Invalid sort_by '{value}': expected 'field:asc' or 'field:desc'"
            )
        try:
            return SortBy(value)
        except ValueError:
            # Not a standard descriptor: the field is read from content
            return value

    @field_validator("custom_sort", mode="before")
    @classmethod
    def _resolve_custom_sort(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _import_callable(value)
        return value

    @field_validator("storyblok_params")
    @classmethod
    def _check_params(cls, value: dict[str, Any]) -> dict[str, Any]:
        legacy = value.get("sort_by")
        if legacy is not None and parse_sort_by(str(legacy)) is None:
            raise ValueError(
                f"Invalid storyblok_params.sort_by '{legacy}': "
                "expected 'field:asc' or 'field:desc'"
            )
        return value

    @property
    def version(self) -> str | None:
        """Requested content version (``draft`` or ``published``)."""
        return self.storyblok_params.get("version")


class DatasourceCollectionConfig(BaseModel):
    """A collection fed from ``cdn/datasource_entries``.

    Attributes:
        datasource: Datasource slug.
        dimension: Optional dimension whose values are returned.
        switch_names_and_values: Key entries by ``value`` (body ``name``)
            instead of by ``name`` (body ``value``).
    """

    kind: Literal["datasource"] = "datasource"
    datasource: str = Field(min_length=1)
    dimension: str | None = None
    switch_names_and_values: bool = False

    model_config = {"frozen": True}


CollectionConfig = Annotated[
    Union[StoriesCollectionConfig, DatasourceCollectionConfig],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid; it just has no collections to sync.
    """

    storyblok: StoryblokConfig = Field(default_factory=StoryblokConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    collections: dict[str, CollectionConfig] = Field(default_factory=dict)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    unified = UnifiedConfig(**raw_data)
    logger.debug(
        "Configured collections: %s",
        ", ".join(unified.collections) or "(none)",
    )
    return unified
