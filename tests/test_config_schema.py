"""Tests for the unified config schema (config_schema.py).

Covers every Pydantic model (UnifiedConfig, StoryblokConfig,
StoriesCollectionConfig, DatasourceCollectionConfig, LoggingConfig,
StateConfig) and the build_config() factory.
"""

import operator

import pytest
from pydantic import ValidationError

from storyblok_sync.config_schema import (
    DatasourceCollectionConfig,
    LoggingConfig,
    StoriesCollectionConfig,
    StoryblokConfig,
    UnifiedConfig,
    build_config,
)
from storyblok_sync.sync.models import SortBy

# ---------------------------------------------------------------------------
# UnifiedConfig tests
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    def test_empty_config_produces_valid_defaults(self):
        config = UnifiedConfig()
        assert config.storyblok.access_token is None
        assert config.state.dir == ".storyblok_sync/state"
        assert config.logging.level == "INFO"
        assert config.collections == {}

    def test_collections_discriminated_on_kind(self):
        config = UnifiedConfig(
            collections={
                "blog": {"kind": "stories", "content_types": ["post"]},
                "categories": {"kind": "datasource", "datasource": "cats"},
            }
        )
        assert isinstance(config.collections["blog"], StoriesCollectionConfig)
        assert isinstance(
            config.collections["categories"], DatasourceCollectionConfig
        )

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            UnifiedConfig(collections={"x": {"kind": "assets"}})

    def test_frozen_model_prevents_mutation(self):
        config = UnifiedConfig()
        with pytest.raises(ValidationError):
            config.logging = LoggingConfig(level="DEBUG")


class TestStoryblokConfig:
    def test_all_fields_optional_zero_config(self):
        config = StoryblokConfig()
        assert config.region is None
        assert config.timeout == 30.0
        assert config.max_parallel_requests == 5
        assert config.per_page == 100

    @pytest.mark.parametrize(
        "field, value",
        [("timeout", 0), ("max_parallel_requests", 0), ("per_page", 101)],
    )
    def test_ranges_enforced(self, field, value):
        with pytest.raises(ValidationError):
            StoryblokConfig(**{field: value})


# ---------------------------------------------------------------------------
# Collection configs
# ---------------------------------------------------------------------------


class TestStoriesCollectionConfig:
    def test_defaults(self):
        config = StoriesCollectionConfig()
        assert config.kind == "stories"
        assert config.content_types is None
        assert config.use_uuids is False
        assert config.storyblok_params == {}
        assert config.version is None

    def test_version_from_storyblok_params(self):
        config = StoriesCollectionConfig(storyblok_params={"version": "draft"})
        assert config.version == "draft"

    @pytest.mark.parametrize("value", ["created_at", "created_at:latest", ""])
    def test_invalid_sort_by_rejected(self, value):
        with pytest.raises(ValidationError, match="sort_by"):
            StoriesCollectionConfig(sort_by=value)

    def test_standard_sort_by_becomes_enum(self):
        config = StoriesCollectionConfig(sort_by="first_published_at:desc")
        assert config.sort_by is SortBy.FIRST_PUBLISHED_AT_DESC

    def test_content_field_sort_by_stays_string(self):
        config = StoriesCollectionConfig(sort_by="priority:asc")
        assert config.sort_by == "priority:asc"
        assert not isinstance(config.sort_by, SortBy)

    def test_invalid_legacy_sort_by_rejected(self):
        with pytest.raises(ValidationError, match="storyblok_params.sort_by"):
            StoriesCollectionConfig(storyblok_params={"sort_by": "name"})

    def test_custom_sort_import_path(self):
        config = StoriesCollectionConfig(custom_sort="operator:sub")
        assert config.custom_sort is operator.sub

    def test_custom_sort_callable(self):
        def compare(a, b):
            return 0

        assert StoriesCollectionConfig(custom_sort=compare).custom_sort is compare

    @pytest.mark.parametrize(
        "path",
        ["operator.sub", "no_such_module_xyz:fn", "operator:no_such_fn"],
    )
    def test_custom_sort_bad_paths(self, path):
        with pytest.raises(ValidationError, match="custom_sort"):
            StoriesCollectionConfig(custom_sort=path)


class TestDatasourceCollectionConfig:
    def test_datasource_required(self):
        with pytest.raises(ValidationError):
            DatasourceCollectionConfig()
        with pytest.raises(ValidationError):
            DatasourceCollectionConfig(datasource="")

    def test_defaults(self):
        config = DatasourceCollectionConfig(datasource="cats")
        assert config.dimension is None
        assert config.switch_names_and_values is False


# ---------------------------------------------------------------------------
# build_config()
# ---------------------------------------------------------------------------


class TestBuildConfig:
    def test_empty_dict_returns_defaults(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections_fill_defaults(self):
        config = build_config({"storyblok": {"region": "us"}})
        assert config.storyblok.region == "us"
        assert config.logging.level == "INFO"

    def test_full_raw_dict(self):
        config = build_config(
            {
                "storyblok": {"access_token": "tok", "max_parallel_requests": 2},
                "state": {"dir": "/var/lib/sb"},
                "logging": {"level": "DEBUG", "file": "/tmp/sb.log"},
                "collections": {
                    "blog": {
                        "kind": "stories",
                        "sort_by": "first_published_at:desc",
                        "storyblok_params": {"version": "published"},
                    }
                },
            }
        )
        assert config.storyblok.max_parallel_requests == 2
        assert config.state.dir == "/var/lib/sb"
        assert config.logging.file == "/tmp/sb.log"
        assert config.collections["blog"].sort_by == "first_published_at:desc"
