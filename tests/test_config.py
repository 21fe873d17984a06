"""
Tests for dashboard configuration.

Tests cover:
- Silent fallback of invalid option values
- Legacy time range spellings
- Settings / JSON file providers
- Request signature parameters
"""

import json

from content_dashboard.core.config import (
    DashboardConfig,
    JsonFileConfigProvider,
    Settings,
    SettingsConfigProvider,
    StaticConfigProvider,
    TimeRange,
    build_config_provider,
)


class TestDashboardConfigDefaults:
    """Invalid values fall back to defaults instead of failing."""

    def test_defaults(self):
        config = DashboardConfig()

        assert config.recently_published_days == 7
        assert config.needs_update_months == 6
        assert config.time_to_publish_days == 30
        assert config.default_time_range == TimeRange.PAST_YEAR
        assert config.show_upcoming_releases is True

    def test_non_positive_windows_fall_back(self):
        config = DashboardConfig(recently_published_days=0, needs_update_months=-3, time_to_publish_days="soon")

        assert config.recently_published_days == 7
        assert config.needs_update_months == 6
        assert config.time_to_publish_days == 30

    def test_numeric_strings_accepted(self):
        assert DashboardConfig(recently_published_days="14").recently_published_days == 14

    def test_bool_is_not_a_window(self):
        assert DashboardConfig(needs_update_months=True).needs_update_months == 6

    def test_content_type_lists(self):
        config = DashboardConfig(
            tracked_content_types=["blogPost", " article ", "", 3, "blogPost"],
            excluded_content_types="page, navigation",
        )

        assert config.tracked_content_types == ("blogPost", "article")
        assert config.excluded_content_types == ("page", "navigation")

    def test_non_list_content_types_are_empty(self):
        assert DashboardConfig(excluded_content_types={"page": True}).excluded_content_types == ()

    def test_unknown_time_range(self):
        assert DashboardConfig(default_time_range="decade").default_time_range == TimeRange.PAST_YEAR

    def test_legacy_time_range(self):
        assert DashboardConfig(default_time_range="6months").default_time_range == TimeRange.PAST_6_MONTHS
        assert DashboardConfig(default_time_range="year").default_time_range == TimeRange.PAST_YEAR
        assert DashboardConfig(default_time_range="all").default_time_range == TimeRange.ALL

    def test_chart_start_month(self):
        assert DashboardConfig(chart_start_month="2025-03").chart_start_month == "2025-03"
        assert DashboardConfig(chart_start_month="2025-13").chart_start_month is None
        assert DashboardConfig(chart_start_month="March").chart_start_month is None

    def test_show_upcoming_releases_requires_bool(self):
        assert DashboardConfig(show_upcoming_releases="no").show_upcoming_releases is True
        assert DashboardConfig(show_upcoming_releases=False).show_upcoming_releases is False


class TestFromMapping:
    """Tests for loosely-typed stored options."""

    def test_camel_case_keys(self):
        config = DashboardConfig.from_mapping({"needsUpdateMonths": 12, "excludedContentTypes": ["page"]})

        assert config.needs_update_months == 12
        assert config.excluded_content_types == ("page",)

    def test_non_dict_gives_defaults(self):
        assert DashboardConfig.from_mapping(["not", "a", "dict"]) == DashboardConfig()
        assert DashboardConfig.from_mapping(None) == DashboardConfig()

    def test_unknown_keys_ignored(self):
        assert DashboardConfig.from_mapping({"colour": "blue"}) == DashboardConfig()


class TestSignatureParams:
    """Tests for signature_params."""

    def test_order_independent_lists(self):
        a = DashboardConfig(excluded_content_types=["page", "navigation"])
        b = DashboardConfig(excluded_content_types=["navigation", "page"])

        assert a.signature_params() == b.signature_params()

    def test_option_changes_signature(self):
        assert DashboardConfig().signature_params() != DashboardConfig(recently_published_days=30).signature_params()


class TestProviders:
    """Tests for config providers."""

    def test_static(self):
        config = DashboardConfig(needs_update_months=3)

        assert StaticConfigProvider(config).get_config() is config

    def test_settings_provider(self):
        s = Settings(NEEDS_UPDATE_MONTHS=9, EXCLUDED_CONTENT_TYPES="page,navigation", DEFAULT_TIME_RANGE="all")

        config = SettingsConfigProvider(s).get_config()

        assert config.needs_update_months == 9
        assert config.excluded_content_types == ("page", "navigation")
        assert config.default_time_range == TimeRange.ALL

    def test_json_file(self, tmp_path):
        path = tmp_path / "dashboard.json"
        path.write_text(json.dumps({"recentlyPublishedDays": 14, "defaultTimeRange": "past-6-months"}))

        config = JsonFileConfigProvider(path).get_config()

        assert config.recently_published_days == 14
        assert config.default_time_range == TimeRange.PAST_6_MONTHS

    def test_missing_file_uses_fallback(self, tmp_path):
        fallback = StaticConfigProvider(DashboardConfig(needs_update_months=2))

        config = JsonFileConfigProvider(tmp_path / "nope.json", fallback=fallback).get_config()

        assert config.needs_update_months == 2

    def test_corrupt_file_uses_fallback(self, tmp_path):
        path = tmp_path / "dashboard.json"
        path.write_text("{not json")

        assert JsonFileConfigProvider(path).get_config() == DashboardConfig()

    def test_undecodable_file_uses_fallback(self, tmp_path):
        path = tmp_path / "dashboard.json"
        path.write_bytes(b"\xff\xfe{}")
        fallback = StaticConfigProvider(DashboardConfig(needs_update_months=2))

        config = JsonFileConfigProvider(path, fallback=fallback).get_config()

        assert config.needs_update_months == 2

    def test_build_config_provider(self, tmp_path):
        assert isinstance(build_config_provider(Settings()), SettingsConfigProvider)

        s = Settings(DASHBOARD_CONFIG_PATH=str(tmp_path / "dashboard.json"))
        assert isinstance(build_config_provider(s), JsonFileConfigProvider)
