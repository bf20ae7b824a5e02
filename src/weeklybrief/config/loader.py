"""Settings for weeklybrief.

defaults live on the pydantic models so the package works with zero config.
a yaml file can override any of them, and a handful of env vars override the
yaml - that's what the deploy targets actually set.

the cost ceiling and the timeouts used to be magic numbers scattered through
the functions. they're config now but the defaults are the same values.
"""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from weeklybrief.errors import ConfigError


class _Strict(BaseModel):
    # typos in the yaml should blow up, not silently fall back to defaults
    model_config = ConfigDict(extra="forbid")


class WarehouseSettings(_Strict):
    """Where queries run and how jobs get labelled."""

    project_id: str = "weekly-brief-dwh"
    # region is pinned on purpose - auto-detect + mismatched dataset region
    # either fails or quietly bills cross-region
    location: str = "asia-northeast1"
    credentials_json: str | None = None  # inline service account json
    credentials_file: str | None = None
    app_label: str = "exec-dashboard"
    environment: str = "prod"


class CostSettings(_Strict):
    max_gb: float = 5.0
    kpi_timeout_s: float = 60.0
    table_timeout_s: float = 30.0
    health_timeout_s: float = 5.0


class CacheSettings(_Strict):
    backend: str = "memory"  # memory, duckdb, firestore
    path: str | None = None  # duckdb file
    ttl_hours: float = 24.0
    collection_suffix: str = "_cache"


class AuthSettings(_Strict):
    audience: str | None = None  # firebase project id


class ReshapeSettings(_Strict):
    # see DESIGN.md open questions - sundays are dropped from weekly totals
    weekly_exclude_sunday: bool = True
    weekly_lookback_months: int = 2
    allow_degraded: bool = False
    utc_offset_hours: float = 9.0  # "today" is a JST day


class ReentrySettings(_Strict):
    """The re-entry dataset whose rows are excluded from every jobseeker count."""

    table: str = "weekly-brief-dwh.datamart.v_entry_users"
    date_column: str = "entry_complete_date"
    entry_type_column: str = "entry_start_type"
    entry_type: str = "pdt1db_to_pdt2_entry_form"
    effective_from: str = "2025-05-14"


class MetricSource(_Strict):
    """One countable thing in the warehouse.

    date_expr and count_expr are sql fragments evaluated against `table`.
    exclude_reentries only makes sense for sources keyed by jobseeker ids.
    """

    label: str
    table: str
    date_expr: str
    count_expr: str
    exclude_reentries: bool = False
    category_column: str | None = None  # business unit filter column, if any


class ChannelRule(_Strict):
    condition: str  # sql boolean over the channel columns
    label: str


def _default_detail_rules() -> list[ChannelRule]:
    # first match wins. listing splits into branded / non-branded, seo into top page / rest
    return [
        ChannelRule(
            condition=(
                "channel_middle_category_nm = 'リスティング' "
                "AND channel_small_category_nm IN ('ブランド', '指名')"
            ),
            label="リスティング_指名",
        ),
        ChannelRule(condition="channel_middle_category_nm = 'リスティング'", label="リスティング_非指名"),
        ChannelRule(condition="channel_small_category_nm LIKE '%Indeed%'", label="Indeed"),
        ChannelRule(
            condition=(
                "channel_middle_category_nm = 'SEO' AND channel_small_category_nm = 'TOPページ'"
            ),
            label="SEO_TOP",
        ),
        ChannelRule(condition="channel_middle_category_nm = 'SEO'", label="SEO_TOP以外"),
    ]


class ChannelSettings(_Strict):
    """How raw channel columns collapse into the overview and detail tables."""

    source: str = "souke"
    large_column: str = "channel_large_category_nm"
    middle_column: str = "channel_middle_category_nm"
    small_column: str = "channel_small_category_nm"
    organic_match: str = "%無料集客%"
    paid_match: str = "%有料集客%"
    organic_label: str = "オーガニック流入"
    paid_label: str = "有料広告流入"
    other_label: str = "その他・不明"
    detail_rules: list[ChannelRule] = Field(default_factory=_default_detail_rules)
    overview_min_base: int = 10
    detail_min_base: int = 5

    def overview_order(self) -> list[str]:
        return [self.paid_label, self.organic_label, self.other_label]


def _default_sources() -> dict[str, MetricSource]:
    return {
        "souke": MetricSource(
            label="Accepted applications",
            table="weekly-brief-dwh.datamart.t_jobseeker_all",
            date_expr="first_determine_date",
            count_expr="CAST(acceptance_flag AS INT64)",
            exclude_reentries=True,
            category_column="business_unit",
        ),
        "naitei": MetricSource(
            label="Job offers",
            table="weekly-brief-dwh.legacy_datamart.v_flow_action_joboffer",
            date_expr="DATE(prospective_date)",
            count_expr="prospective_f",
        ),
    }


class Settings(_Strict):
    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
    cost: CostSettings = Field(default_factory=CostSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    reshape: ReshapeSettings = Field(default_factory=ReshapeSettings)
    reentry: ReentrySettings = Field(default_factory=ReentrySettings)
    sources: dict[str, MetricSource] = Field(default_factory=_default_sources)
    channels: ChannelSettings = Field(default_factory=ChannelSettings)
    kpi_source: str = "souke"  # what POST /run-kpi counts
    chart_families: list[str] = Field(default_factory=lambda: ["souke", "naitei"])

    def source(self, name: str) -> MetricSource:
        try:
            return self.sources[name]
        except KeyError:
            raise KeyError(f"Unknown metric source: {name}") from None


# env var -> (section, field). everything not listed here has to go in yaml
ENV_TO_PATH: dict[str, tuple[str, str]] = {
    "WB_PROJECT_ID": ("warehouse", "project_id"),
    "WB_LOCATION": ("warehouse", "location"),
    "WB_CREDENTIALS_JSON": ("warehouse", "credentials_json"),
    "WB_CREDENTIALS_FILE": ("warehouse", "credentials_file"),
    "WB_ENV": ("warehouse", "environment"),
    "WB_MAX_GB": ("cost", "max_gb"),
    "WB_KPI_TIMEOUT_S": ("cost", "kpi_timeout_s"),
    "WB_TABLE_TIMEOUT_S": ("cost", "table_timeout_s"),
    "WB_CACHE_BACKEND": ("cache", "backend"),
    "WB_CACHE_PATH": ("cache", "path"),
    "WB_CACHE_TTL_HOURS": ("cache", "ttl_hours"),
    "WB_AUTH_AUDIENCE": ("auth", "audience"),
    "WB_WEEKLY_EXCLUDE_SUNDAY": ("reshape", "weekly_exclude_sunday"),
    "WB_ALLOW_DEGRADED": ("reshape", "allow_degraded"),
}


def load_settings(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from defaults, an optional yaml file, then env vars.

    pydantic does the type coercion for env values ("5.5" -> 5.5, "false" -> False)
    so this just has to put the strings in the right place.
    """
    env = os.environ if env is None else env
    data: dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Settings file not found: {path}")
        with open(path) as f:
            try:
                loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ConfigError(f"Settings file must contain a mapping: {path}")
            data = loaded

    for var, (section, field) in ENV_TO_PATH.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        data.setdefault(section, {})[field] = value

    # GOOGLE_CLOUD_PROJECT is what cloud runtimes set - use it if nothing else did
    if "GOOGLE_CLOUD_PROJECT" in env and "project_id" not in data.get("warehouse", {}):
        data.setdefault("warehouse", {})["project_id"] = env["GOOGLE_CLOUD_PROJECT"]

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

    if settings.warehouse.credentials_json:
        try:
            json.loads(settings.warehouse.credentials_json)
        except json.JSONDecodeError as e:
            raise ConfigError(f"WB_CREDENTIALS_JSON is not valid JSON: {e.msg}") from e

    return settings
