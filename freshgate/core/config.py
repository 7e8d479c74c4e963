"""Configuration module for loading project settings and environment variables."""

import os
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from freshgate.models.datatypes import FilterMode, SourcePolicy, TrustTier, parse_hour_window

# Load environment variables from .env file
load_dotenv()

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_FALLBACK_TIERS = {
    TrustTier.HIGH.value: 0.3,
    TrustTier.MEDIUM.value: 0.2,
    TrustTier.LOW.value: 0.0,
}

_POLICY_FIELDS = {f.name for f in fields(SourcePolicy)} - {"source_id"}
_INT_FIELDS = ("max_age_hours", "average_articles_per_day", "assumed_recent_article_count")


def load_config(config_path: str | Path | None = None) -> Dict[str, Any]:
    """
    Load configuration from the specified YAML file.

    Args:
        config_path (str | Path | None): Path to the configuration file. Defaults to
            ``$FRESHGATE_CONFIG``, then "config.yaml".

    Returns:
        Dict[str, Any]: A dictionary containing the configuration settings.
    """
    config_file = Path(config_path or os.getenv("FRESHGATE_CONFIG", DEFAULT_CONFIG_PATH))
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_file}")

    with open(config_file, "r", encoding="utf-8") as file:
        config_data = yaml.safe_load(file)

    if not config_data or not isinstance(config_data, dict):
        raise ValueError(f"Configuration file {config_file} is empty or invalid.")

    return config_data


def _validate_override(source_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(values) - _POLICY_FIELDS
    if unknown:
        raise ValueError(f"sources.{source_id}: unknown keys {sorted(unknown)}")

    for key in _INT_FIELDS:
        if key not in values or (key == "assumed_recent_article_count" and values[key] is None):
            continue
        value = values[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"sources.{source_id}.{key} must be a non-negative integer, got {value!r}")
    if values.get("max_age_hours") == 0:
        raise ValueError(f"sources.{source_id}.max_age_hours must be positive")

    if "typical_publishing_hours" in values:
        parse_hour_window(str(values["typical_publishing_hours"]))
        values["typical_publishing_hours"] = str(values["typical_publishing_hours"])
    if "trust_tier" in values and values["trust_tier"] not in {t.value for t in TrustTier}:
        raise ValueError(f"sources.{source_id}.trust_tier must be one of high/medium/low")
    if "filter_mode" in values and values["filter_mode"] not in {m.value for m in FilterMode}:
        raise ValueError(f"sources.{source_id}.filter_mode must be sequential or binary_search")
    return values


def default_filter_mode(config: Dict[str, Any]) -> str:
    """
    Return ``pipeline.default_filter_mode``, the filter for sources that set none.

    Raises:
        ValueError: If the configured mode is unknown.
    """
    mode = (config.get("pipeline") or {}).get("default_filter_mode") or FilterMode.SEQUENTIAL.value
    if mode not in {m.value for m in FilterMode}:
        raise ValueError("pipeline.default_filter_mode must be sequential or binary_search")
    return mode


def load_source_overrides(config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Validate the ``sources`` section and return per-source policy overrides.

    Args:
        config (Dict[str, Any]): Parsed configuration.

    Returns:
        Dict[str, Dict[str, Any]]: ``{source_id: {policy_field: value}}``.

    Raises:
        ValueError: If a source entry carries an unknown key or an invalid value.
    """
    sources = config.get("sources") or {}
    if not isinstance(sources, dict):
        raise ValueError("'sources' must be a mapping of source_id to policy settings")

    default_mode = default_filter_mode(config)
    overrides: Dict[str, Dict[str, Any]] = {}
    for source_id, values in sources.items():
        values = dict(values or {})
        if "filter_mode" not in values:
            values["filter_mode"] = default_mode
        overrides[str(source_id)] = _validate_override(str(source_id), values)
    return overrides


def build_source_policies(
    config: Dict[str, Any],
    default_for: Optional[Callable[[str], SourcePolicy]] = None,
) -> Dict[str, SourcePolicy]:
    """
    Turn the ``sources`` section into immutable :class:`SourcePolicy` objects.

    Args:
        config (Dict[str, Any]): Parsed configuration.
        default_for (Optional[Callable]): Supplies the baseline policy for a
            source id (typically the owning estimator's defaults).

    Returns:
        Dict[str, SourcePolicy]: One policy per configured source.
    """
    policies: Dict[str, SourcePolicy] = {}
    for source_id, values in load_source_overrides(config).items():
        base = default_for(source_id) if default_for else SourcePolicy(source_id=source_id)
        policies[source_id] = replace(base, **values)
    return policies


def fallback_settings(config: Dict[str, Any]) -> Tuple[Dict[str, float], Optional[int]]:
    """
    Read fallback-inclusion tier probabilities and seed.

    ``FRESHGATE_FALLBACK_SEED`` overrides ``fallback_inclusion.seed``.

    Returns:
        Tuple[Dict[str, float], Optional[int]]: ``(tiers, seed)``.
    """
    section = config.get("fallback_inclusion") or {}
    tiers = dict(DEFAULT_FALLBACK_TIERS)
    for tier, probability in (section.get("tiers") or {}).items():
        if tier not in tiers:
            raise ValueError(f"fallback_inclusion.tiers: unknown tier {tier!r}")
        probability = float(probability)
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"fallback_inclusion.tiers.{tier} must be within [0, 1]")
        tiers[tier] = probability

    seed = os.getenv("FRESHGATE_FALLBACK_SEED") or section.get("seed")
    return tiers, int(seed) if seed is not None else None
