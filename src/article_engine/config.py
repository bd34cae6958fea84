"""Pipeline configuration: thresholds from config.yaml, credentials from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields

import yaml
from dotenv import load_dotenv

log = logging.getLogger(__name__)


@dataclass
class PipelineSettings:
    """Every threshold and budget the pipeline uses, in one place."""

    # Long-form completion
    min_word_floor: int = 2000
    long_target_threshold: int = 3000
    completeness_ratio_long: float = 0.92
    completeness_ratio_default: float = 0.85
    continuation_budget_short: int = 3
    continuation_budget_medium: int = 5
    continuation_budget_long: int = 8
    very_long_target_threshold: int = 5000
    continuation_seed_chars: int = 3000
    repetition_probe_chars: int = 120
    repetition_window_chars: int = 4000

    # Coverage optimization
    target_score: float = 90
    max_optimization_attempts: int = 6
    stagnation_rounds: int = 2
    patch_mode_threshold_chars: int = 10_000
    rewrite_min_length_ratio: float = 0.97
    patch_top_terms: int = 15
    patch_max_headings: int = 3
    coverage_marker_enabled: bool = False

    # Finalizer
    max_references: int = 10
    max_references_per_domain: int = 2
    title_max_chars: int = 60
    meta_min_chars: int = 150
    meta_max_chars: int = 160
    max_internal_links: int = 12
    visual_break_max_words: int = 200
    visual_break_html: str = "<hr>"

    # Timeouts (seconds)
    network_timeout: float = 15
    generation_timeout: float = 120
    generation_timeout_per_1k_words: float = 45

    # Batch analysis
    batch_concurrency: int = 2
    batch_delay: float = 1.5

    # Scorer query polling
    poll_max_attempts: int = 12
    poll_fast_attempts: int = 3
    poll_fast_delay: float = 3
    poll_slow_delay: float = 6
    poll_max_delay: float = 20

    def __post_init__(self):
        if not 8 <= self.max_references <= 12:
            log.warning(f"max_references={self.max_references} outside 8-12, clamping")
            self.max_references = min(12, max(8, self.max_references))

    @classmethod
    def from_yaml(cls, path: str = "config.yaml") -> "PipelineSettings":
        """Load the ``pipeline:`` section of a YAML config, keeping defaults for missing keys."""
        if not os.path.exists(path):
            return cls()
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        section = data.get("pipeline", {}) or {}
        known = {f.name for f in fields(cls)}
        unknown = set(section) - known
        if unknown:
            log.warning(f"Ignoring unknown pipeline settings: {sorted(unknown)}")
        return cls(**{k: v for k, v in section.items() if k in known})


@dataclass
class SiteProfile:
    """Publisher identity and the internal pages available for linking."""

    organization_name: str = ""
    organization_url: str = ""
    logo_url: str = ""
    author_name: str = ""
    author_credentials: list[str] = field(default_factory=list)
    target_country: str = "us"
    site_pages: list[dict] = field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: str = "config.yaml") -> "SiteProfile":
        if not os.path.exists(path):
            return cls()
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        site = data.get("site", {}) or {}
        return cls(
            organization_name=site.get("name", ""),
            organization_url=site.get("url", "").rstrip("/"),
            logo_url=site.get("logo_url", ""),
            author_name=site.get("author", {}).get("name", ""),
            author_credentials=site.get("author", {}).get("credentials", []),
            target_country=site.get("target_country", "us"),
            site_pages=site.get("pages", []) or [],
        )


@dataclass
class ServiceCredentials:
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    serper_api_key: str = ""
    neuronwriter_api_key: str = ""
    neuronwriter_project_id: str = ""
    wp_url: str = ""
    wp_username: str = ""
    wp_app_password: str = ""

    @classmethod
    def from_env(cls) -> "ServiceCredentials":
        load_dotenv(override=True)
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", cls.anthropic_model),
            serper_api_key=os.getenv("SERPER_API_KEY", ""),
            neuronwriter_api_key=os.getenv("NEURONWRITER_API_KEY", ""),
            neuronwriter_project_id=os.getenv("NEURONWRITER_PROJECT_ID", ""),
            wp_url=os.getenv("WP_URL", ""),
            wp_username=os.getenv("WP_USERNAME", ""),
            wp_app_password=os.getenv("WP_APP_PASSWORD", ""),
        )

    @property
    def scorer_configured(self) -> bool:
        return bool(self.neuronwriter_api_key and self.neuronwriter_project_id)
