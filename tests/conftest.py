"""Shared fixtures."""

import pytest

from article_engine.config import PipelineSettings, SiteProfile


@pytest.fixture
def settings():
    """Default thresholds with every sleep removed."""
    return PipelineSettings(
        poll_fast_delay=0,
        poll_slow_delay=0,
        poll_max_delay=0,
        batch_delay=0,
        network_timeout=5,
    )


@pytest.fixture
def site():
    return SiteProfile(
        organization_name="Example Health Journal",
        organization_url="https://example.com",
        logo_url="https://example.com/logo.png",
        author_name="Editorial Team",
        author_credentials=["Registered Dietitian"],
    )
