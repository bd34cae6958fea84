"""Tests for the run_keyword CLI entry point."""

import argparse
import importlib.util
import threading
from pathlib import Path
from types import SimpleNamespace

import pytest

SCRIPT = Path(__file__).parent.parent / "scripts" / "run_keyword.py"


@pytest.fixture
def cli(monkeypatch, tmp_path):
    spec = importlib.util.spec_from_file_location("run_keyword", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    monkeypatch.setattr(module, "PROJECT_ROOT", tmp_path)
    monkeypatch.setattr(module, "save_output", lambda result, output_dir: output_dir / f"{result.slug}.json")
    return module


class RecordingPublisher:
    def __init__(self):
        self.threads = {}

    def site_pages(self):
        self.threads["site_pages"] = threading.get_ident()
        return [{"url": "https://example.com/keto/", "title": "Keto basics"}]

    def publish(self, title, html, options=None):
        self.threads["publish"] = threading.get_ident()
        return {"success": True, "post_id": 7, "post_url": "https://example.com/?p=7"}


class StubEngine:
    def __init__(self):
        self.closed = False

    async def generate_content(self, request):
        return SimpleNamespace(
            title="Intermittent Fasting Explained",
            slug="intermittent-fasting",
            seo_title="Intermittent Fasting Explained",
            meta_description="A short guide.",
            primary_keyword=request.keyword,
            secondary_keywords=["autophagy"],
            content="<h2>Basics</h2><p>Body.</p>",
            schema=None,
            coverage_score=None,
            metrics=SimpleNamespace(word_count=2400),
            quality_score=SimpleNamespace(overall=88),
        )

    async def aclose(self):
        self.closed = True


async def test_wordpress_calls_run_off_the_event_loop(cli, monkeypatch):
    wp = RecordingPublisher()
    engine = StubEngine()
    seen_pages = []

    def from_config(config_path, credentials=None, site_pages=None):
        seen_pages.extend(site_pages or [])
        return engine

    monkeypatch.setattr(cli, "ServiceCredentials", SimpleNamespace(from_env=lambda: SimpleNamespace()))
    monkeypatch.setattr(cli, "make_publisher", lambda creds: wp)
    monkeypatch.setattr(cli.ContentEngine, "from_config", staticmethod(from_config))

    args = argparse.Namespace(
        keyword="intermittent fasting", title=None, words=0, type="guide",
        publish=True, plan=None, config="config.yaml",
    )
    assert await cli.run(args) == 0

    loop_thread = threading.get_ident()
    assert set(wp.threads) == {"site_pages", "publish"}
    assert loop_thread not in wp.threads.values()
    assert seen_pages[0]["title"] == "Keto basics"
    assert engine.closed
    assert (cli.PROJECT_ROOT / "logs" / "last_run.txt").read_text().startswith("SUCCESS")
