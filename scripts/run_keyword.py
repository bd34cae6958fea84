#!/usr/bin/env python3
"""Generate one article for a keyword (optionally publish it as a WordPress draft).

Usage:
    python scripts/run_keyword.py "intermittent fasting" --words 2500 --type guide [--publish]
    python scripts/run_keyword.py --plan "home espresso"
"""

import argparse
import asyncio
import dataclasses
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent

from article_engine.clients import WordPressPublisher
from article_engine.config import ServiceCredentials
from article_engine.content_engine import ContentEngine
from article_engine.errors import ContentGenerationError, ProviderError
from article_engine.models import CONTENT_TYPES, GenerationRequest
from article_engine.schema_builder import SchemaBuilder
from article_engine.utils.logger import setup_logging


def write_last_run(project_root: Path, success: bool, message: str = ""):
    """Write a last_run.txt for health check monitoring."""
    last_run_path = project_root / "logs" / "last_run.txt"
    last_run_path.parent.mkdir(parents=True, exist_ok=True)
    status = "SUCCESS" if success else "FAILURE"
    timestamp = datetime.now(timezone.utc).isoformat()
    last_run_path.write_text(f"{status}\n{timestamp}\n{message}\n")


def save_output(result, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / f"{result.slug}.html").write_text(result.content)
    payload = dataclasses.asdict(result)
    payload["generated_at"] = result.generated_at.isoformat()
    path = output_dir / f"{result.slug}.json"
    path.write_text(json.dumps(payload, indent=2, default=str))
    return path


def make_publisher(creds: ServiceCredentials) -> WordPressPublisher | None:
    if not (creds.wp_url and creds.wp_username and creds.wp_app_password):
        return None
    return WordPressPublisher(creds.wp_url, creds.wp_username, creds.wp_app_password)


async def run(args) -> int:
    creds = ServiceCredentials.from_env()
    wp = make_publisher(creds)

    site_pages = []
    if wp is not None and not args.plan:
        try:
            site_pages = await asyncio.to_thread(wp.site_pages)
            print(f"Loaded {len(site_pages)} published posts for internal linking")
        except ProviderError as e:
            print(f"Could not load site pages: {e}", file=sys.stderr)

    engine = ContentEngine.from_config(args.config, credentials=creds, site_pages=site_pages)
    try:
        if args.plan:
            plan = await engine.generate_content_plan(args.plan)
            print(f"Pillar: {plan.pillar_keyword}{' (fallback plan)' if plan.is_fallback else ''}")
            for cluster in plan.clusters:
                print(f"  [{cluster.priority:6}] {cluster.keyword} ({cluster.type}): {cluster.title}")
            return 0

        request = GenerationRequest(
            keyword=args.keyword,
            title=args.title or "",
            target_word_count=args.words,
            content_type=args.type,
            on_progress=lambda message: print(f"  … {message}"),
        )
        result = await engine.generate_content(request)
    finally:
        await engine.aclose()

    path = save_output(result, PROJECT_ROOT / "output")
    print(f"Article: {result.title}")
    print(f"   {result.metrics.word_count} words, coverage {result.coverage_score}, quality {result.quality_score.overall}")
    print(f"   Saved: {path}")

    if args.publish:
        if wp is None:
            print("WP_URL / WP_USERNAME / WP_APP_PASSWORD are not set; skipping publish", file=sys.stderr)
        else:
            html = result.content
            if result.schema:
                html = SchemaBuilder().inject_into_html(html, result.schema)
            outcome = await asyncio.to_thread(wp.publish, result.title, html, {
                "slug": result.slug,
                "seo_title": result.seo_title,
                "meta_description": result.meta_description,
                "focus_keyword": result.primary_keyword,
                "tags": result.secondary_keywords[:5],
            })
            if outcome["success"]:
                print(f"   Draft created: {outcome['post_url']}")
            else:
                print(f"   Publish failed: {outcome['error']}", file=sys.stderr)

    write_last_run(PROJECT_ROOT, success=True, message=f"{result.slug}: {result.metrics.word_count} words")
    return 0


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("keyword", nargs="?", help="target keyword")
    parser.add_argument("--title", help="use this title instead of generating one")
    parser.add_argument("--words", type=int, default=0, help="target word count (default: from SERP analysis)")
    parser.add_argument("--type", default="guide", choices=CONTENT_TYPES)
    parser.add_argument("--publish", action="store_true", help="create a WordPress draft")
    parser.add_argument("--plan", metavar="TOPIC", help="print a pillar/cluster plan instead of writing")
    parser.add_argument("--config", default=str(PROJECT_ROOT / "config.yaml"))
    args = parser.parse_args()
    if not args.keyword and not args.plan:
        parser.error("a keyword or --plan TOPIC is required")

    setup_logging(str(PROJECT_ROOT / "logs"))
    try:
        return asyncio.run(run(args))
    except ContentGenerationError as e:
        print(f"FAILED: {e}", file=sys.stderr)
        write_last_run(PROJECT_ROOT, success=False, message=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
