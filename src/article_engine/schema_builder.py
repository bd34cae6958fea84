"""Schema Builder: generates and validates JSON-LD structured data for generated articles."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field

from jinja2 import Environment, FileSystemLoader

from article_engine.config import SiteProfile

log = logging.getLogger(__name__)

DEFAULT_TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

CONTENT_TYPE_SECTIONS = {
    "guide": "Guides",
    "how-to": "How-To",
    "comparison": "Comparisons",
    "listicle": "Lists",
    "deep-dive": "Deep Dives",
}


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class SchemaBuilder:
    """Renders Article, BreadcrumbList and FAQPage JSON-LD from Jinja templates."""

    def __init__(self, templates_dir: str = DEFAULT_TEMPLATES_DIR, site: SiteProfile | None = None):
        self.templates_dir = templates_dir
        self.site = site or SiteProfile()
        self.env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=False,
        )

    def _render(self, template_name: str, **context) -> dict:
        rendered = self.env.get_template(template_name).render(**context)
        return json.loads(rendered)

    def build_article_schema(self, post_data: dict) -> dict:
        """Build Article JSON-LD from post data."""
        defaults = {
            "headline": "",
            "meta_description": "",
            "publish_date_iso": "",
            "word_count": 0,
            "post_url": "",
            "modified_date_iso": "",
            "featured_image_url": "",
            "keywords": [],
            "article_section": "",
            "citations": [],
            "author_name": self.site.author_name,
            "author_credentials": self.site.author_credentials,
            "organization_name": self.site.organization_name,
            "organization_url": self.site.organization_url,
            "logo_url": self.site.logo_url,
        }
        return self._render("article-template.json", **{**defaults, **post_data})

    def build_faq_schema(self, faq_items: list[dict], post_url: str = "") -> dict:
        return self._render("faqpage-template.json", faq_items=faq_items, post_url=post_url)

    def build_breadcrumb_schema(self, post_title: str, post_url: str = "", section: str = "") -> dict:
        """Home → section → post. Items without a URL are emitted without ``item``."""
        crumbs = [{"name": self.site.organization_name or "Home", "url": self.site.organization_url}]
        if section:
            section_url = ""
            if self.site.organization_url:
                section_url = f"{self.site.organization_url}/{re.sub(r'[^a-z0-9]+', '-', section.lower()).strip('-')}/"
            crumbs.append({"name": section, "url": section_url})
        crumbs.append({"name": post_title, "url": post_url})
        return self._render("breadcrumb-template.json", crumbs=crumbs)

    def build_full_graph(self, post_data: dict) -> dict:
        """Build complete @graph with Article, BreadcrumbList and optional FAQPage."""
        graph = [self.build_article_schema(post_data)]

        section = post_data.get("article_section") or CONTENT_TYPE_SECTIONS.get(post_data.get("content_type", ""), "")
        graph.append(self.build_breadcrumb_schema(
            post_title=post_data.get("headline", ""),
            post_url=post_data.get("post_url", ""),
            section=section,
        ))

        faq_items = post_data.get("faq_items", [])
        if faq_items:
            graph.append(self.build_faq_schema(faq_items, post_data.get("post_url", "")))

        return {
            "@context": "https://schema.org",
            "@graph": graph,
        }

    # ---- Validation ----

    def validate_schema(self, json_ld: dict) -> ValidationResult:
        errors = []
        warnings = []

        for item in json_ld.get("@graph", [json_ld]):
            schema_type = item.get("@type", "")
            if schema_type == "Article":
                self._validate_article(item, errors, warnings)
            elif schema_type == "FAQPage":
                self._validate_faq(item, errors, warnings)
            elif schema_type == "BreadcrumbList":
                self._validate_breadcrumb(item, errors, warnings)

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def _validate_article(self, article: dict, errors: list, warnings: list):
        for field_name in ("headline", "datePublished", "author", "description"):
            if not article.get(field_name):
                errors.append(f"Article missing required field: {field_name}")

        for date_field in ("datePublished", "dateModified"):
            val = article.get(date_field, "")
            if val and not self._is_valid_iso_date(val):
                errors.append(f"Article {date_field} is not valid ISO 8601: {val}")

        wc = article.get("wordCount")
        if wc is not None and not isinstance(wc, int):
            errors.append(f"Article wordCount must be int, got {type(wc).__name__}")

        if len(article.get("headline", "")) > 110:
            warnings.append("Article headline longer than 110 characters")
        if not article.get("image", {}).get("url"):
            warnings.append("Article missing featured image URL")

    def _validate_faq(self, faq: dict, errors: list, warnings: list):
        entities = faq.get("mainEntity", [])
        if not entities:
            errors.append("FAQPage has no questions")
        for i, q in enumerate(entities):
            if not q.get("name"):
                errors.append(f"FAQ question {i+1} missing 'name'")
            if not q.get("acceptedAnswer", {}).get("text"):
                errors.append(f"FAQ question {i+1} missing answer text")

    def _validate_breadcrumb(self, bc: dict, errors: list, warnings: list):
        items = bc.get("itemListElement", [])
        if not items:
            errors.append("BreadcrumbList has no items")
        for i, item in enumerate(items):
            if not item.get("name"):
                errors.append(f"Breadcrumb item {i+1} missing 'name'")
            if not item.get("item"):
                warnings.append(f"Breadcrumb item {i+1} missing 'item' URL")

    def _is_valid_iso_date(self, date_str: str) -> bool:
        return bool(re.match(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2})?", date_str))

    def inject_into_html(self, html_content: str, json_ld: dict) -> str:
        """Append (or insert before </body>) a JSON-LD script tag."""
        payload = json.dumps(json_ld, separators=(",", ":")).replace("</", "<\\/")
        script_tag = f'<script type="application/ld+json">{payload}</script>'
        if "</body>" in html_content:
            return html_content.replace("</body>", f"{script_tag}\n</body>")
        return html_content + "\n" + script_tag
