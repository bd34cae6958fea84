"""WordPress REST API publisher for generated articles."""

from __future__ import annotations

import base64
import logging
import time

import requests

from article_engine.errors import AuthenticationError, ProviderError

log = logging.getLogger(__name__)


class WordPressPublisher:
    """Creates posts through the WordPress REST API with application-password auth."""

    def __init__(self, base_url: str, username: str, app_password: str, backoff: float = 1.0):
        self.base_url = base_url.rstrip("/")
        self.api_base = f"{self.base_url}/wp-json/wp/v2"
        self.backoff = backoff

        token = base64.b64encode(f"{username}:{app_password}".encode()).decode()
        self.headers = {
            "Authorization": f"Basic {token}",
            "Content-Type": "application/json",
        }
        self._category_cache: dict[str, int] = {}
        self._tag_cache: dict[str, int] = {}

    def verify_connection(self) -> bool:
        """True when the REST API answers and accepts the credentials."""
        resp = self._request("GET", f"{self.api_base}/users/me")
        return resp.status_code == 200

    def _request(self, method, url, retries=3, timeout=30, **kwargs) -> requests.Response:
        """HTTP request with retry on 429/5xx/timeouts. 401/403 raise immediately."""
        last_error = None
        for attempt in range(retries):
            if attempt:
                time.sleep(self.backoff * 2 ** (attempt - 1))
            try:
                start = time.time()
                resp = requests.request(method, url, headers=self.headers, timeout=timeout, **kwargs)
            except requests.exceptions.Timeout:
                log.warning(f"Timeout on {url}, retry {attempt+1}/{retries}")
                last_error = ProviderError(f"Timeout: {url}")
                continue
            except requests.exceptions.ConnectionError as e:
                log.warning(f"Connection error, retry {attempt+1}/{retries}")
                last_error = ProviderError(f"Cannot reach WordPress at {self.base_url}: {e}")
                continue

            log.info(
                f"{method} {url} -> {resp.status_code}",
                extra={
                    "endpoint": url,
                    "method": method,
                    "status_code": resp.status_code,
                    "response_time": round(time.time() - start, 3),
                },
            )

            if resp.status_code in (401, 403):
                raise AuthenticationError(f"WordPress rejected credentials: {resp.text[:200]}", resp.status_code)
            if resp.status_code == 429 or resp.status_code >= 500:
                log.warning(f"WordPress returned {resp.status_code}, retry {attempt+1}/{retries}")
                last_error = ProviderError(f"Server error {resp.status_code}: {resp.text[:200]}", resp.status_code)
                continue
            return resp

        raise last_error or ProviderError(f"Request failed after {retries} retries")

    # ---- Posts ----

    def post_exists(self, slug: str) -> dict | None:
        for status in ("publish", "draft", "future", "pending"):
            resp = self._request("GET", f"{self.api_base}/posts", params={"slug": slug, "status": status})
            if resp.status_code == 200 and resp.json():
                return resp.json()[0]
        return None

    def create_post(self, title: str, content_html: str, slug: str = "", status: str = "draft",
                    meta: dict | None = None) -> dict:
        """Create a post, or return the existing one with the same slug."""
        if slug:
            existing = self.post_exists(slug)
            if existing:
                log.warning(f"Post with slug '{slug}' already exists (ID: {existing['id']}). Skipping creation.")
                return existing

        payload = {"title": title, "content": content_html, "status": status}
        if slug:
            payload["slug"] = slug
        if meta:
            payload["meta"] = meta

        resp = self._request("POST", f"{self.api_base}/posts", json=payload)
        if resp.status_code >= 400:
            raise ProviderError(f"Post creation failed ({resp.status_code}): {resp.text[:200]}", resp.status_code)
        post = resp.json()
        log.info(f"Created {status} post {post['id']}: {title}")
        return post

    def get_tag_id(self, name: str) -> int:
        """Tag ID for ``name``, creating the tag if needed (0 on failure)."""
        if name in self._tag_cache:
            return self._tag_cache[name]

        resp = self._request("GET", f"{self.api_base}/tags", params={"search": name})
        for tag in resp.json() if resp.status_code == 200 else []:
            if tag.get("name", "").lower() == name.lower():
                self._tag_cache[name] = tag["id"]
                return tag["id"]

        resp = self._request("POST", f"{self.api_base}/tags", json={"name": name})
        if resp.status_code in (200, 201):
            self._tag_cache[name] = resp.json()["id"]
            log.info(f"Created tag: {name} -> {self._tag_cache[name]}")
            return self._tag_cache[name]
        log.warning(f"Failed to create tag: {name}")
        return 0

    def get_category_id(self, slug: str) -> int:
        if slug in self._category_cache:
            return self._category_cache[slug]
        resp = self._request("GET", f"{self.api_base}/categories", params={"slug": slug})
        data = resp.json() if resp.status_code == 200 else []
        if data:
            self._category_cache[slug] = data[0]["id"]
            return data[0]["id"]
        log.warning(f"Category not found: {slug}")
        return 0

    def get_all_posts(self, per_page: int = 100) -> list[dict]:
        """Every published post, paginated."""
        all_posts, page = [], 1
        while True:
            resp = self._request(
                "GET", f"{self.api_base}/posts",
                params={"per_page": per_page, "page": page, "status": "publish"},
            )
            if resp.status_code == 400:
                break
            posts = resp.json()
            if not posts:
                break
            all_posts.extend(posts)
            page += 1
        return all_posts

    def site_pages(self) -> list[dict]:
        """Published posts shaped as internal-link targets."""
        pages = []
        for post in self.get_all_posts():
            title = post.get("title", {})
            if isinstance(title, dict):
                title = title.get("rendered", "")
            pages.append({"url": post.get("link", ""), "title": title, "slug": post.get("slug", "")})
        return pages

    # ---- Entry point ----

    def publish(self, title: str, html: str, options: dict | None = None) -> dict:
        """Create the post and attach SEO meta and tags.

        ``options``: status, slug, seo_title, meta_description, focus_keyword,
        tags, categories. Returns ``{"success": True, "post_id", "post_url"}``
        or ``{"success": False, "error"}``; never raises.
        """
        options = options or {}
        meta = {}
        if options.get("seo_title"):
            meta["rank_math_title"] = options["seo_title"]
        if options.get("meta_description"):
            meta["rank_math_description"] = options["meta_description"]
        if options.get("focus_keyword"):
            meta["rank_math_focus_keyword"] = options["focus_keyword"]

        try:
            post = self.create_post(
                title,
                html,
                slug=options.get("slug", ""),
                status=options.get("status", "draft"),
                meta=meta or None,
            )
            tag_ids = [t for t in (self.get_tag_id(name) for name in options.get("tags", [])) if t]
            category_ids = [c for c in (self.get_category_id(s) for s in options.get("categories", [])) if c]
            if tag_ids or category_ids:
                payload = {}
                if tag_ids:
                    payload["tags"] = tag_ids
                if category_ids:
                    payload["categories"] = category_ids
                self._request("POST", f"{self.api_base}/posts/{post['id']}", json=payload)
        except ProviderError as e:
            log.error(f"Publishing '{title}' failed: {e}")
            return {"success": False, "error": str(e)}

        return {"success": True, "post_id": post["id"], "post_url": post.get("link", "")}
