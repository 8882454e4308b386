"""Org-mode to HTML rendering.

pandoc's Org reader does the conversion. This module adjusts its output
for the site:

- ``[[id:UUID][Title]]`` becomes ``<a href="{base_path}/UUID">Title</a>``
- source blocks become ``<pre><code class="code-block">`` and inline code
  ``<code class="inline-code">``
- links leaving the site get an external-link mark
- links with script schemes are reduced to their label
"""
import html
import logging
import re
from typing import Optional, Union
from urllib.parse import urlsplit

import pypandoc

from groundwave_zk.exceptions import RenderError

logger = logging.getLogger(__name__)

# In-buffer setting prepended to every body
TODO_SETTING = "#+TODO: TODO PROJ STRT WAIT HOLD | DONE KILL"

# Org "*" is <h2>; the page title owns <h1>
PANDOC_ARGS = [
    "--wrap=none",
    "--no-highlight",
    "--shift-heading-level-by=1",
    "--sandbox",
]

# Paths served by Groundwave itself
INTERNAL_LINK_PREFIXES = ("/zk", "/note", "/home", "/groundwave")
EXTERNAL_LINK_MARK = "\U0001F5D7 "

_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:")

_ANCHOR_RE = re.compile(r"<a\b([^>]*)>(.*?)</a>", re.DOTALL)
_HREF_RE = re.compile(r'\bhref="([^"]*)"')
_PRE_CODE_RE = re.compile(r"<pre\b[^>]*>\s*<code\b[^>]*>(.*?)</code>\s*</pre>", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"(?<!<pre>)<code\b[^>]*>")


def _is_site_link(href: str, site_base_url: str) -> bool:
    """True when ``href`` points under the configured public site URL."""
    if href.startswith(site_base_url):
        return True

    def parse_absolute(raw: str):
        parsed = urlsplit(raw)
        if not parsed.netloc:
            parsed = urlsplit("https://" + raw)
        return parsed if parsed.netloc else None

    try:
        base = parse_absolute(site_base_url)
        target = parse_absolute(href) if "://" in href else None
    except ValueError:
        return False
    if base is None or target is None:
        return False
    if base.hostname != target.hostname:
        return False

    base_path = base.path.rstrip("/")
    if not base_path:
        return True
    return target.path == base_path or target.path.startswith(base_path + "/")


class OrgRenderer:
    """Converts Org-mode text to an HTML fragment.

    Args:
        base_path: URL prefix for ``id:`` links, e.g. ``/zk`` or ``/note``.
        site_base_url: Public URL of the site; links under it are internal.
    """

    def __init__(self, base_path: str = "/zk", site_base_url: Optional[str] = None):
        self.base_path = base_path.strip().rstrip("/") or "/zk"
        self.site_base_url = (site_base_url or "").strip().rstrip("/") or None

    def render(self, body: Union[str, bytes], filename: Optional[str] = None) -> str:
        """Render a note body.

        Raises:
            RenderError: If the body is not valid UTF-8 or pandoc fails.
        """
        if isinstance(body, bytes):
            try:
                body = body.decode("utf-8")
            except UnicodeDecodeError as e:
                raise RenderError("Body is not valid UTF-8", filename=filename, original_error=e)

        if not body.strip():
            return ""

        try:
            rendered = pypandoc.convert_text(
                f"{TODO_SETTING}\n{body}", "html5", format="org", extra_args=PANDOC_ARGS
            )
        except (RuntimeError, OSError) as e:
            raise RenderError("pandoc failed to convert Org", filename=filename, original_error=e)

        rendered = _PRE_CODE_RE.sub(r'<pre><code class="code-block">\1</code></pre>', rendered)
        rendered = _INLINE_CODE_RE.sub('<code class="inline-code">', rendered)
        return _ANCHOR_RE.sub(self._rewrite_anchor, rendered).strip()

    def _rewrite_anchor(self, match: "re.Match[str]") -> str:
        attrs, label = match.group(1), match.group(2)
        href_match = _HREF_RE.search(attrs)
        if href_match is None:
            return match.group(0)
        href = html.unescape(href_match.group(1)).strip()
        lowered = href.lower()

        if lowered.startswith("id:"):
            note_id = href[3:].strip()
            if label.strip() == html.escape(href, quote=False):
                label = html.escape(note_id, quote=False)
            href = f"{self.base_path}/{note_id}"
        elif lowered.startswith(_UNSAFE_SCHEMES):
            logger.debug(f"Dropping link with unsafe scheme: {href[:40]!r}")
            return label
        else:
            # pandoc turns absolute paths into file:// URLs
            if lowered.startswith("file:///"):
                href = href[len("file://"):]
            if self._is_external(href) and not label.startswith(EXTERNAL_LINK_MARK):
                label = EXTERNAL_LINK_MARK + label

        attrs = attrs[: href_match.start()] + f'href="{html.escape(href)}"' + attrs[href_match.end():]
        return f"<a{attrs}>{label}</a>"

    def _is_external(self, href: str) -> bool:
        if not href or href.startswith("#"):
            return False
        if href == self.base_path or href.startswith(self.base_path + "/"):
            return False
        if href.startswith(INTERNAL_LINK_PREFIXES):
            return False
        if self.site_base_url and _is_site_link(href, self.site_base_url):
            return False
        return True


def render_html(
    body: Union[str, bytes],
    base_path: str = "/zk",
    site_base_url: Optional[str] = None,
    filename: Optional[str] = None,
) -> str:
    """Render Org content to HTML with ``id:`` links under ``base_path``.

    Raises:
        RenderError: On undecodable input or a pandoc failure.
    """
    return OrgRenderer(base_path=base_path, site_base_url=site_base_url).render(
        body, filename=filename
    )
