"""Server-rendered share pages with link-preview metadata.

Social platforms (X, Farcaster, Discord, ...) fetch ``/api/share/{id}`` and
read the Open Graph and Twitter card tags in ``<head>`` to build a preview.
Humans who follow the link see the image, its prompt, and a call to action.

The page is a single self-contained document: inline CSS, a few lines of
inline JavaScript for the share and download buttons, no build step and no
template engine.

Every interpolated value passes through :func:`html.escape`.  Prompts are
arbitrary user text and must never reach the markup unescaped.
"""

from __future__ import annotations

import html
import time
from string import Template

from degenify.core.config import DegenifyConfig
from degenify.core.records import GeneratedImage, RemoteImage

# ---------------------------------------------------------------------------
# Page template.
# Placeholders use ``$name`` and are filled by :func:`_fill` with escaped
# values only.
# ---------------------------------------------------------------------------

_STYLE = """
    :root {
        --primary: 267 83% 58%;
        --accent: 280 100% 70%;
        --foreground: 240 10% 3.9%;
        --muted-foreground: 220 8.9% 46.1%;
        --border: 267 20% 90%;
        --gradient-primary: linear-gradient(135deg, hsl(267 83% 58%), hsl(280 100% 70%), hsl(290 100% 75%));
        --gradient-mesh: radial-gradient(circle at 20% 80%, hsl(267 83% 58% / 0.3) 0%, transparent 50%),
            radial-gradient(circle at 80% 20%, hsl(280 100% 70% / 0.3) 0%, transparent 50%);
        --shadow-intense: 0 20px 60px hsl(267 83% 58% / 0.25);
        --shadow-glow: 0 0 40px hsl(267 83% 58% / 0.4);
    }
    * { box-sizing: border-box; }
    body {
        font-family: system-ui, -apple-system, sans-serif;
        background: var(--gradient-mesh);
        color: hsl(var(--foreground));
        margin: 0;
        min-height: 100vh;
        line-height: 1.6;
    }
    .container { max-width: 1200px; margin: 0 auto; padding: 0 1.5rem; text-align: center; }
    .header { padding: 1rem 0 0.5rem; }
    .footer { padding: 2rem 0; border-top: 1px solid hsl(var(--border) / 0.3); }
    .text-gradient {
        background: var(--gradient-primary);
        -webkit-background-clip: text;
        background-clip: text;
        -webkit-text-fill-color: transparent;
        color: transparent;
    }
    .muted { color: hsl(var(--muted-foreground)); }
    .btn-create {
        background: var(--gradient-primary);
        color: #fff;
        font-weight: 700;
        font-size: 1.25rem;
        padding: 1rem 3rem;
        border-radius: 1.5rem;
        box-shadow: var(--shadow-intense);
        display: flex;
        align-items: center;
        justify-content: center;
        max-width: 400px;
        margin: 2rem auto;
        text-decoration: none;
        transition: all 0.3s cubic-bezier(0.4, 0, 0.2, 1);
    }
    .btn-create:hover { box-shadow: var(--shadow-glow); transform: scale(1.05); }
    .result { position: relative; display: inline-block; max-width: 100%; margin: 2rem 0; }
    .result img { width: 100%; max-width: 600px; height: auto; border-radius: 1rem; box-shadow: var(--shadow-intense); }
    .prompt-text { font-size: 1.125rem; font-weight: 500; margin: 1rem 0 0; overflow-wrap: anywhere; }
    .actions { display: flex; gap: 0.5rem; justify-content: center; margin-top: 1rem; }
    .actions button {
        background: hsl(var(--primary) / 0.85);
        color: #fff;
        border: none;
        border-radius: 0.5rem;
        padding: 0.5rem 1rem;
        cursor: pointer;
    }
"""

_SCRIPT = """
    function shareImage(button) {
        const shareUrl = window.location.origin + '/api/share/' + encodeURIComponent(button.dataset.imageId);
        const text = button.dataset.shareText;
        const twitterUrl = 'https://twitter.com/intent/tweet?text=' + encodeURIComponent(text) +
            '&url=' + encodeURIComponent(shareUrl);
        window.open(twitterUrl, '_blank');
    }
    function downloadImage(button) {
        window.location.href = '/api/download/' + encodeURIComponent(button.dataset.imageId);
    }
"""

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>$title</title>
    <meta name="description" content="$description">

    <!-- Open Graph -->
    <meta property="og:type" content="website">
    <meta property="og:url" content="$share_url">
    <meta property="og:title" content="$title">
    <meta property="og:description" content="$description">
    <meta property="og:image" content="$preview_image_url">
    <meta property="og:image:url" content="$preview_image_url">
    <meta property="og:image:width" content="1024">
    <meta property="og:image:height" content="1024">
    <meta property="og:image:alt" content="$title">
    <meta property="og:site_name" content="$site_name">
    <meta property="og:locale" content="en_US">

    <!-- Twitter -->
    <meta name="twitter:card" content="summary_large_image">
    <meta name="twitter:site" content="$twitter_handle">
    <meta name="twitter:creator" content="$twitter_handle">
    <meta name="twitter:url" content="$share_url">
    <meta name="twitter:title" content="$title">
    <meta name="twitter:description" content="$description">
    <meta name="twitter:image" content="$preview_image_url">
    <meta name="twitter:image:alt" content="$title">

    <meta name="theme-color" content="#667eea">
    <style>$style</style>
</head>
<body>
    <header class="header">
        <div class="container">
            <h1 class="text-gradient">$site_name</h1>
        </div>
    </header>
    <main>
        <div class="container">
            <h2>Epic Degeneration</h2>
            <p class="muted">Check out this amazing creation! 🎩 🔥</p>

            <a href="$site_url" class="btn-create">✨ Create yours now 🎩 ✨</a>

            <div class="result">
                <a href="$page_image_url"><img src="$page_image_url" alt="$title"></a>
                <p class="prompt-text">$prompt</p>
                <div class="actions">
                    <button type="button" data-image-id="$image_id" data-share-text="$share_text"
                        onclick="shareImage(this)">Share</button>
                    <button type="button" data-image-id="$image_id"
                        onclick="downloadImage(this)">Download</button>
                </div>
            </div>
        </div>
    </main>
    <footer class="footer">
        <div class="container">
            <p class="muted">Made with 💜 for the degen community</p>
        </div>
    </footer>
    <script>$script</script>
</body>
</html>
"""


def _fill(template: str, values: dict[str, str], raw: dict[str, str]) -> str:
    """Substitute ``$name`` placeholders in a single pass.

    ``values`` are HTML-escaped; ``raw`` is reserved for the static style and
    script blocks defined in this module.
    """
    escaped = {key: html.escape(value, quote=True) for key, value in values.items()}
    return Template(template).substitute(escaped, **raw)


def choose_preview_image_url(
    record: GeneratedImage,
    direct_url: str,
    *,
    source: str = "storage",
    cache_buster: int | None = None,
) -> str:
    """Choose the image URL advertised to link-preview crawlers.

    Remotely stored images can be advertised by their storage URL with a
    ``t=`` cache-busting parameter, which forces crawlers that cache
    aggressively to refetch.  Inline images only exist behind the
    direct-serve endpoint.
    """
    location = record.image_location
    if source == "storage" and isinstance(location, RemoteImage):
        stamp = cache_buster if cache_buster is not None else time.time_ns() // 1_000_000
        separator = "&" if "?" in location.url else "?"
        return f"{location.url}{separator}t={stamp}"
    return direct_url


def render_share_page(
    record: GeneratedImage,
    *,
    site_url: str,
    share_url: str,
    page_image_url: str,
    preview_image_url: str,
    settings: DegenifyConfig,
) -> str:
    """Render the share page for ``record``.

    Args:
        record: The record being shared.
        site_url: Absolute URL of the site root ("create yours" target).
        share_url: Absolute URL of this share page.
        page_image_url: Image URL shown in the page body.
        preview_image_url: Image URL advertised in the preview tags.
        settings: Source of the branding strings.

    Returns:
        A complete HTML document.
    """
    share_text = (
        f"{settings.share_description}\nCreate yours on {site_url}\n\n{settings.twitter_handle}"
    )
    values = {
        "title": settings.share_title,
        "description": settings.share_description,
        "site_name": settings.site_name,
        "twitter_handle": settings.twitter_handle,
        "share_url": share_url,
        "site_url": site_url,
        "page_image_url": page_image_url,
        "preview_image_url": preview_image_url,
        "prompt": record.prompt,
        "image_id": record.id,
        "share_text": share_text,
    }
    return _fill(_PAGE_TEMPLATE, values, {"style": _STYLE, "script": _SCRIPT})
