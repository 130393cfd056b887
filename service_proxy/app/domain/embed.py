"""
Iframe embed page: keeps the browser on the proxy's domain while the
backend application renders inside a full-viewport frame.
"""

import html

from fastapi.responses import HTMLResponse

from .models import SlugMapping

EMBED_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body, html {{
      width: 100%;
      height: 100%;
      overflow: hidden;
      font-family: -apple-system, system-ui, sans-serif;
    }}
    .loading-overlay {{
      position: fixed;
      inset: 0;
      background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
      display: flex;
      align-items: center;
      justify-content: center;
      color: white;
      z-index: 9999;
      transition: opacity 0.5s;
    }}
    .loading-overlay.hidden {{ opacity: 0; pointer-events: none; }}
    .iframe-container {{ position: absolute; inset: 0; }}
    iframe {{ width: 100%; height: 100%; border: none; background: white; }}
  </style>
</head>
<body>
  <div class="loading-overlay" id="loadingOverlay">Loading {title}...</div>
  <div class="iframe-container">
    <iframe
      id="appFrame"
      src="{src}"
      allow="camera; microphone; geolocation"
      allowfullscreen
      sandbox="allow-forms allow-modals allow-popups allow-popups-to-escape-sandbox allow-same-origin allow-scripts allow-top-navigation"
    ></iframe>
  </div>
  <script>
    (function () {{
      var overlay = document.getElementById("loadingOverlay");
      function hide() {{ overlay.classList.add("hidden"); }}
      document.getElementById("appFrame").addEventListener("load", hide);
      setTimeout(hide, {loading_timeout_ms});
    }})();
  </script>
</body>
</html>
"""

DEFAULT_TITLE = "Application"


def render_embed_page(mapping: SlugMapping, loading_timeout_ms: int = 3000) -> str:
    """HTML page framing the mapping's backend entry URL."""
    return EMBED_TEMPLATE.format(
        title=html.escape(mapping.display_name or DEFAULT_TITLE, quote=True),
        src=html.escape(mapping.backend_base_url, quote=True),
        loading_timeout_ms=int(loading_timeout_ms),
    )


def embed_response(mapping: SlugMapping, cache_control: str) -> HTMLResponse:
    return HTMLResponse(
        content=render_embed_page(mapping),
        headers={
            "X-Frame-Options": "SAMEORIGIN",
            "Cache-Control": cache_control,
        },
    )
