"""
Client-side routing shim injected into proxied HTML pages.
"""

import html
import json
from typing import Optional

from .fragment import SHIM_MARKER

# Placeholders are swapped for JSON literals so no value is ever spliced raw
SHIM_TEMPLATE = """(function () {
  if (window.__slugProxyShim) { return; }
  window.__slugProxyShim = true;
  var origin = __PROXY_ORIGIN__ || window.location.origin;
  var prefix = __SLUG_PREFIX__;

  function route(url) {
    if (typeof url !== "string") { return url; }
    if (url.charAt(0) !== "/" || url.charAt(1) === "/") { return url; }
    if (url === prefix || url.indexOf(prefix + "/") === 0 || url.indexOf(prefix + "?") === 0) { return url; }
    return origin + prefix + url;
  }

  if (typeof window.fetch === "function") {
    var originalFetch = window.fetch;
    window.fetch = function (input, init) {
      return originalFetch.call(this, route(input), init);
    };
  }

  if (window.XMLHttpRequest) {
    var originalOpen = XMLHttpRequest.prototype.open;
    XMLHttpRequest.prototype.open = function (method, url) {
      var args = Array.prototype.slice.call(arguments);
      args[1] = route(url);
      return originalOpen.apply(this, args);
    };
  }

  if (navigator.sendBeacon) {
    var originalBeacon = navigator.sendBeacon.bind(navigator);
    navigator.sendBeacon = function (url, data) {
      return originalBeacon(route(url), data);
    };
  }

  document.addEventListener("submit", function (event) {
    var form = event.target;
    if (!form || !form.getAttribute) { return; }
    var action = form.getAttribute("action");
    var routed = route(action);
    if (action && routed !== action) { form.setAttribute("action", routed); }
  }, true);
})();"""


def js_literal(value: Optional[str]) -> str:
    """JSON literal that is safe inside an inline ``<script>``."""
    return json.dumps(value or "").replace("</", "<\\/")


def build_shim_script(slug: str, proxy_origin: Optional[str], nonce: Optional[str] = None) -> str:
    """Return the complete ``<script>`` element for one page."""
    body = (
        SHIM_TEMPLATE
        .replace("__PROXY_ORIGIN__", js_literal(proxy_origin))
        .replace("__SLUG_PREFIX__", js_literal(f"/{slug}"))
    )
    nonce_attr = f' nonce="{html.escape(nonce, quote=True)}"' if nonce else ""
    return f'<script {SHIM_MARKER}="1"{nonce_attr}>{body}</script>'
