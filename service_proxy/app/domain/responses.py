"""
Response builders for the proxy's own (non-relayed) answers.
"""

import html
from typing import Dict, Iterable, Tuple

from fastapi import Response
from fastapi.responses import HTMLResponse, JSONResponse

from .headers import HeaderPolicy
from .models import RateLimitDecision

NOT_FOUND_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>404 - Slug Not Found</title>
  <style>
    body {{
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
      display: flex;
      align-items: center;
      justify-content: center;
      min-height: 100vh;
      margin: 0;
      background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
    }}
    .container {{
      background: white;
      padding: 40px;
      border-radius: 16px;
      box-shadow: 0 20px 60px rgba(0,0,0,0.3);
      text-align: center;
      max-width: 500px;
    }}
    h1 {{ color: #667eea; font-size: 3rem; margin: 0 0 16px 0; }}
    p {{ color: #666; font-size: 1.1rem; margin-bottom: 24px; }}
    a {{
      display: inline-block;
      padding: 14px 32px;
      background: #667eea;
      color: white;
      text-decoration: none;
      border-radius: 8px;
      font-weight: 600;
    }}
  </style>
</head>
<body>
  <div class="container">
    <h1>404</h1>
    <p>Slug <strong>"{slug}"</strong> was not found.</p>
    <p>Please check that the address is correct.</p>
    <a href="/">Back to home</a>
  </div>
</body>
</html>
"""


def not_found_response(slug: str) -> HTMLResponse:
    """Static 404 page with the requested slug escaped."""
    body = NOT_FOUND_TEMPLATE.format(slug=html.escape(slug, quote=True))
    return HTMLResponse(content=body, status_code=404)


def rate_limit_headers(decision: RateLimitDecision) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_seconds),
    }


def rate_limited_response(decision: RateLimitDecision) -> JSONResponse:
    """429 answer for a rejected admission."""
    headers = rate_limit_headers(decision)
    headers["Retry-After"] = str(max(1, decision.reset_seconds))
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests"},
        headers=headers,
    )


def apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> Response:
    """Expose the client's remaining budget on an admitted response."""
    for name, value in rate_limit_headers(decision).items():
        response.headers[name] = value
    return response


def preflight_response(policy: HeaderPolicy) -> Response:
    """204 answer to a CORS preflight."""
    return Response(status_code=204, headers=dict(policy.cors_headers()))


def relayed_response(status_code: int, headers: Iterable[Tuple[str, str]], body: bytes) -> Response:
    """Response carrying a backend answer; repeated headers such as Set-Cookie are kept."""
    response = Response(content=body, status_code=status_code)
    for name, value in headers:
        response.headers.append(name, value)
    return response
