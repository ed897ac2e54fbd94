"""
Flask app for the ship card image endpoint.
- /: landing page with ping + preview links
- /ping: liveness
- /ship: render the card PNG for ?score=&u1=&u2= (debug=1 returns JSON diagnostics)
- Every response is no-store so chat embeds never show a stale score
"""

import logging
import os
import time
from io import BytesIO

from flask import Flask, jsonify, make_response, request, send_file

from card_config import CardLayout
from card_renderer import (
    RenderFailure, RenderRequest, TemplateUnavailable, debug_report, render_ship_card,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = Flask(__name__)

# ---------------- env ----------------
HOST_URL = os.getenv("HOST_URL")

app.config["SHIP_LAYOUT"] = CardLayout.from_env()
app.config["SHIP_FETCHER"] = None   # callable(url) -> (bytes, mimetype); None = live HTTP

NO_STORE = "no-store, no-cache, must-revalidate, max-age=0"
TEMPLATE_ERROR_TEXT = (
    "Could not load the ship card template (primary and fallback both failed).\n"
    "Retry the same URL with &debug=1 to see which asset fetch failed."
)

INDEX_HTML = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>WHISPER Ship Card API</title></head>
<body style="padding: 24px; font-family: system-ui, sans-serif">
  <h1 style="margin-top: 0">WHISPER Ship Card API</h1>
  <p>Ping test: <a href="/api/ping">/api/ping</a></p>
  <p>Ship image test (no avatars): <a href="{ship}">{ship}</a></p>
  <p>Preview:</p>
  <img src="{ship}" alt="Ship preview" style="border: 1px solid #ddd; max-width: 100%">
  <p style="margin-top: 24px; opacity: 0.75">Debug: <a href="{debug}">{debug}</a></p>
</body>
</html>
"""


# ---------------- helpers ----------------
def _text(body: str, status: int):
    resp = make_response(body, status)
    resp.headers["Content-Type"] = "text/plain; charset=utf-8"
    resp.headers["Cache-Control"] = NO_STORE
    return resp


def _no_store(resp):
    resp.headers["Cache-Control"] = NO_STORE
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp


# ---------------- routes ----------------
@app.route("/", methods=["GET"])
def index():
    t = int(time.time() * 1000)
    ship = f"/api/ship?score=31&t={t}"
    html = INDEX_HTML.format(ship=ship, debug=f"{ship}&debug=1")
    resp = make_response(html, 200)
    resp.headers["Content-Type"] = "text/html; charset=utf-8"
    return _no_store(resp)


@app.route("/ping", methods=["GET"])
@app.route("/api/ping", methods=["GET"])
def ping():
    resp = make_response("pong", 200)
    resp.headers["Content-Type"] = "text/plain; charset=utf-8"
    resp.headers["Cache-Control"] = "no-store, max-age=0"
    return resp


@app.route("/ship", methods=["GET"])
@app.route("/api/ship", methods=["GET"])
def ship():
    layout = app.config["SHIP_LAYOUT"].with_overrides(request.args)
    fetcher = app.config.get("SHIP_FETCHER")
    host_url = (HOST_URL or request.url_root).rstrip("/")
    req = RenderRequest.from_params(request.args)

    if request.args.get("debug") == "1":
        report = debug_report(req, layout, host_url=host_url, fetcher=fetcher)
        return _no_store(make_response(jsonify(report), 200))

    try:
        card = render_ship_card(req, layout, host_url=host_url, fetcher=fetcher)
    except TemplateUnavailable as e:
        logger.error("ship card template unavailable: %s", e)
        return _text(TEMPLATE_ERROR_TEXT, 500)
    except RenderFailure as e:
        logger.exception("ship card render failed")
        return _text(f"Ship card render failed: {e}\nRetry with &debug=1 for diagnostics.", 500)

    resp = make_response(send_file(BytesIO(card.png), mimetype=card.mimetype))
    return _no_store(resp)


if __name__ == "__main__":
    port = int(os.getenv("PORT", 3000))
    app.run(host="0.0.0.0", port=port)
