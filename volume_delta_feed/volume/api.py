"""
Volume data HTTP API and dashboard.

POST /api/volume   ingest one bar (object) or a batch (array of 1..100 bars)
GET  /api/stats    volume delta summary for the dashboard widget
GET  /             terminal page with the volume delta widget
"""

from __future__ import annotations

from typing import Optional

import duckdb  # type: ignore
from flask import Flask, current_app, jsonify, render_template_string, request

from . import db
from .config import AppConfig, load_config
from .logger import get_logger
from .stats import bias, compute_stats, sparkline_path, time_cutoff
from .validation import VALID_SYMBOLS, validate_bar, validate_batch

logger = get_logger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE", "CONNECT"]


def method_not_allowed():
    resp = jsonify({"success": False, "error": "Method not allowed. Use POST."})
    resp.headers["Allow"] = "POST"
    return resp, 405


def ingest_volume():
    if request.method != "POST":
        return method_not_allowed()

    try:
        payload = request.get_json(silent=True)
        is_batch = isinstance(payload, list)
        validation = validate_batch(payload) if is_batch else validate_bar(payload)

        if not validation.ok:
            errors = validation.messages()
            logger.warning(f"Rejected volume payload: {errors}")
            return jsonify({"success": False, "error": "Validation failed", "errors": errors}), 400

        bars = validation.data if is_batch else [validation.data]
        try:
            stored = db.insert_bars(flask_config().duckdb_path, bars)
        except duckdb.Error as e:
            logger.error(f"DuckDB insert error: {e}")
            return jsonify({"success": False, "error": "Database insertion failed", "errors": [str(e)]}), 500

        inserted = len(stored)
        logger.info(f"Inserted {inserted} volume bar(s)")
        return jsonify(
            {
                "success": True,
                "message": f"Successfully inserted {inserted} volume bar(s)",
                "inserted": inserted,
                "data": db.rows_to_records(stored),
            }
        )
    except Exception as e:
        logger.exception("API error")
        return jsonify({"success": False, "error": "Internal server error", "errors": [str(e) or "Unknown error occurred"]}), 500


def volume_stats():
    cfg = flask_config()
    symbol = request.args.get("symbol", cfg.default_symbol).upper()
    timeframe = request.args.get("timeframe", cfg.default_timeframe).lower()
    time_range = request.args.get("range", "1h")

    try:
        cutoff = time_cutoff(time_range)
    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    try:
        bars = db.read_bars(cfg.duckdb_path, symbol, timeframe, cutoff)
    except duckdb.Error as e:
        logger.error(f"Error fetching volume data: {e}")
        return jsonify({"success": False, "error": str(e)}), 500

    stats = compute_stats(bars)
    body = stats.to_dict()
    body.update(
        {
            "success": True,
            "symbol": symbol,
            "timeframe": timeframe,
            "range": time_range,
            "bias": bias(stats.total_delta),
            "playback_warning": not stats.is_live and time_range != "all",
            "sparkline_path": sparkline_path(stats.sparkline_data),
        }
    )
    return jsonify(body)


def index():
    cfg = flask_config()
    return render_template_string(
        DASHBOARD_HTML,
        symbols=VALID_SYMBOLS[:4],
        symbol=cfg.default_symbol,
        timeframe=cfg.default_timeframe,
        refresh_ms=int(cfg.refresh_interval * 1000),
    )


def flask_config() -> AppConfig:
    return current_app.config["VOLUME"]


def create_app(config: Optional[AppConfig] = None) -> Flask:
    cfg = config or load_config()
    db.ensure_table(cfg.duckdb_path)

    app = Flask(__name__)
    app.config["VOLUME"] = cfg
    # OPTIONS is routed to ingest_volume too, so it gets the JSON 405
    app.add_url_rule(
        "/api/volume", "ingest_volume", ingest_volume, methods=ALL_METHODS, provide_automatic_options=False
    )
    app.add_url_rule("/api/stats", "volume_stats", volume_stats, methods=["GET"])
    app.add_url_rule("/", "index", index, methods=["GET"])

    @app.errorhandler(405)
    def _method_not_allowed(e):
        # methods no rule lists at all
        if request.path == "/api/volume":
            return method_not_allowed()
        return e

    return app


DASHBOARD_HTML = """<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <title>MNQ Volume Terminal</title>
  <style>
    body { background:#111827; color:#d1d5db; font-family:monospace; margin:0; }
    header { padding:8px 16px; border-bottom:1px solid #374151; font-size:12px; }
    main { display:grid; grid-template-columns:160px 1fr 320px; gap:12px; padding:12px; }
    .panel { border:1px solid #374151; border-radius:6px; padding:12px; }
    .placeholder { color:#4b5563; font-size:12px; min-height:120px; }
    .bullish { color:#4ade80; } .bearish { color:#f87171; } .neutral { color:#9ca3af; }
    .warn { color:#facc15; font-size:11px; }
    .error { color:#f87171; font-size:12px; cursor:pointer; }
    #total { font-size:28px; font-weight:bold; }
  </style>
</head>
<body>
  <header>MNQ Volume Terminal v1.0</header>
  <main>
    <div class="panel">
      {% for s in symbols %}<div>{{ s }}</div>{% endfor %}
    </div>
    <div>
      <div class="panel placeholder">Candles: coming soon</div>
      <div class="panel placeholder">Coming Soon: Volume Distribution Heatmap</div>
    </div>
    <div class="panel" id="widget">
      <div><span id="title">{{ symbol }} Volume Delta</span> <span id="tf">{{ timeframe }}</span> <span id="mode"></span></div>
      <div id="warning" class="warn"></div>
      <div id="total" class="neutral">0</div>
      <div id="avg"></div>
      <svg viewBox="0 0 100 30" preserveAspectRatio="none" style="width:100%;height:32px">
        <path id="spark" fill="none" stroke-width="2" vector-effect="non-scaling-stroke"></path>
      </svg>
      <div id="updated"></div>
      <div id="error" class="error" onclick="this.textContent=''"></div>
    </div>
  </main>
  <script>
    const params = {symbol: "{{ symbol }}", timeframe: "{{ timeframe }}", range: "1h"};
    const fmt = n => (n > 0 ? "+" : "") + Math.round(n).toLocaleString();
    async function refresh() {
      try {
        const r = await fetch("/api/stats?" + new URLSearchParams(params));
        const s = await r.json();
        if (!s.success) throw new Error(s.error);
        document.getElementById("total").textContent = fmt(s.total_delta);
        document.getElementById("total").className = s.bias;
        document.getElementById("avg").textContent = "Avg: " + fmt(s.avg_delta) + " | Bars: " + s.bar_count;
        document.getElementById("mode").textContent = s.is_live ? "Live" : "Playback (" + s.data_source + ")";
        document.getElementById("warning").textContent = s.playback_warning
          ? "Warning: Historical data - Time filters show relative to playback session" : "";
        const spark = document.getElementById("spark");
        spark.setAttribute("d", s.sparkline_path);
        spark.setAttribute("stroke", s.total_delta > 0 ? "#4ade80" : "#f87171");
        document.getElementById("updated").textContent = "Last update: " + (s.last_update || "No data");
        document.getElementById("error").textContent = "";
      } catch (e) {
        document.getElementById("error").textContent = e.message || "Failed to fetch data";
      }
    }
    refresh();
    setInterval(refresh, {{ refresh_ms }});
  </script>
</body>
</html>
"""
