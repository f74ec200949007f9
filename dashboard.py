"""HTML rendering of GET /metrics for browsers."""

from html import escape

from models import MetricsResponse


def _fmt(value) -> str:
    return "n/a" if value is None else escape(str(value))


def render_dashboard(metrics: MetricsResponse) -> str:
    rows = [
        ("Cache hits", metrics.cache_hits),
        ("Cache misses", metrics.cache_misses),
        ("Hit rate", f"{metrics.hit_rate_percent}%"),
        ("Total keys", metrics.total_keys),
        ("Used memory", metrics.used_memory),
        ("Uptime", f"{metrics.uptime:.0f}s"),
        ("Store", metrics.store_state),
    ]
    body_rows = "\n".join(f"<tr><th>{escape(label)}</th><td>{_fmt(value)}</td></tr>" for label, value in rows)
    banner = (
        '<p class="degraded">Store unreachable - showing in-process counters only.</p>'
        if metrics.degraded else ""
    )

    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta http-equiv="refresh" content="10">
<title>PostPolice Cache Metrics</title>
<style>
body {{ font-family: system-ui, sans-serif; margin: 2rem; }}
table {{ border-collapse: collapse; }}
th, td {{ padding: 0.4rem 1rem; border-bottom: 1px solid #ddd; text-align: left; }}
.degraded {{ color: #b00020; font-weight: bold; }}
</style>
</head>
<body>
<h1>PostPolice Cache Metrics</h1>
{banner}
<table>
{body_rows}
</table>
<p>Admin: <code>POST /reset-stats</code>, <code>POST /clear-cache</code></p>
</body>
</html>
"""
