"""Version reporting, client cache invalidation, and version tracking."""
import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel, Field

from ..services.database import get_environment
from ..services.versioning import MINIMUM_CURRENT_VERSION, client_identifier, get_app_version, tracker


log = logging.getLogger("chatflow.version")

router = APIRouter(tags=["version"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate, private, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Cache-Control": "no-cache",
    "X-Accel-Expires": "0",
}


class VersionReport(BaseModel):
    version: str = Field(..., min_length=1, max_length=50, pattern=r"^v?[0-9A-Za-z.+-]+$")
    userId: Optional[str] = Field(None, max_length=128)
    userAgent: Optional[str] = None


@router.get("/api/version")
def version(request: Request, response: Response):
    response.headers.update(NO_CACHE_HEADERS)
    now_ms = int(time.time() * 1000)
    body = {
        "version": get_app_version(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": get_environment(),
        "forceRefresh": False,
        "cacheBreaker": now_ms,
    }
    referer = request.headers.get("referer")
    if referer:
        body["refreshUrl"] = f"{referer.split('?')[0]}?v={now_ms}"
    return body


NUCLEAR_CACHE_SCRIPT = """
(function() {
  console.log('Cache buster activated');

  try {
    var authData = localStorage.getItem('firebase:authUser');
    var userPrefs = localStorage.getItem('userPreferences');
    localStorage.clear();
    if (authData) localStorage.setItem('firebase:authUser', authData);
    if (userPrefs) localStorage.setItem('userPreferences', userPrefs);
    localStorage.setItem('appVersion', %(version)s);
    localStorage.setItem('cacheNuked', Date.now());
  } catch (e) {}

  try {
    sessionStorage.clear();
  } catch (e) {}

  if ('serviceWorker' in navigator) {
    navigator.serviceWorker.getRegistrations().then(function(registrations) {
      registrations.forEach(function(registration) { registration.unregister(); });
    });
  }

  if ('caches' in window) {
    caches.keys().then(function(names) {
      names.forEach(function(name) { caches.delete(name); });
    });
  }

  var banner = document.createElement('div');
  banner.style.cssText = 'position: fixed; top: 0; left: 0; right: 0; background: linear-gradient(135deg, #2563eb 0%%, #7c3aed 100%%); color: white; padding: 16px; text-align: center; font-family: -apple-system, BlinkMacSystemFont, sans-serif; font-size: 14px; font-weight: 500; z-index: 999999;';
  banner.innerHTML = '<div><strong>Updating to latest version...</strong> New features loading!</div>';
  document.body.appendChild(banner);

  setTimeout(function() {
    var timestamp = Date.now();
    var url = window.location.href.split('?')[0] + '?v=' + timestamp + '&cache_bust=' + timestamp + '&force_refresh=1';
    window.location.replace(url);
  }, 1000);
})();
"""


@router.get("/nuclear-cache-buster")
def nuclear_cache_buster(request: Request):
    """Script that wipes client caches (keeping auth) and reloads with cache-busting params."""
    client = request.client.host if request.client else "unknown"
    log.info(f"Cache buster served to {client}")
    script = NUCLEAR_CACHE_SCRIPT % {"version": json.dumps(get_app_version())}
    return Response(content=script, media_type="application/javascript", headers=NO_CACHE_HEADERS)


@router.post("/api/version-tracking/report")
def report_version(report: VersionReport, request: Request):
    ip = request.client.host if request.client else "unknown"
    identifier = client_identifier(report.userId, ip, report.userAgent)
    tracker.report(identifier, report.version, report.userAgent, ip=ip, user_id=report.userId)
    log.info(f"Version tracking: {identifier} reported version {report.version}")
    return {"success": True, "tracked": True, "version": report.version}


@router.get("/api/version-tracking/stats")
def version_stats():
    return tracker.stats()


DASHBOARD_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Version Tracking Dashboard</title>
  <style>
    body { font-family: Arial, sans-serif; margin: 40px; background: #f5f5f5; }
    .container { max-width: 1200px; background: white; padding: 30px; border-radius: 8px; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }
    .header { border-bottom: 2px solid #2563eb; padding-bottom: 20px; margin-bottom: 30px; }
    .stat-card { background: #f8f9fa; padding: 20px; margin: 15px 0; border-radius: 6px; border-left: 4px solid #2563eb; }
    .version-item { padding: 12px; margin: 8px 0; border-radius: 4px; display: flex; justify-content: space-between; }
    .version-current { background: #d4edda; border-left: 4px solid #28a745; }
    .version-outdated { background: #f8d7da; border-left: 4px solid #dc3545; }
    .user-item { padding: 10px; border-bottom: 1px solid #eee; font-size: 0.9em; }
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>ChatFlow Version Tracking Dashboard</h1>
      <p>Current minimum version: v__MINIMUM__</p>
    </div>
    <div id="stats-container">Loading...</div>
  </div>
  <script>
    var MINIMUM = '__MINIMUM__'.split('.').map(Number);
    function esc(s) {
      return String(s).replace(/[&<>"']/g, function(c) {
        return {'&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;', "'": '&#39;'}[c];
      });
    }
    function outdated(v) {
      var parts = v.replace(/^v/, '').split('.').map(function(p) { return parseInt(p, 10) || 0; });
      for (var i = 0; i < Math.max(parts.length, MINIMUM.length); i++) {
        var a = parts[i] || 0, b = MINIMUM[i] || 0;
        if (a !== b) return a < b;
      }
      return false;
    }
    async function loadStats() {
      var container = document.getElementById('stats-container');
      try {
        var response = await fetch('/api/version-tracking/stats');
        var data = await response.json();
        var pct = data.totalUsers ? ((data.outdatedUsers / data.totalUsers) * 100).toFixed(1) : '0.0';
        container.innerHTML =
          '<div class="stat-card"><h3>Overview</h3>' +
          '<p><strong>Total active users:</strong> ' + data.totalUsers + '</p>' +
          '<p><strong>Users on outdated versions:</strong> ' + data.outdatedUsers + ' (' + pct + '%)</p>' +
          '<p><strong>Last updated:</strong> ' + new Date(data.lastUpdated).toLocaleString() + '</p></div>' +
          '<div class="stat-card"><h3>Version distribution</h3>' +
          data.versionDistribution.map(function(v) {
            return '<div class="version-item ' + (outdated(v.version) ? 'version-outdated' : 'version-current') + '">' +
              '<span><strong>v' + esc(v.version) + '</strong></span><span>' + v.count + ' users (' + v.percentage + '%)</span></div>';
          }).join('') + '</div>' +
          '<div class="stat-card"><h3>Recent activity</h3>' +
          data.recentUsers.map(function(u) {
            return '<div class="user-item"><strong>' + esc(u.identifier) + '</strong> v' + esc(u.version) +
              ' &middot; ' + new Date(u.lastSeen).toLocaleString() + '</div>';
          }).join('') + '</div>';
      } catch (e) {
        container.innerHTML = '<p>Error loading stats: ' + esc(e.message) + '</p>';
      }
    }
    loadStats();
    setInterval(loadStats, 30000);
  </script>
</body>
</html>
"""


@router.get("/api/version-tracking/dashboard", response_class=HTMLResponse)
def version_dashboard():
    return DASHBOARD_HTML.replace("__MINIMUM__", MINIMUM_CURRENT_VERSION)
