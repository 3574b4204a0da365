"""Internal constants shared across the library."""

BASE_URL = "https://api.delivery.com"
SYNC_ENDPOINT = "https://0fhmgyybv3.execute-api.us-east-2.amazonaws.com/saasintel/sync/packages"
USER_AGENT = "pydelivery/0.4"

#: Cache key of the unfiltered package list; filtered lists extend it.
ALL_PACKAGES_KEY = "packages_all"

DEFAULT_ENDPOINTS: dict[str, str] = {
    "packages": "/packages",
    "package_detail": "/packages/{id}",
    "update_status": "/packages/{id}/status",
    "search": "/packages/search",
    "create": "/packages",
    "delete": "/packages/{id}",
    "history": "/packages/{id}/history",
    "batch_status": "/packages/batch/status",
    "health": "/health",
}

# ------------------------------------------------------------------
# Marker placeholder (Guadalajara city centre)
# ------------------------------------------------------------------

FALLBACK_LATITUDE = 20.676109
FALLBACK_LONGITUDE = -103.347769

VIABLE_COLOR = "#10b981"
REVIEW_COLOR = "#f59e0b"
