"""Application constants."""

USER_AGENT = "latlng-address-enricher/1.0"
CACHE_KEY_PRECISION = 6
OUTPUT_HEADERS = ("Address", "District", "Province")
COORDINATE_HEADER_HINTS = ("latlg", "lat", "coordinate", "coord")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
PROGRESS_EVERY_ROWS = 100
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "logger",
    "level",
    "stage",
    "event",
    "status",
    "row",
    "batch",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
