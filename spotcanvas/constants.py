from __future__ import annotations

EXCLUDED_CONFIG_FILE_PARAMS = (
    "urls",
    "config_path",
    "read_urls_as_txt",
    "no_config_file",
    "version",
    "help",
)

X_NOT_FOUND_STRING = "{} not found at {}"

URL_RE = r"(album|playlist|track)[/:](\w{22})"

CANVAS_NOT_AVAILABLE_MESSAGE = "Canvas not available"
