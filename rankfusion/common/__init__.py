"""Common utilities shared by the fusion pipeline and its callers.

Includes:
- ``config``: pydantic-settings configuration from ``RANKFUSION_*`` variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers and a timing decorator.

Import pattern:
- from rankfusion.common.config import load_config
- from rankfusion.common.logging import configure_logging
"""
