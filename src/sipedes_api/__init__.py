"""sipedes_api."""

from .monitoring.logger import configure_logger

# Configure logger with default settings (just console logging)
# create_app() reconfigures it from Settings (level, optional file sink)
configure_logger()
