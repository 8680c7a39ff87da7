"""Global constants for aicos-desktop."""

# Backend server defaults

DEFAULT_SERVER_PORT = 4567
DEFAULT_HOST = "localhost"
HEALTH_PATH = "/health"

# Readiness polling (30 attempts x 500ms = 15 second ceiling)
DEFAULT_MAX_ATTEMPTS = 30
DEFAULT_RETRY_DELAY = 0.5
DUPLICATE_CHECK_TIMEOUT = 1.0
DEFAULT_REQUEST_TIMEOUT = 5.0
# Floor for a readiness probe squeezed by the remaining wait budget
MIN_PROBE_TIMEOUT = 0.1

# Termination
TERMINATE_TIMEOUT = 5.0

# Configuration file: ~/.aicodeswitch/aicodeswitch.conf
CONFIG_DIR_NAME = ".aicodeswitch"
CONFIG_FILE_NAME = "aicodeswitch.conf"
CONFIG_PORT_KEY = "PORT"
SERVER_LOG_FILE_NAME = "desktop-server.log"

# Bundled server layout, relative to the resource root
RESOURCE_DIR_NAME = "files"
SERVER_ENTRY_PARTS = ("dist", "server", "main.js")
RESOURCE_ROOT_ENV = "AICOS_RESOURCE_ROOT"

# Environment handed to the server process
PORT_ENV = "PORT"
MODE_ENV = "NODE_ENV"
PRODUCTION_MODE = "production"

NODE_INSTALL_URL = "https://nodejs.org/"

# Windows process creation flag that keeps the child from opening a console
CREATE_NO_WINDOW = 0x08000000
