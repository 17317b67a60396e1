# ==========================================
# 1. Configuration Filenames
# ==========================================
CONFIG_FILE = "config.json"
CONFIG_RESOURCES_FILE = "config_resources.json"
CONFIG_CREDENTIALS_FILE_TEMPLATE = "config_credentials_{provider}.json"

# Keys required in config.json
CONFIG_REQUIRED_FIELDS = ["session_name"]

# ==========================================
# 2. Project Layout
# ==========================================
PROJECT_UPLOAD_DIR_NAME = "upload"
DEFAULT_PROJECT_NAME = "template"
DEFAULT_STATE_FILE_NAME = "state.json"

# Overrides the directory that contains upload/
PROJECT_HOME_ENV_VAR = "PROVISIONER_HOME"

# ==========================================
# 3. Providers
# ==========================================
DEFAULT_PROVIDER = "azure"
DEFAULT_REGION = "eastus"

# Environment fallbacks for Azure credentials
AZURE_ENV_VARS = {
    "azure_subscription_id": "AZURE_SUBSCRIPTION_ID",
    "azure_tenant_id": "AZURE_TENANT_ID",
    "azure_client_id": "AZURE_CLIENT_ID",
    "azure_client_secret": "AZURE_CLIENT_SECRET",
}

# ==========================================
# 4. Engine Defaults
# ==========================================
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_BASE_SECONDS = 2.0
DEFAULT_BACKOFF_MAX_SECONDS = 60.0
DEFAULT_MAX_CONCURRENCY = 8

# ==========================================
# 5. CLI Exit Codes
# ==========================================
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_RESIDUAL = 3

