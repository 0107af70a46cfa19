"""
CivicDesk Configuration

Centralized configuration for the issue reporting core.
"""

import os
from pathlib import Path

PACKAGE_DIR = Path(__file__).parent

# =============================================================================
# Storage Configuration
# =============================================================================

DATA_DIR = Path(os.environ.get("CIVICDESK_DATA_DIR", "data"))
DB_PATH = os.environ.get("CIVICDESK_DB_PATH", str(DATA_DIR / "issues.db"))
DIRECTORY_PATH = os.environ.get(
    "CIVICDESK_DIRECTORY", str(PACKAGE_DIR / "data" / "employees.yaml")
)


# =============================================================================
# Classification Configuration
# =============================================================================

AVAILABLE_MODELS = {
    "haiku": "global.anthropic.claude-haiku-4-5-20251001-v1:0",
    "sonnet": "global.anthropic.claude-sonnet-4-5-20250929-v1:0",
    # Legacy models
    "haiku-3": "anthropic.claude-3-haiku-20240307-v1:0",
    "sonnet-3": "anthropic.claude-3-sonnet-20240229-v1:0",
}

CLASSIFIER_MODEL = os.environ.get("CIVICDESK_CLASSIFIER_MODEL", "haiku")
CLASSIFIER_ENABLED = os.environ.get("CIVICDESK_CLASSIFIER_ENABLED", "false").lower() in (
    "1", "true", "yes",
)
CLASSIFIER_TIMEOUT_SECONDS = float(os.environ.get("CIVICDESK_CLASSIFIER_TIMEOUT", "10.0"))
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")


def get_model_id(model_name: str = None) -> str:
    """
    Get the full model ID for a given model name.

    Args:
        model_name: Short name (haiku, sonnet) or full model ID

    Returns:
        Full Bedrock model ID
    """
    name = model_name or CLASSIFIER_MODEL

    # If it's already a full model ID, return it
    if name.startswith(("anthropic.", "global.", "us.", "eu.", "apac.")):
        return name

    return AVAILABLE_MODELS.get(name.lower(), AVAILABLE_MODELS["haiku"])


# =============================================================================
# Notification Configuration
# =============================================================================

SLACK_WEBHOOK_URL = os.environ.get("SLACK_WEBHOOK_URL", "")


if __name__ == "__main__":
    print("CivicDesk Configuration")
    print("=" * 50)
    print(f"Database: {DB_PATH}")
    print(f"Employee directory: {DIRECTORY_PATH}")
    print(f"Classifier: {'enabled' if CLASSIFIER_ENABLED else 'disabled'} "
          f"({CLASSIFIER_MODEL} -> {get_model_id()})")
    print(f"Region: {AWS_REGION}")
