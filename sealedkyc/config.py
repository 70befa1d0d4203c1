"""
Configuration module for SealedKYC.

Centralizes configuration with environment variable support.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("SEALEDKYC_ENV", "dev")  # dev|stage|prod

# Identities
OWNER_IDENTITY = os.getenv("SEALEDKYC_OWNER", "owner")
SERVICE_IDENTITY = os.getenv("SEALEDKYC_SERVICE_IDENTITY", "sealedkyc-service-001")

# Cooldown applied to submissions and decryption requests (seconds)
COOLDOWN_SECONDS = int(os.getenv("SEALEDKYC_COOLDOWN_SECONDS", "60"))

# Oracle trust file written by `sealedkyc keygen`
ORACLE_KEY_PATH = os.getenv("SEALEDKYC_ORACLE_KEY_PATH", "trust/oracle_key.json")
ORACLE_SIGNING_KEY_PATH = os.getenv("SEALEDKYC_ORACLE_SIGNING_KEY_PATH", "secrets/oracle_signing_key.json")

# Logging
LOG_LEVEL = os.getenv("SEALEDKYC_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("SEALEDKYC_LOG_JSON", "true").lower() in ("1", "true", "yes")


# ============================================================
# Loaders
# ============================================================

def load_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_json(data: Dict[str, Any], path: str) -> None:
    """Write JSON, creating parent directories."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def write_oracle_keys(private_b64: str, public_b64: str, kid: str,
                      private_path: str = ORACLE_SIGNING_KEY_PATH,
                      trust_path: str = ORACLE_KEY_PATH) -> None:
    """Write the oracle signing key file and the matching trust file."""
    save_json({"kid": kid, "private_key_b64": private_b64}, private_path)
    save_json({"kid": kid, "public_key_b64": public_b64}, trust_path)


def load_oracle_key(path: str = ORACLE_KEY_PATH) -> Dict[str, str]:
    """
    Load the oracle trust file.

    Returns:
        Dict with "kid" and "public_key_b64"

    Raises:
        FileNotFoundError: If the file does not exist
        KeyError: If a required field is missing
    """
    raw = load_json(path)
    return {"kid": raw["kid"], "public_key_b64": raw["public_key_b64"]}


def oracle_key_configured(path: str = ORACLE_KEY_PATH) -> bool:
    return Path(path).exists()


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("SEALEDKYC_DEBUG", "").lower() in ("1", "true", "yes")
