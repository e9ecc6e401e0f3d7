"""
Configuration management for Firebase services and application settings.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .json_utils import parse_json_object

load_dotenv()


@dataclass
class FirebaseConfig:
    """Configuration blob for the Firebase project (Firestore + Identity Toolkit)."""
    project_id: str
    api_key: str
    raw: Dict[str, Any]


@dataclass
class AuthConfig:
    """Configuration for the identity provider."""
    initial_auth_token: Optional[str]
    timeout: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    app_id: str
    firebase: Optional[FirebaseConfig]
    auth: AuthConfig
    mcp: MCPConfig


def parse_firebase_config(raw: Optional[str]) -> Optional[FirebaseConfig]:
    """Build a FirebaseConfig from the JSON blob supplied by the environment.

    Args:
        raw: JSON object string, usually the web config copied from the Firebase console

    Returns:
        FirebaseConfig, or None when the blob is absent, malformed or lacks a project id
    """
    blob = parse_json_object(raw)
    if blob is None:
        return None

    project_id = blob.get('projectId') or blob.get('project_id')
    if not project_id:
        return None

    return FirebaseConfig(project_id=str(project_id), api_key=str(blob.get('apiKey') or blob.get('api_key') or ''), raw=blob)


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Firebase configuration; None degrades persistence to "unavailable"
    firebase_config = parse_firebase_config(os.getenv('FIREBASE_CONFIG'))

    # Identity provider configuration
    auth_config = AuthConfig(initial_auth_token=os.getenv('INITIAL_AUTH_TOKEN') or None,
                             timeout=int(os.getenv('IDENTITY_TIMEOUT', '10')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'stdio'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     app_id=os.getenv('APP_ID', 'default-app-id'),
                     firebase=firebase_config,
                     auth=auth_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
