"""
Session context and configuration classes.

Instead of module-level name constants and shared credentials, every
component receives a SessionContext: constructed once per session by the
caller (CLI, REST API, tests) and passed explicitly.

Lifecycle:
    1. Config and resource specs are loaded from the project directory
    2. The provider is created from the registry and initialized
    3. The context is handed to ProvisioningSession
    4. The session's teardown runs before the context is discarded
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, TYPE_CHECKING

from .retry import RetryPolicy

if TYPE_CHECKING:
    from .models import ResourceSpec
    from .protocols import CloudProvider


@dataclass
class SessionConfig:
    """
    Parsed session configuration from config.json.

    Attributes:
        session_name: Label used in logs and reports
        mode: "DEBUG" enables debug logging and stack traces
        provider: Registered provider name (e.g. "azure", "simulated")
        region: Default region for specs that do not set one
        max_attempts: Attempts per provider call for transient failures
        backoff_base_seconds: First backoff wait, doubled per attempt
        backoff_max_seconds: Cap for a single backoff wait
        max_concurrency: Concurrent provider calls within one layer
        state_file: Ledger state file, relative to the project directory
    """

    session_name: str
    mode: str = "PRODUCTION"
    provider: str = "azure"
    region: str = "eastus"
    max_attempts: int = 5
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 60.0
    max_concurrency: int = 8
    state_file: str = "state.json"

    @property
    def debug(self) -> bool:
        return self.mode.upper() == "DEBUG"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.backoff_base_seconds,
            max_delay=self.backoff_max_seconds,
        )


@dataclass
class SessionContext:
    """
    Everything a provisioning session needs, passed explicitly.

    Attributes:
        project_name: Name of the project directory under upload/
        project_path: Path to the project directory
        config: Parsed SessionConfig
        provider: Initialized CloudProvider instance
        specs: Resource specs to provision
        credentials: Raw credentials by provider name
        cancel_event: Session-wide cancellation token
        state_file: Overrides config.state_file when set
    """

    project_name: str
    project_path: Path
    config: SessionConfig
    provider: Optional['CloudProvider'] = None
    specs: List['ResourceSpec'] = field(default_factory=list)
    credentials: Dict[str, dict] = field(default_factory=dict)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    state_file: Optional[Path] = None

    def get_state_file(self) -> Path:
        """Ledger state file: explicit override, else config path inside the project."""
        if self.state_file is not None:
            return Path(self.state_file)
        return self.project_path / self.config.state_file

    def cancel(self) -> None:
        """Abort in-flight waits and short-circuit all not-yet-started operations."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()
