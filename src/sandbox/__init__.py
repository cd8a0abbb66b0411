"""WebForge sandbox module.

Everything that touches the execution environment: the abstract capability,
its E2B and in-memory implementations, provisioning of the fixed project
skeleton, and dev-server bring-up with readiness polling.

Key classes:
    ExecutionEnvironment - Handle to one live sandbox
    SandboxBackend       - Factory for environments (E2BBackend, MemoryBackend)
    SandboxProvisioner   - Create -> seed -> npm install
    DevServerLauncher    - Background ``npm run dev``
    ReadinessProber      - Bounded polling of the preview URL

``E2BBackend`` lives in ``src.sandbox.remote`` and is imported lazily by
``backend_for`` so the in-memory backend works without the E2B SDK loaded.
"""

from .base import CommandResult, ExecutionEnvironment, SandboxBackend, SandboxError
from .memory import MemoryBackend, MemoryEnvironment
from .provisioner import (
    PROVISIONED_FILES,
    PROVISIONED_PREFIXES,
    SandboxProvisioner,
    backend_for,
    is_provisioned,
)
from .readiness import DevServerLauncher, ProbeResult, ReadinessProber
from .renderer import TemplateRenderer

__all__ = [
    # Capability
    "ExecutionEnvironment",
    "SandboxBackend",
    "SandboxError",
    "CommandResult",
    # Backends
    "MemoryBackend",
    "MemoryEnvironment",
    "backend_for",
    # Provisioning
    "SandboxProvisioner",
    "TemplateRenderer",
    "PROVISIONED_FILES",
    "PROVISIONED_PREFIXES",
    "is_provisioned",
    # Bring-up
    "DevServerLauncher",
    "ReadinessProber",
    "ProbeResult",
]
