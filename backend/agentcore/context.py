"""
Runtime Context

Execution context handed to the orchestrator and to every tool it registers.
One instance per agent; there is no process-wide default.
"""

import os
import platform
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class LocalEnvironment:
    """Where tools may read and write"""

    os_type: str
    output_directory: str
    temp_directory: str
    api_keys: Dict[str, str] = field(default_factory=dict)

    def ensure_directories(self) -> None:
        os.makedirs(self.output_directory, exist_ok=True)
        os.makedirs(self.temp_directory, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "os_type": self.os_type,
            "output_directory": self.output_directory,
            "temp_directory": self.temp_directory,
            # Never serialize secrets
            "api_keys": sorted(self.api_keys),
        }


@dataclass
class ToolPreference:
    """Per-tool overrides merged into RunOptions.extra"""

    tool_name: str
    custom_options: Dict[str, Any] = field(default_factory=dict)


def _detect_os() -> str:
    system = platform.system()
    if system == "Darwin":
        return "MacOS"
    return system or "Linux"


@dataclass
class RuntimeContext:
    """Environment and tool preferences shared by one agent's tools"""

    environment: LocalEnvironment
    tool_preferences: Dict[str, ToolPreference] = field(default_factory=dict)

    @classmethod
    def from_env(cls, output_directory: Optional[str] = None) -> "RuntimeContext":
        """Build a context from the current process environment."""
        home = os.path.expanduser("~")
        environment = LocalEnvironment(
            os_type=_detect_os(),
            output_directory=output_directory
            or os.getenv("AGENTCORE_OUTPUT_DIR", os.path.join(home, "tools-output")),
            temp_directory=os.path.join(tempfile.gettempdir(), "tools-temp"),
        )
        return cls(environment=environment)

    def add_tool_preference(self, tool_name: str, **options: Any) -> None:
        self.tool_preferences[tool_name] = ToolPreference(tool_name=tool_name, custom_options=options)

    def get_tool_preference(self, tool_name: str) -> Optional[ToolPreference]:
        return self.tool_preferences.get(tool_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment.to_dict(),
            "tool_preferences": {
                name: pref.custom_options for name, pref in self.tool_preferences.items()
            },
        }
