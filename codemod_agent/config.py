"""
Configuration management for the code-modification agent.

Sections are plain dataclasses composed into one AgentConfig that can be
loaded from and saved to JSON. Unknown keys are ignored, missing keys take
their defaults, and a missing file yields the default configuration.
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Auto-load .env from the current project root
_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


CONFIG_PATH = Path.home() / ".codemod-agent" / "config.json"
DEFAULT_CACHE_PATH = Path.home() / ".codemod-agent" / "summaries.json"


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class OptimizerConfig:
    """
    Context window optimizer thresholds.

    Optimization kicks in above 10k estimated tokens. Files rated 0.5+ are
    admitted; only files rated 0.7+ may push the content total past the
    budget.
    """

    trigger_tokens: int = 10_000
    budget_tokens: int = 10_000
    admit_relevance: float = 0.5
    high_relevance: float = 0.7
    temperature: float = 0.2


@dataclass
class SummaryConfig:
    """Configuration for the source summary cache."""

    popular_dependencies_enabled: bool = True
    popular_threshold: int = 25
    batch_size: int = 50
    max_summary_tokens: int = 10
    cache_path: str = str(DEFAULT_CACHE_PATH)

    def __post_init__(self):
        if self.popular_threshold < 0:
            self.popular_threshold = 0


@dataclass
class PermissionConfig:
    """Capability flags gating filesystem mutations."""

    allow_file_create: bool = False
    allow_file_delete: bool = False
    allow_directory_create: bool = False
    allow_file_move: bool = False
    vision: bool = False
    imagen: bool = False


@dataclass
class ModelConfig:
    """Configuration for model selection and sampling."""

    temperature: float = 0.7
    # Fallback order; the first available provider is the starting backend
    providers: list[str] = field(default_factory=lambda: ["anthropic", "openai"])
    disable_fallback: bool = False

    anthropic_default: str = "claude-sonnet-4-20250514"
    anthropic_cheap: str = "claude-haiku-4-5-20251001"
    anthropic_reasoning: str = "claude-opus-4-5-20251101"
    openai_default: str = "gpt-4o"
    openai_cheap: str = "gpt-4o-mini"
    openai_reasoning: str = "o3-mini"
    image_model: str = "dall-e-3"


@dataclass
class LoopConfig:
    """Budget for the action dispatch loop."""

    max_steps: int = 50


@dataclass
class AgentConfig:
    """
    Complete agent configuration.

    `root_dir` is the project root all file operations are confined to.
    `important_files` are never stripped from the model's context.
    """

    root_dir: str = field(default_factory=os.getcwd)
    important_files: list[str] = field(default_factory=list)
    ignore_patterns: list[str] = field(default_factory=list)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    summaries: SummaryConfig = field(default_factory=SummaryConfig)
    permissions: PermissionConfig = field(default_factory=PermissionConfig)
    models: ModelConfig = field(default_factory=ModelConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)

    def __post_init__(self):
        self.root_dir = str(Path(self.root_dir).resolve())

    @classmethod
    def load(cls, path: Path | None = None) -> "AgentConfig":
        """Load configuration from file."""
        if path is None:
            path = CONFIG_PATH

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        top_level = _filter_dataclass_fields(data, cls)
        for section in ("optimizer", "summaries", "permissions", "models", "loop"):
            top_level.pop(section, None)

        return cls(
            **top_level,
            optimizer=OptimizerConfig(**_filter_dataclass_fields(data.get("optimizer", {}), OptimizerConfig)),
            summaries=SummaryConfig(**_filter_dataclass_fields(data.get("summaries", {}), SummaryConfig)),
            permissions=PermissionConfig(**_filter_dataclass_fields(data.get("permissions", {}), PermissionConfig)),
            models=ModelConfig(**_filter_dataclass_fields(data.get("models", {}), ModelConfig)),
            loop=LoopConfig(**_filter_dataclass_fields(data.get("loop", {}), LoopConfig)),
        )

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)


__all__ = [
    "AgentConfig",
    "CONFIG_PATH",
    "LoopConfig",
    "ModelConfig",
    "OptimizerConfig",
    "PermissionConfig",
    "SummaryConfig",
]
