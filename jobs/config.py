"""
Job configuration for the scheduled loyalty runs.

Defines the JobConfig dataclass for YAML-driven month-end jobs.
"""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

import yaml

from loyalty.config import DEFAULT_CONFIG, LoyaltyConfig


@dataclass
class JobConfig:
    """
    Where the scheduled jobs read and write.

    Load from YAML:
        config = JobConfig.from_yaml("jobs/configs/production.yaml")

    Create programmatically:
        config = JobConfig(store_dir="data/clients", units_csv="data/units.csv")
    """

    # Persistence
    store_dir: str = "data/clients"
    units_csv: Optional[str] = None  # None = no unit records, every client is ready

    # Execution
    max_workers: int = 1

    # Run logs
    logs_dir: str = "logs"

    # Optional tier table override
    loyalty_config: Optional[str] = None

    @classmethod
    def from_yaml(cls, path: Path | str) -> "JobConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def load_loyalty_config(self, base_path: Optional[Path] = None) -> LoyaltyConfig:
        """Tier table for the run: the referenced YAML, else the defaults."""
        if not self.loyalty_config:
            return DEFAULT_CONFIG
        return LoyaltyConfig.from_yaml(self.resolve(self.loyalty_config, base_path))

    @staticmethod
    def resolve(path: str, base_path: Optional[Path] = None) -> Path:
        """Resolve a configured path relative to base_path when not absolute."""
        resolved = Path(path)
        if base_path is not None and not resolved.is_absolute():
            resolved = base_path / resolved
        return resolved
