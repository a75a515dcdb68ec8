import json
from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any

from cnmf_temporal.models.axis import Axis


@dataclass
class Parameters(ABC, Axis):
    """Parameter management and validation"""

    def __post_init__(self) -> None:
        """Validate parameters after initialization"""
        self.validate()

    @abstractmethod
    def validate(self) -> None:
        """Validate all parameters"""
        pass

    def to_dict(self) -> dict:
        """Convert parameters to dictionary"""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def save(self, filename: str) -> None:
        """Save the JSON-serializable parameters to file"""
        serializable = {}
        for k, v in self.to_dict().items():
            if isinstance(v, Enum):
                v = v.value
            try:
                json.dumps(v)
            except TypeError:
                continue
            serializable[k] = v

        with open(filename, "w") as f:
            json.dump(serializable, f, indent=2)

    @classmethod
    def from_dict(cls, data: dict) -> "Parameters":
        """Create parameters from dictionary"""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    @classmethod
    def load(cls, filename: str) -> "Parameters":
        """Load parameters from file"""
        with open(filename) as f:
            return cls.from_dict(json.load(f))

    def copy(self) -> "Parameters":
        """Create a deep copy of parameters"""
        return deepcopy(self)

    def update(self, **kwargs: Any) -> "Parameters":
        """Create new parameters with updated values"""
        return replace(self, **kwargs)

    def __str__(self) -> str:
        """Human-readable string representation"""
        lines = ["Parameters:"]
        for f in fields(self):
            lines.append(f"  {f.name}: {getattr(self, f.name)}")
        return "\n".join(lines)
