"""
Batcher configuration.

Holds the tunables that decide when a batch is dispatched. Configuration can be
built directly, from environment variables, or from a YAML/JSON file.
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from promise_batcher.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

ENV_PREFIX = "PROMISE_BATCHER_"


def _parse_number(raw: str, field_name: str) -> float | int:
    """Parse an int, float or 'inf' from a config string."""
    try:
        value = float(raw.strip())
    except ValueError:
        raise ConfigError(
            f"{field_name} must be a number, got {raw!r}",
            field=field_name,
            value=raw,
        ) from None
    if math.isfinite(value) and value.is_integer():
        return int(value)
    return value


@dataclass(frozen=True)
class BatcherConfig:
    """Configuration for a Batcher.

    Attributes:
        max_batch_size: Maximum requests per batch (None or math.inf = unbounded)
        queuing_delay_ms: Time to let requests queue up before running a batch.
            Not applied once max_batch_size is reached or after send().
        queuing_thresholds: Number of queued requests required to trigger a
            batch at each level of concurrency. (1, 5) requires 1 queued request
            when no batch is active and 5 while one or more batches are active.
            The last entry may be math.inf.
    """

    max_batch_size: int | None = None
    queuing_delay_ms: float = 1.0
    queuing_thresholds: tuple[float, ...] = (1,)

    def __post_init__(self) -> None:
        thresholds = tuple(self.queuing_thresholds)
        if not thresholds:
            raise ConfigError(
                "queuing_thresholds must contain at least one number",
                field="queuing_thresholds",
                value=thresholds,
            )
        for threshold in thresholds:
            if threshold < 1:
                raise ConfigError(
                    "queuing_thresholds must only contain numbers greater than 0",
                    field="queuing_thresholds",
                    value=thresholds,
                )
        object.__setattr__(self, "queuing_thresholds", thresholds)

        max_batch_size = self.max_batch_size
        if max_batch_size is not None:
            if isinstance(max_batch_size, bool) or not isinstance(
                max_batch_size, (int, float)
            ):
                raise ConfigError(
                    "max_batch_size must be an integer",
                    field="max_batch_size",
                    value=max_batch_size,
                )
            if max_batch_size < 1:
                raise ConfigError(
                    "max_batch_size must be greater than 0",
                    field="max_batch_size",
                    value=max_batch_size,
                )
            # inf is the same as no limit
            if math.isinf(max_batch_size):
                object.__setattr__(self, "max_batch_size", None)
            elif isinstance(max_batch_size, float):
                if not max_batch_size.is_integer():
                    raise ConfigError(
                        "max_batch_size must be an integer",
                        field="max_batch_size",
                        value=max_batch_size,
                    )
                object.__setattr__(self, "max_batch_size", int(max_batch_size))
        if self.queuing_delay_ms < 0:
            raise ConfigError(
                "queuing_delay_ms must be greater than or equal to 0",
                field="queuing_delay_ms",
                value=self.queuing_delay_ms,
            )

    @property
    def queuing_delay(self) -> float:
        """Queuing delay in seconds."""
        return self.queuing_delay_ms / 1000.0

    def threshold_for(self, active_batches: int) -> float:
        """Get the queuing threshold for a level of concurrency."""
        index = min(active_batches, len(self.queuing_thresholds) - 1)
        return self.queuing_thresholds[index]

    @classmethod
    def default(cls) -> BatcherConfig:
        """Create default configuration."""
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BatcherConfig:
        """Create configuration from a mapping.

        Args:
            data: Mapping of field names to values

        Raises:
            ConfigError: If the mapping holds unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(
                f"Unknown configuration keys: {', '.join(unknown)}",
                field=unknown[0],
                value=data[unknown[0]],
            )

        kwargs = dict(data)
        max_batch_size = kwargs.get("max_batch_size")
        if isinstance(max_batch_size, str):
            kwargs["max_batch_size"] = _parse_number(max_batch_size, "max_batch_size")
        thresholds = kwargs.get("queuing_thresholds")
        if thresholds is not None:
            kwargs["queuing_thresholds"] = tuple(
                _parse_number(t, "queuing_thresholds") if isinstance(t, str) else t
                for t in _as_iterable(thresholds)
            )
        return cls(**kwargs)

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> BatcherConfig:
        """Create configuration from environment variables.

        Reads {prefix}MAX_BATCH_SIZE, {prefix}QUEUING_DELAY_MS and
        {prefix}QUEUING_THRESHOLDS (comma separated, 'inf' allowed).
        Unset variables keep their defaults.
        """
        kwargs: dict[str, Any] = {}

        max_batch_size = os.getenv(f"{prefix}MAX_BATCH_SIZE")
        if max_batch_size:
            kwargs["max_batch_size"] = _parse_number(max_batch_size, "max_batch_size")

        delay = os.getenv(f"{prefix}QUEUING_DELAY_MS")
        if delay:
            kwargs["queuing_delay_ms"] = _parse_number(delay, "queuing_delay_ms")

        thresholds = os.getenv(f"{prefix}QUEUING_THRESHOLDS")
        if thresholds:
            kwargs["queuing_thresholds"] = tuple(
                _parse_number(part, "queuing_thresholds")
                for part in thresholds.split(",")
                if part.strip()
            )

        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: str | Path) -> BatcherConfig:
        """Load configuration from a YAML or JSON file.

        Args:
            path: Path to the file

        Raises:
            ConfigError: If the file is missing or does not hold a mapping
        """
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: {path}")

        content = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {path}")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        data = asdict(self)
        data["queuing_thresholds"] = list(self.queuing_thresholds)
        return data


def _as_iterable(value: Any) -> Iterable[Any]:
    if isinstance(value, str):
        return [part for part in value.split(",") if part.strip()]
    if isinstance(value, (int, float)):
        return [value]
    return value
