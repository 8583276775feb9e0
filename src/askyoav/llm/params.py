"""Sampling parameter set sent with every completion request.

The controller treats these values as an opaque payload; only the
derived `stop` list is added per request.
"""

import math
from dataclasses import asdict, dataclass, fields
from typing import Any

# Inclusive (min, max) per field, matching the settings form ranges
PARAMETER_RANGES: dict[str, tuple[float, float]] = {
    "n_predict": (-1, 2048),
    "temperature": (0.0, 1.5),
    "repeat_last_n": (0, 2048),
    "repeat_penalty": (0.0, 2.0),
    "top_k": (-1, 100),
    "top_p": (0.0, 1.0),
    "tfs_z": (0.0, 1.0),
    "typical_p": (0.0, 1.0),
    "presence_penalty": (0.0, 1.0),
    "frequency_penalty": (0.0, 1.0),
    "mirostat": (0, 2),
    "mirostat_tau": (0.0, 10.0),
    "mirostat_eta": (0.0, 1.0),
}


@dataclass
class SamplingParameters:
    """Numeric controls governing how the model selects its next token.

    Attributes:
        n_predict: Maximum tokens to generate (-1 = unlimited)
        temperature: Sampling temperature
        repeat_last_n: Tokens considered for the repeat penalty (0 = disabled)
        repeat_penalty: Repeat penalty strength (1.0 = disabled)
        top_k: Top-K sampling (<= 0 uses the vocabulary size)
        top_p: Top-P sampling (1.0 = disabled)
        tfs_z: Tail-free sampling (1.0 = disabled)
        typical_p: Typical-P sampling (1.0 = disabled)
        presence_penalty: Presence penalty (0.0 = disabled)
        frequency_penalty: Frequency penalty (0.0 = disabled)
        mirostat: Mirostat mode (0 = off, 1 or 2)
        mirostat_tau: Mirostat target entropy
        mirostat_eta: Mirostat learning rate
    """

    n_predict: int = 400
    temperature: float = 0.7
    repeat_last_n: int = 256
    repeat_penalty: float = 1.18
    top_k: int = 40
    top_p: float = 0.5
    tfs_z: float = 1.0
    typical_p: float = 1.0
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    mirostat: int = 0
    mirostat_tau: float = 5.0
    mirostat_eta: float = 0.1

    @classmethod
    def field_names(cls) -> list[str]:
        """Get the recognized parameter names in declaration order."""
        return [f.name for f in fields(cls)]

    def set(self, name: str, value: Any) -> None:
        """Replace one parameter value.

        Integer fields are floored, float fields converted with float().

        Args:
            name: Parameter name
            value: New value (numbers or numeric strings)

        Raises:
            ValueError: If the name is unknown or the value is out of range
        """
        field_types = {f.name: f.type for f in fields(self)}
        if name not in field_types:
            raise ValueError(f"Unknown sampling parameter: {name}")

        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid value for {name}: {value!r}") from e

        if math.isnan(number):
            raise ValueError(f"Invalid value for {name}: {value!r}")

        coerced: int | float = math.floor(number) if field_types[name] is int else number

        low, high = PARAMETER_RANGES[name]
        if not low <= coerced <= high:
            raise ValueError(f"{name} must be between {low} and {high}, got {coerced}")

        setattr(self, name, coerced)

    def update(self, values: dict[str, Any]) -> None:
        """Replace several parameters, validating each one."""
        for name, value in values.items():
            self.set(name, value)

    def to_payload(self, stop: list[str] | None = None) -> dict[str, Any]:
        """Build the request payload for these parameters.

        Args:
            stop: Stop sequences for this request

        Returns:
            Plain dict with every parameter plus `stop`
        """
        payload = asdict(self)
        payload["stop"] = list(stop or [])
        return payload


__all__ = ["PARAMETER_RANGES", "SamplingParameters"]
