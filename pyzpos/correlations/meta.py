"""
Per-section metadata for stored correlation volumes.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, StrictInt, model_validator


class Meta(BaseModel):
    """
    Comparison window of one section.

    ``z_coordinate_min`` and ``z_coordinate_max`` form the half-open range of
    section indices that were compared against the section. The relative-offset
    axis of the section's correlation volume enumerates this range in
    ascending order.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    z_coordinate_min: StrictInt
    z_coordinate_max: StrictInt

    @model_validator(mode="after")
    def _validate_window(self) -> "Meta":
        if self.z_coordinate_max < self.z_coordinate_min:
            raise ValueError(
                "z_coordinate_max must be >= z_coordinate_min, got "
                f"[{self.z_coordinate_min}, {self.z_coordinate_max})"
            )
        return self

    @property
    def window_length(self) -> int:
        return self.z_coordinate_max - self.z_coordinate_min

    @classmethod
    def for_range(cls, index: int, comparison_range: int, n_sections: int) -> "Meta":
        """Window ``[index - range, index + range + 1)`` clipped to ``[0, n_sections)``."""
        return cls(
            z_coordinate_min=max(0, index - comparison_range),
            z_coordinate_max=min(n_sections, index + comparison_range + 1),
        )
