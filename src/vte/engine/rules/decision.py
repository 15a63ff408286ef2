from __future__ import annotations

from typing import ClassVar

from pydantic import ConfigDict

from ..base import BaseModel


class Decision(BaseModel):
    """
    Attributes:
        success: True if the assignment (or query) succeeds.
        reason: If success=False, explains why.

    Note that this object's truthiness is tied to its success attribute.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    success: bool = False
    reason: str | None = None

    SUCCESS: ClassVar[Decision]
    COMPUTED: ClassVar[Decision]

    def __bool__(self) -> bool:
        return self.success


Decision.SUCCESS = Decision(success=True)
Decision.COMPUTED = Decision(
    success=False, reason="Value is computed from other traits."
)
