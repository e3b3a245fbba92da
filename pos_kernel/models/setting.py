"""
Module: pos_kernel.models.setting
Responsibility: Key/value store settings (tax rate, default opening float).
Architecture position: Kernel > Models.  May import from db/base.py only.

The register only reads these rows; editing them belongs to store
administration.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pos_kernel.db.base import TrackedBase


class Setting(TrackedBase):
    """One store setting."""

    __tablename__ = "settings"

    __table_args__ = (UniqueConstraint("key", name="uq_settings_key"),)

    key: Mapped[str] = mapped_column(String(64), nullable=False)

    value: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    def __repr__(self) -> str:
        return f"<Setting {self.key}={self.value!r}>"
