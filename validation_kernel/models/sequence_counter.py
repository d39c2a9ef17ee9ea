"""
Module: validation_kernel.models.sequence_counter
Responsibility: Named counter rows backing SequenceService.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from validation_kernel.db.base import Base


class SequenceCounter(Base):
    """One row per named sequence holding its current value.

    Row-level locking on this row keeps allocation monotonic under
    concurrency.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
