"""
Read side of the kernel.

A selector borrows the caller's session and only ever issues SELECTs: no
``add``, ``delete``, ``flush`` or ``commit``.  Results leave as frozen DTOs
or row records so callers cannot mutate mapped instances by accident.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from validation_kernel.db.base import Base

M = TypeVar("M", bound=Base)


class BaseSelector(ABC, Generic[M]):
    def __init__(self, session: Session):
        self.session = session
