"""
Module: pharmacy_kernel.models.reference
Responsibility: Minimal reference entities (Warehouse, Supplier, Department)
    used by the movement service for existence lookups and routing.  Their
    CRUD lives outside this core, except that an issue may create a
    Department by name.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import TrackedBase


class Warehouse(TrackedBase):
    __tablename__ = "warehouses"

    __table_args__ = (UniqueConstraint("code", name="uq_warehouse_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}>"


class Supplier(TrackedBase):
    __tablename__ = "suppliers"

    __table_args__ = (UniqueConstraint("code", name="uq_supplier_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Supplier {self.code}>"


class Department(TrackedBase):
    """Receiving department for outbound issues, unique by name."""

    __tablename__ = "departments"

    __table_args__ = (
        UniqueConstraint("name", name="uq_department_name"),
        UniqueConstraint("code", name="uq_department_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Department {self.name}>"
