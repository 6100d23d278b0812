"""Course materials grouped into ordered sections per schedule."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, LargeBinary, String, Text, Uuid
from sqlalchemy.orm import deferred, relationship

from app.core.clock import now_local
from app.db.session import Base


class MaterialSection(Base):
    __tablename__ = "material_sections"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id = Column(Uuid, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=now_local, nullable=False)

    schedule = relationship("Schedule", back_populates="sections")
    materials = relationship(
        "Material",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="Material.display_order",
    )


class Material(Base):
    """A file attached to a schedule: inline bytes (file_data) or a hosted file_url."""

    __tablename__ = "materials"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id = Column(Uuid, ForeignKey("schedules.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(Uuid, ForeignKey("material_sections.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    # Not loaded with list queries; fetched explicitly on download
    file_data = deferred(Column(LargeBinary, nullable=True))
    file_url = Column(Text, nullable=True)
    storage_public_id = Column(String(255), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    uploaded_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=now_local, nullable=False)

    schedule = relationship("Schedule", back_populates="materials")
    section = relationship("MaterialSection", back_populates="materials")
    uploaded_by = relationship("User", foreign_keys=[uploaded_by_id])
