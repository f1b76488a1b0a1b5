from sqlalchemy import Column, Integer, String, DateTime, Float, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base

QUALITY_ORIGINAL = "original"
QUALITY_MEDIUM = "medium"
QUALITY_SMALL = "small"
QUALITIES = (QUALITY_ORIGINAL, QUALITY_MEDIUM, QUALITY_SMALL)


class Image(Base):
    __tablename__ = "images"
    __table_args__ = (UniqueConstraint("account_id", "filename", name="uq_images_account_filename"),)

    id = Column(String(36), primary_key=True)
    account_id = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=False)
    captured_at = Column(DateTime(timezone=True), nullable=False)
    aspect_ratio = Column(Float, nullable=False)
    image_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    variants = relationship("Variant", back_populates="image", order_by="Variant.created_at")


class Variant(Base):
    __tablename__ = "variants"

    id = Column(String(36), primary_key=True)
    image_id = Column(String(36), ForeignKey("images.id"), nullable=False, index=True)
    object_name = Column(String, nullable=False, unique=True)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    compression_quality = Column(Integer, nullable=False)
    quality = Column(String, nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    image = relationship("Image", back_populates="variants")
