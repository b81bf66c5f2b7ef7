from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class FetchJobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ProductCategory(str, Enum):
    OS = "os"
    APP = "app"
    TOOL = "tool"


class Platform(str, Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "macos"
    WEB = "web"


class Architecture(str, Enum):
    AMD64 = "amd64"
    ARM64 = "arm64"
    I386 = "386"
    ARM = "arm"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    category: Mapped[ProductCategory] = mapped_column(
        SAEnum(ProductCategory, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=ProductCategory.APP,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon_url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    website_url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("ix_products_vendor_name", "vendor", "name"),)


class ProductVersion(Base):
    __tablename__ = "product_versions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    version: Mapped[str] = mapped_column(String(128), nullable=False)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    architecture: Mapped[str] = mapped_column(String(32), nullable=False)

    download_url: Mapped[str] = mapped_column(String(4096), nullable=False)
    checksum: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    checksum_type: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    filename: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    is_latest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    etag: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    last_fetched: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "product_id",
            "version",
            "platform",
            "architecture",
            name="uq_product_versions_product_version_platform_arch",
        ),
        Index("ix_product_versions_product_latest", "product_id", "is_latest"),
        Index("ix_product_versions_group_created", "product_id", "platform", "architecture", "created_at"),
    )


class FetchJob(Base):
    __tablename__ = "fetch_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[FetchJobStatus] = mapped_column(
        SAEnum(FetchJobStatus, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=FetchJobStatus.PENDING,
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_fetch_jobs_product_status", "product_id", "status"),
        Index("ix_fetch_jobs_created_id", "created_at", "id"),
        Index("ix_fetch_jobs_status_updated", "status", "updated_at"),
    )


class SchemaMigration(Base):
    __tablename__ = "schema_migrations"

    version: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
