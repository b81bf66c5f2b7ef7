from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import CompileError
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from alldownloads.catalog.types import (
    ProductDefinition,
    ProductSnapshot,
    ProductVersionSnapshot,
    ProductWithVersions,
)
from alldownloads.db.models import Product, ProductVersion
from alldownloads.sources.base import VersionRecord

logger = logging.getLogger(__name__)

_VERSION_KEY = ("product_id", "version", "platform", "architecture")


class ProductNotFoundError(RuntimeError):
    pass


class InvalidVersionRecordError(ValueError):
    pass


class CatalogService:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def list_products(self) -> list[ProductSnapshot]:
        with self._session_factory() as session:
            rows = session.scalars(select(Product).order_by(Product.vendor.asc(), Product.name.asc())).all()
            return [self._to_product_snapshot(row) for row in rows]

    def get_product(self, product_id: str) -> ProductSnapshot:
        with self._session_factory() as session:
            product = session.get(Product, product_id)
            if product is None:
                raise ProductNotFoundError(f"Product not found: {product_id}")
            return self._to_product_snapshot(product)

    def get_product_with_versions(self, product_id: str) -> ProductWithVersions:
        with self._session_factory() as session:
            product = session.get(Product, product_id)
            if product is None:
                raise ProductNotFoundError(f"Product not found: {product_id}")
            versions = session.scalars(
                select(ProductVersion)
                .where(ProductVersion.product_id == product_id)
                .order_by(ProductVersion.is_latest.desc(), ProductVersion.created_at.desc(), ProductVersion.id.desc())
            ).all()
            return ProductWithVersions(
                product=self._to_product_snapshot(product),
                versions=[self._to_version_snapshot(row) for row in versions],
            )

    def upsert_product(self, definition: ProductDefinition) -> ProductSnapshot:
        with self._session_factory() as session:
            product = self._apply_definition(session, definition)
            session.commit()
            session.refresh(product)
            return self._to_product_snapshot(product)

    def sync_products(self, definitions: Iterable[ProductDefinition]) -> int:
        count = 0
        with self._session_factory() as session:
            for definition in definitions:
                self._apply_definition(session, definition)
                count += 1
            session.commit()
        return count

    def _apply_definition(self, session: Session, definition: ProductDefinition) -> Product:
        product_id = definition.id.strip()
        if not product_id:
            raise ValueError("Product id cannot be blank")
        product = session.get(Product, product_id)
        if product is None:
            product = Product(id=product_id)
            session.add(product)
        product.name = definition.name
        product.vendor = definition.vendor
        product.category = definition.category
        product.description = definition.description
        product.icon_url = definition.icon_url
        product.website_url = definition.website_url
        session.flush()
        return product

    def _insert_for(self, session: Session):  # type: ignore[no-untyped-def]
        dialect_name = session.get_bind().dialect.name
        if dialect_name == "postgresql":
            return postgresql.insert
        if dialect_name == "sqlite":
            return sqlite.insert
        raise CompileError(f"Version upsert is not supported on {dialect_name}")

    def _validate_record(self, record: VersionRecord) -> None:
        for field_name in ("version", "platform", "architecture", "download_url"):
            if not str(getattr(record, field_name) or "").strip():
                raise InvalidVersionRecordError(f"Version record is missing {field_name}")
        if record.file_size < 0:
            raise InvalidVersionRecordError("file_size must be >= 0")

    def upsert_version(self, product_id: str, record: VersionRecord) -> ProductVersionSnapshot:
        """Insert or refresh one version row keyed by (product, version, platform, architecture).

        ``is_latest`` and ``created_at`` of an existing row are left alone; only
        promotion moves the latest flag.
        """
        self._validate_record(record)
        now = self._now()
        with self._session_factory() as session:
            insert = self._insert_for(session)
            stmt = insert(ProductVersion).values(
                id=str(uuid4()),
                product_id=product_id,
                version=record.version,
                platform=record.platform,
                architecture=record.architecture,
                download_url=record.download_url,
                checksum=record.checksum or "",
                checksum_type=record.checksum_type or "",
                file_size=record.file_size,
                filename=record.filename or "",
                is_latest=False,
                etag=record.etag or "",
                last_fetched=now,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=list(_VERSION_KEY),
                set_={
                    "download_url": stmt.excluded.download_url,
                    "checksum": stmt.excluded.checksum,
                    "checksum_type": stmt.excluded.checksum_type,
                    "file_size": stmt.excluded.file_size,
                    "filename": stmt.excluded.filename,
                    "etag": stmt.excluded.etag,
                    "last_fetched": stmt.excluded.last_fetched,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            session.execute(stmt)
            session.commit()

            row = session.scalars(
                select(ProductVersion).where(
                    ProductVersion.product_id == product_id,
                    ProductVersion.version == record.version,
                    ProductVersion.platform == record.platform,
                    ProductVersion.architecture == record.architecture,
                )
            ).one()
            return self._to_version_snapshot(row)

    def promote_latest_versions(self, product_id: str) -> int:
        """Recompute ``is_latest`` for every (platform, architecture) group of a product.

        Both phases share one transaction, so readers see either the previous
        or the new set of latest rows. Safe to re-run.
        """
        with self._session_factory() as session:
            with session.begin():
                locked = session.scalar(
                    select(Product.id).where(Product.id == product_id).with_for_update()
                )
                if locked is None:
                    raise ProductNotFoundError(f"Product not found: {product_id}")

                session.execute(
                    update(ProductVersion)
                    .where(ProductVersion.product_id == product_id)
                    .values(is_latest=False)
                    .execution_options(synchronize_session=False)
                )

                rows = session.execute(
                    select(ProductVersion.id, ProductVersion.platform, ProductVersion.architecture)
                    .where(ProductVersion.product_id == product_id)
                    .order_by(
                        ProductVersion.platform.asc(),
                        ProductVersion.architecture.asc(),
                        ProductVersion.created_at.desc(),
                        ProductVersion.id.desc(),
                    )
                ).all()

                latest_ids: list[str] = []
                seen_groups: set[tuple[str, str]] = set()
                for row in rows:
                    group = (row.platform, row.architecture)
                    if group in seen_groups:
                        continue
                    seen_groups.add(group)
                    latest_ids.append(row.id)

                if latest_ids:
                    session.execute(
                        update(ProductVersion)
                        .where(ProductVersion.id.in_(latest_ids))
                        .values(is_latest=True)
                        .execution_options(synchronize_session=False)
                    )

        logger.debug("promoted %d latest versions for %s", len(latest_ids), product_id)
        return len(latest_ids)

    def count_versions(self, product_id: str) -> int:
        with self._session_factory() as session:
            total = session.scalar(
                select(func.count()).select_from(ProductVersion).where(ProductVersion.product_id == product_id)
            )
            return int(total or 0)

    def _to_product_snapshot(self, product: Product) -> ProductSnapshot:
        return ProductSnapshot(
            id=product.id,
            name=product.name,
            vendor=product.vendor,
            category=product.category,
            description=product.description,
            icon_url=product.icon_url,
            website_url=product.website_url,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )

    def _to_version_snapshot(self, row: ProductVersion) -> ProductVersionSnapshot:
        return ProductVersionSnapshot(
            id=row.id,
            product_id=row.product_id,
            version=row.version,
            platform=row.platform,
            architecture=row.architecture,
            download_url=row.download_url,
            checksum=row.checksum,
            checksum_type=row.checksum_type,
            file_size=row.file_size,
            filename=row.filename,
            is_latest=row.is_latest,
            etag=row.etag,
            last_fetched=row.last_fetched,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
