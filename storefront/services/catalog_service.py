"""
Catalog write path: create, update and delete products together with their image files.

The service ties three things together:
1. Image files in the ImageStore (stored before the record, removed on rollback)
2. Specification/feature normalization (spec_parser)
3. The ProductRepository commit

Delete policy is explicit per deployment: 'hard' removes the record and its
files, 'soft' only marks the record inactive.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from werkzeug.datastructures import FileStorage

from storefront.blueprints.metrics import catalog_image_delete_failures_total
from storefront.exceptions import NotFoundError, SchemaValidationError, StorageError, ValidationError
from storefront.models import Product
from storefront.services.image_store import ImageStore
from storefront.services.product_repository import (
    ProductRepository, REQUIRED_TEXT_FIELDS, OPTIONAL_TEXT_FIELDS, validate_fields
)
from storefront.services.spec_parser import parse_features, parse_specifications

logger = logging.getLogger(__name__)

DELETE_POLICIES = ('hard', 'soft')

# Form keys accepted from clients; anything else in the form is ignored
_SCALAR_FIELDS = REQUIRED_TEXT_FIELDS + OPTIONAL_TEXT_FIELDS + ('price', 'stock')


def _collect_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Pick the writable product fields out of a submitted form."""
    data = {key: fields[key] for key in _SCALAR_FIELDS if key in fields}
    if 'isActive' in fields or 'is_active' in fields:
        raw = fields.get('isActive', fields.get('is_active'))
        data['is_active'] = raw if isinstance(raw, bool) else str(raw).strip().lower() in ('true', '1', 'on')
    if 'specifications' in fields:
        data['specifications'] = parse_specifications(fields['specifications'])
    if 'features' in fields:
        data['features'] = parse_features(fields['features'])
    return data


def _flatten(error: SchemaValidationError) -> ValidationError:
    return ValidationError('Validation Error', errors=error.messages())


class CatalogWriteService:
    """
    Orchestrates image storage, parsing and repository writes for products.

    Usage:
        service = CatalogWriteService(get_session(), get_image_store())
        product = service.create_product(request.form, request.files.getlist('images'))
    """

    def __init__(self, session, image_store: ImageStore, delete_policy: str = 'hard'):
        if delete_policy not in DELETE_POLICIES:
            raise ValueError(f"Unknown delete policy '{delete_policy}'. Use one of: {', '.join(DELETE_POLICIES)}")
        self.repository = ProductRepository(session, max_images=image_store.config.max_files)
        self.image_store = image_store
        self.delete_policy = delete_policy

    def create_product(self, fields: Mapping[str, Any], attachments: Sequence[FileStorage]) -> Product:
        """
        Create a product from form fields and 1-5 image attachments.

        Steps:
        1. Validate fields and attachments (nothing written yet)
        2. Store attachments in submission order
        3. Commit the record
        Files stored in step 2 are removed if anything after them fails.

        Raises:
            ValidationError: Bad input (fields, JSON blobs, images)
            StorageError: Image write failed
            DatabaseError: Commit failed
        """
        attachments = [a for a in attachments if a and a.filename]
        data = _collect_fields(fields)
        # The storefront groups products by type when no category is given
        if not data.get('category') and data.get('type'):
            data['category'] = data['type']

        # Pre-validate with a placeholder image list; URLs replace it below
        try:
            validate_fields({**data, 'images': []}, max_images=self.repository.max_images)
        except SchemaValidationError as e:
            raise _flatten(e)
        self.image_store.validate(attachments, required=True)

        urls = self.image_store.store_many(attachments)
        try:
            product = self.repository.create({**data, 'images': urls})
        except SchemaValidationError as e:
            self._rollback_files(urls)
            raise _flatten(e)
        except BaseException:
            self._rollback_files(urls)
            raise

        logger.info(f"[CATALOG] ✓ Product {product.id} '{product.name}' created with {len(urls)} image(s)")
        return product

    def update_product(self, product_id, fields: Mapping[str, Any],
                       attachments: Optional[Sequence[FileStorage]] = None) -> Product:
        """
        Partially update a product.

        New attachments replace the image list; without attachments the
        existing images stay. Superseded files are left on disk.

        Raises:
            NotFoundError: Unknown product id
            ValidationError: Bad input
        """
        product = self.repository.find_by_id(product_id)
        if product is None:
            raise NotFoundError('Product not found')

        attachments = [a for a in (attachments or []) if a and a.filename]
        data = _collect_fields(fields)
        try:
            validate_fields(data, partial=True, max_images=self.repository.max_images)
        except SchemaValidationError as e:
            raise _flatten(e)

        urls: List[str] = []
        if attachments:
            self.image_store.validate(attachments, required=True)
            urls = self.image_store.store_many(attachments)
            data['images'] = urls

        try:
            product = self.repository.update_fields(product_id, data)
        except SchemaValidationError as e:
            self._rollback_files(urls)
            raise _flatten(e)
        except BaseException:
            self._rollback_files(urls)
            raise

        if product is None:
            # Deleted concurrently between load and commit
            self._rollback_files(urls)
            raise NotFoundError('Product not found')

        logger.info(f"[CATALOG] ✓ Product {product_id} updated")
        return product

    def hard_delete_product(self, product_id):
        """
        Delete the record and its image files.

        Image cleanup is best-effort: failures are logged and never block
        removal of the record.
        """
        product = self.repository.find_by_id(product_id)
        if product is None:
            raise NotFoundError('Product not found')

        images = list(product.images or [])
        if images:
            try:
                self.image_store.delete_many(images)
                logger.info(f"[CATALOG] Deleted {len(images)} image(s) for product {product_id}")
            except StorageError as e:
                logger.error(f"[CATALOG] ✗ Image cleanup failed for product {product_id}: {e.message}")
                catalog_image_delete_failures_total.inc()

        if not self.repository.remove(product_id):
            raise NotFoundError('Product not found')
        logger.info(f"[CATALOG] ✓ Product {product_id} hard-deleted")

    def soft_delete_product(self, product_id) -> Product:
        """Mark the product inactive; records and files are kept."""
        product = self.repository.update_fields(product_id, {'is_active': False})
        if product is None:
            raise NotFoundError('Product not found')
        logger.info(f"[CATALOG] ✓ Product {product_id} deactivated")
        return product

    def delete_product(self, product_id) -> Optional[Product]:
        """Delete according to the configured policy."""
        if self.delete_policy == 'soft':
            return self.soft_delete_product(product_id)
        self.hard_delete_product(product_id)
        return None

    def _rollback_files(self, urls: List[str]):
        if urls:
            logger.warning(f"[CATALOG] Rolling back {len(urls)} stored image(s)")
            self.image_store.discard(urls)
