"""Persistence of Product records."""
import logging
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from storefront.exceptions import DatabaseError, SchemaValidationError
from storefront.models import Product

logger = logging.getLogger(__name__)

REQUIRED_TEXT_FIELDS = ('name', 'description', 'type', 'brand')
OPTIONAL_TEXT_FIELDS = ('model', 'category')
WRITABLE_FIELDS = REQUIRED_TEXT_FIELDS + OPTIONAL_TEXT_FIELDS + (
    'price', 'stock', 'features', 'specifications', 'images', 'is_active'
)
MAX_IMAGES = 5
MAX_PAGE_SIZE = 100
# BigInteger primary key range
MAX_ID = 2 ** 63 - 1


@dataclass
class Page:
    """One page of products plus the count used to size the pager."""
    items: List[Product]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    def pagination(self) -> dict:
        return {
            'page': self.page,
            'limit': self.page_size,
            'total': self.total,
            'pages': self.pages,
        }


def _as_decimal(value) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def _as_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if number != number.to_integral_value():
        return None
    return int(number)


def validate_fields(fields: Mapping[str, Any], partial: bool = False,
                    max_images: int = MAX_IMAGES) -> Dict[str, Any]:
    """
    Check field constraints and return the cleaned values.

    With partial=True only the supplied keys are checked (update semantics).
    max_images should match the image store's per-product file limit.

    Raises:
        SchemaValidationError: With a {field: message} mapping
    """
    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}

    unknown = set(fields) - set(WRITABLE_FIELDS)
    for key in sorted(unknown):
        errors[key] = f'Unknown field: {key}'

    for key in REQUIRED_TEXT_FIELDS:
        if key not in fields:
            if not partial:
                errors[key] = f'Product {key} is required'
            continue
        value = fields[key]
        text = value.strip() if isinstance(value, str) else ''
        if not text:
            errors[key] = f'Product {key} is required'
        else:
            cleaned[key] = text

    for key in OPTIONAL_TEXT_FIELDS:
        if key in fields:
            value = fields[key]
            if value is not None and not isinstance(value, str):
                errors[key] = f'Product {key} must be text'
            else:
                cleaned[key] = (value or "").strip() or None

    if 'price' in fields:
        price = _as_decimal(fields['price'])
        if price is None or not price.is_finite():
            errors['price'] = 'Price must be a valid number'
        elif price < 0:
            errors['price'] = 'Price cannot be negative'
        else:
            cleaned['price'] = price.quantize(Decimal('0.01'))
    elif not partial:
        errors['price'] = 'Product price is required'

    if 'stock' in fields:
        stock = _as_int(fields['stock'])
        if stock is None:
            errors['stock'] = 'Stock must be a whole number'
        elif stock < 0:
            errors['stock'] = 'Stock cannot be negative'
        else:
            cleaned['stock'] = stock
    elif not partial:
        cleaned['stock'] = 0

    if 'features' in fields:
        features = fields['features']
        if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
            errors['features'] = 'Features must be a list of text values'
        else:
            cleaned['features'] = [f.strip() for f in features]
    elif not partial:
        cleaned['features'] = []

    if 'specifications' in fields:
        specs = fields['specifications']
        if not isinstance(specs, Mapping):
            errors['specifications'] = 'Specifications must be a key/value mapping'
        elif not all(isinstance(v, str) and v for v in specs.values()):
            errors['specifications'] = 'Specification values must be non-empty text'
        else:
            cleaned['specifications'] = {str(k): v for k, v in specs.items()}
    elif not partial:
        cleaned['specifications'] = {}

    if 'images' in fields:
        images = fields['images']
        if not isinstance(images, list) or not all(isinstance(i, str) and i for i in images):
            errors['images'] = 'Images must be a list of URLs'
        elif len(images) > max_images:
            errors['images'] = f'A product can have at most {max_images} images'
        else:
            cleaned['images'] = list(images)
    elif not partial:
        cleaned['images'] = []

    if 'is_active' in fields:
        if not isinstance(fields['is_active'], bool):
            errors['is_active'] = 'isActive must be a boolean'
        else:
            cleaned['is_active'] = fields['is_active']

    if errors:
        raise SchemaValidationError(errors)
    return cleaned


class ProductRepository:
    """
    Product records over a SQLAlchemy session.

    Every write validates its fields first; this layer is the last word on
    field constraints.
    """

    def __init__(self, session, max_images: int = MAX_IMAGES):
        self.session = session
        self.max_images = max_images

    def create(self, fields: Mapping[str, Any]) -> Product:
        cleaned = validate_fields(fields, max_images=self.max_images)
        product = Product(**cleaned)
        self._commit(lambda: self.session.add(product), 'create')
        logger.info(f"[CATALOG] Product {product.id} created")
        return product

    def find_by_id(self, product_id) -> Optional[Product]:
        try:
            product_id = int(product_id)
        except (TypeError, ValueError):
            return None
        if not 0 < product_id <= MAX_ID:
            return None
        try:
            return self.session.get(Product, product_id)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error loading product {product_id}: {e}")
            raise DatabaseError('Could not load product', cause=e)

    def find_page(self, page: int = 1, page_size: int = 10,
                  filters: Optional[Mapping[str, Any]] = None) -> Page:
        """
        Return one page of products, newest first.

        Filters: type, brand, search (case-insensitive over name and
        description), active_only (default True). page_size is capped at
        MAX_PAGE_SIZE.
        """
        filters = filters or {}
        page = max(1, int(page or 1))
        page_size = min(max(1, int(page_size or 10)), MAX_PAGE_SIZE)

        query = self.session.query(Product)
        if filters.get('active_only', True):
            query = query.filter(Product.is_active == True)
        if filters.get('type'):
            query = query.filter(Product.type == filters['type'])
        if filters.get('brand'):
            query = query.filter(Product.brand == filters['brand'])
        if filters.get('search'):
            pattern = f"%{filters['search']}%"
            query = query.filter(or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern)
            ))

        try:
            total = query.count()
            items = (
                query.order_by(Product.created_at.desc(), Product.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
                .all()
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error listing products: {e}")
            raise DatabaseError('Could not list products', cause=e)

        return Page(items=items, total=total, page=page, page_size=page_size)

    def update_fields(self, product_id, partial: Mapping[str, Any]) -> Optional[Product]:
        """Apply only the supplied fields; returns None if the product is absent."""
        cleaned = validate_fields(partial, partial=True, max_images=self.max_images)
        product = self.find_by_id(product_id)
        if product is None:
            return None

        def apply():
            for key, value in cleaned.items():
                setattr(product, key, value)

        self._commit(apply, 'update')
        logger.info(f"[CATALOG] Product {product.id} updated: {sorted(cleaned)}")
        return product

    def remove(self, product_id) -> bool:
        product = self.find_by_id(product_id)
        if product is None:
            return False
        self._commit(lambda: self.session.delete(product), 'delete')
        logger.info(f"[CATALOG] Product {product_id} removed")
        return True

    def _commit(self, change, operation: str):
        try:
            change()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error on product {operation}: {e}", exc_info=True)
            raise DatabaseError(f'Could not {operation} product', cause=e)
