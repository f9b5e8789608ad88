"""Catalog blueprint for products: JSON API over the catalog write service."""
from flask import Blueprint, request, current_app, jsonify
from typing import Tuple
import logging

from storefront.blueprints.metrics import record_product_write
from storefront.database import get_session
from storefront.exceptions import NotFoundError, ValidationError
from storefront.middleware import require_admin
from storefront.services.catalog_service import CatalogWriteService
from storefront.services.image_store import get_image_store
from storefront.services.product_repository import ProductRepository

logger = logging.getLogger(__name__)

catalog_bp = Blueprint('catalog', __name__, url_prefix='/products')

IMAGES_FIELD = 'images'


def _write_service() -> CatalogWriteService:
    return CatalogWriteService(
        get_session(),
        get_image_store(),
        delete_policy=current_app.config.get('PRODUCT_DELETE_POLICY', 'hard')
    )


def _success(data, status_code: int = 200) -> Tuple:
    return jsonify({'status': 'success', 'data': data}), status_code


def _page_args() -> Tuple[int, int]:
    """Read page/limit query args, clamped to the configured bounds."""
    default_size = current_app.config.get('DEFAULT_PAGE_SIZE', 10)
    max_size = current_app.config.get('MAX_PAGE_SIZE', 100)
    try:
        page = int(request.args.get('page', 1))
        limit = int(request.args.get('limit', default_size))
    except ValueError:
        raise ValidationError('Invalid pagination parameters', errors=['page and limit must be integers'])
    return max(1, page), min(max(1, limit), max_size)


@catalog_bp.route('', methods=['GET'])
def list_products():
    """List active products with optional type/brand/search filters."""
    page, limit = _page_args()
    filters = {
        'type': request.args.get('type', '').strip() or None,
        'brand': request.args.get('brand', '').strip() or None,
        'search': request.args.get('search', '').strip() or None,
        'active_only': True,
    }
    result = ProductRepository(get_session()).find_page(page, limit, filters)
    return _success({
        'products': [product.to_dict() for product in result.items],
        'pagination': result.pagination(),
    })


@catalog_bp.route('/<product_id>', methods=['GET'])
def get_product(product_id):
    """Get a single product."""
    product = ProductRepository(get_session()).find_by_id(product_id)
    if product is None:
        raise NotFoundError('Product not found')
    return _success(product.to_dict())


@catalog_bp.route('', methods=['POST'])
@require_admin
def create_product():
    """Create a product from multipart form data with 1-5 images."""
    attachments = request.files.getlist(IMAGES_FIELD)
    logger.info(f"Create product request: {len(attachments)} file(s), fields={sorted(request.form.keys())}")
    try:
        product = _write_service().create_product(request.form, attachments)
    except Exception:
        record_product_write('create', 'error')
        raise
    record_product_write('create', 'success')
    return _success(product.to_dict(), 201)


@catalog_bp.route('/<product_id>', methods=['PUT'])
@require_admin
def update_product(product_id):
    """Partially update a product; new images replace the current ones."""
    attachments = request.files.getlist(IMAGES_FIELD)
    try:
        product = _write_service().update_product(product_id, request.form, attachments)
    except Exception:
        record_product_write('update', 'error')
        raise
    record_product_write('update', 'success')
    return _success(product.to_dict())


@catalog_bp.route('/<product_id>', methods=['DELETE'])
@require_admin
def delete_product(product_id):
    """Delete a product using the deployment's delete policy."""
    service = _write_service()
    try:
        product = service.delete_product(product_id)
    except Exception:
        record_product_write('delete', 'error')
        raise
    record_product_write('delete', 'success')

    if product is not None:
        return _success(product.to_dict())
    return jsonify({'status': 'success', 'message': 'Product and associated images deleted successfully'}), 200
