"""Serves stored product images from the upload directory."""
from flask import Blueprint, abort, send_from_directory

from storefront.services.image_store import get_image_store

uploads_bp = Blueprint('uploads', __name__)


@uploads_bp.route('/<namespace>/<path:filename>', methods=['GET'])
def serve_image(namespace, filename):
    store = get_image_store()
    if namespace != store.config.namespace:
        abort(404)
    # send_from_directory rejects paths escaping the directory
    return send_from_directory(store.config.directory, filename, max_age=86400)
