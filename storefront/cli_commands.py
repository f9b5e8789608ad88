"""
Flask CLI commands for catalog management.

Commands:
- flask init-db: Create database tables
- flask seed-products: Load demo products with their images
"""

import json
import mimetypes
import os

import click
from werkzeug.datastructures import FileStorage, MultiDict

from storefront.database import create_tables, get_session
from storefront.exceptions import CatalogError
from storefront.models import Product
from storefront.services.catalog_service import CatalogWriteService
from storefront.services.image_store import get_image_store

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp')


def _seed_images(images_dir, model, limit):
    """Open <model>-1.jpg ... <model>-N.* from images_dir as uploads."""
    files = []
    for index in range(1, limit + 1):
        for extension in IMAGE_EXTENSIONS:
            path = os.path.join(images_dir, f'{model}-{index}{extension}')
            if os.path.isfile(path):
                content_type = mimetypes.guess_type(path)[0] or 'application/octet-stream'
                files.append(FileStorage(
                    stream=open(path, 'rb'),
                    filename=os.path.basename(path),
                    content_type=content_type
                ))
                break
    return files


def _as_form(entry):
    """Turn a seed entry into the same shape a multipart form would have."""
    form = MultiDict()
    for key, value in entry.items():
        if key in ('specifications', 'features'):
            form[key] = json.dumps(value)
        elif value is not None:
            form[key] = str(value)
    return form


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        create_tables()
        click.echo(click.style('✅ Tables created', fg='green'))

    @app.cli.command('seed-products')
    @click.argument('seed_file', type=click.Path(exists=True, dir_okay=False))
    @click.option('--images-dir', required=True, type=click.Path(exists=True, file_okay=False),
                  help='Directory holding <model>-<n>.<ext> images')
    @click.option('--clear', is_flag=True, help='Hard-delete existing products first')
    def seed_products(seed_file, images_dir, clear):
        """Create the products listed in SEED_FILE (a JSON array)."""
        with open(seed_file, encoding='utf-8') as fh:
            entries = json.load(fh)
        if not isinstance(entries, list):
            raise click.BadParameter('Seed file must contain a JSON array of products')

        session = get_session()
        service = CatalogWriteService(session, get_image_store(), delete_policy='hard')
        max_images = app.config.get('MAX_IMAGES_PER_PRODUCT', 5)

        if clear:
            ids = [product_id for (product_id,) in session.query(Product.id).all()]
            for product_id in ids:
                service.hard_delete_product(product_id)
            click.echo(f'Cleared {len(ids)} existing product(s).')

        created = 0
        for entry in entries:
            name = entry.get('name', '<unnamed>')
            files = _seed_images(images_dir, entry.get('model') or '', max_images)
            try:
                service.create_product(_as_form(entry), files)
                created += 1
                click.echo(f' -> Product "{name}" added ({len(files)} image(s)).')
            except CatalogError as e:
                details = getattr(e, 'errors', None) or []
                click.echo(click.style(f'❌ "{name}": {e.message} {"; ".join(details)}', fg='red'))
            finally:
                for file in files:
                    file.close()

        click.echo(click.style(f'\n✅ Seeded {created} of {len(entries)} product(s)', fg='green', bold=True))
