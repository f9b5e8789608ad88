import pytest
from io import BytesIO

from werkzeug.datastructures import FileStorage, MultiDict

from config import Config
from storefront import create_app
from storefront import database
from storefront.database import create_tables, get_session
from storefront.services.image_store import ImageStore, ImageStoreConfig, get_image_store

# Smallest valid-looking payloads; the store only checks declared type and size
PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 64
JPEG_BYTES = b'\xff\xd8\xff\xe0' + b'\x00' * 64


def make_upload(filename='photo.jpg', content=JPEG_BYTES, content_type='image/jpeg'):
    """Build a Werkzeug FileStorage like the ones in request.files."""
    return FileStorage(stream=BytesIO(content), filename=filename, content_type=content_type)


def product_form(**overrides):
    """Multipart-style form fields for a valid product."""
    fields = {
        'name': 'PowerPro 1000VA UPS',
        'type': 'UPS',
        'brand': 'PowerPro',
        'model': 'PP-1000VA',
        'description': 'A reliable 1000VA UPS system with pure sine wave output.',
        'price': '8999',
        'stock': '15',
        'specifications': '{"powerRating": "1000VA/600W", "voltage": "230V"}',
        'features': '["Pure sine wave output", "Surge protection"]',
    }
    fields.update(overrides)
    return MultiDict({k: v for k, v in fields.items() if v is not None})


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application instance on a throwaway SQLite database and upload dir."""
    class TestConfig(Config):
        TESTING = True
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'catalog.db'}"
        SQLALCHEMY_ECHO = False
        UPLOAD_FOLDER = str(tmp_path / 'uploads')
        PRODUCT_DELETE_POLICY = 'hard'
        ADMIN_API_TOKEN = None
        LOG_LEVEL = 'WARNING'

    app = create_app(TestConfig)
    create_tables()
    yield app

    get_session().remove()
    with app.app_context():
        get_image_store().shutdown()
    database.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session bound to the test app."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def image_store(app):
    """The app's ImageStore."""
    with app.app_context():
        return get_image_store()


@pytest.fixture(scope='function')
def standalone_store(tmp_path):
    """An ImageStore not attached to any app."""
    store = ImageStore(ImageStoreConfig(root_dir=str(tmp_path / 'store')))
    yield store
    store.shutdown()
