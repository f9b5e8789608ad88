"""
Integration tests for CatalogWriteService: image lifecycle tied to product records.
"""

import os
import pytest

from conftest import make_upload, product_form
from storefront.exceptions import DatabaseError, NotFoundError, StorageError, ValidationError
from storefront.models import Product
from storefront.services.catalog_service import CatalogWriteService
from storefront.services.image_store import ImageStore, ImageStoreConfig
from storefront.services.product_repository import ProductRepository


@pytest.fixture
def service(session, image_store):
    return CatalogWriteService(session, image_store, delete_policy='hard')


def stored_files(image_store):
    return sorted(os.listdir(image_store.config.directory))


class TestCreateProduct:
    """Tests for create_product."""

    @pytest.mark.parametrize('count', [1, 3, 5])
    def test_images_stored_in_order(self, service, image_store, count):
        """Test that N attachments give N existing image URLs."""
        product = service.create_product(product_form(), [make_upload(f'{i}.jpg') for i in range(count)])

        assert len(product.images) == count
        assert all(image_store.exists(url) for url in product.images)
        assert len(stored_files(image_store)) == count

    def test_scenario_basic_product(self, service):
        """Test the minimal UPS product with two images."""
        form = product_form(model=None, specifications=None, features=None,
                            name='X', brand='B', price='100', stock='5')
        product = service.create_product(form, [make_upload('a.jpg'), make_upload('b.jpg')])

        data = product.to_dict()
        assert len(data['images']) == 2
        assert data['price'] == 100
        assert data['specifications'] == {}
        assert data['features'] == []
        assert data['category'] == 'UPS'

    def test_specifications_and_features_normalized(self, service):
        """Test that empty spec values are dropped and feature order kept."""
        form = product_form(
            specifications='{"voltage": "230V", "weight": "", "ports": 4}',
            features='["B first", "A second"]'
        )
        product = service.create_product(form, [make_upload()])

        assert product.specifications == {'voltage': '230V', 'ports': '4'}
        assert product.features == ['B first', 'A second']

    def test_too_many_images_persists_nothing(self, service, session, image_store):
        """Test that six attachments are refused before anything is written."""
        with pytest.raises(ValidationError):
            service.create_product(product_form(), [make_upload(f'{i}.jpg') for i in range(6)])

        assert stored_files(image_store) == []
        assert session.query(Product).count() == 0

    def test_image_limit_follows_store_config(self, session, tmp_path):
        """Test that a store allowing 8 files lets a 6-image product through."""
        store = ImageStore(ImageStoreConfig(root_dir=str(tmp_path / 'wide'), max_files=8))
        try:
            service = CatalogWriteService(session, store)
            product = service.create_product(product_form(), [make_upload(f'{i}.jpg') for i in range(6)])

            assert len(product.images) == 6
            assert len(stored_files(store)) == 6
        finally:
            store.shutdown()

    def test_no_images_refused(self, service, session):
        """Test that at least one image is required."""
        with pytest.raises(ValidationError):
            service.create_product(product_form(), [])
        assert session.query(Product).count() == 0

    def test_malformed_specifications_rolls_back(self, service, session, image_store):
        """Test that bad specifications JSON creates neither record nor files."""
        with pytest.raises(ValidationError):
            service.create_product(product_form(specifications='{bad json'), [make_upload(), make_upload()])

        assert stored_files(image_store) == []
        assert session.query(Product).count() == 0

    def test_missing_fields_enumerated(self, service):
        """Test that field errors are flattened into a list."""
        form = product_form(name='', brand=None, price='-5')
        with pytest.raises(ValidationError) as exc:
            service.create_product(form, [make_upload()])

        assert len(exc.value.errors) == 3
        assert 'Price cannot be negative' in exc.value.errors

    def test_commit_failure_removes_stored_images(self, service, session, image_store, monkeypatch):
        """Test that files stored for a failed commit are deleted."""
        def broken_create(fields):
            raise DatabaseError('connection lost')

        monkeypatch.setattr(service.repository, 'create', broken_create)
        with pytest.raises(DatabaseError):
            service.create_product(product_form(), [make_upload(), make_upload()])

        assert stored_files(image_store) == []

    def test_interrupted_create_removes_stored_images(self, service, image_store, monkeypatch):
        """Test that an interruption after storing still rolls files back."""
        def interrupted(fields):
            raise KeyboardInterrupt()

        monkeypatch.setattr(service.repository, 'create', interrupted)
        with pytest.raises(KeyboardInterrupt):
            service.create_product(product_form(), [make_upload()])

        assert stored_files(image_store) == []

    def test_storage_failure_surfaces(self, service, session, image_store, monkeypatch):
        """Test that an upload failure is a StorageError and no record is made."""
        def full_disk(files):
            raise StorageError('disk full')

        monkeypatch.setattr(image_store, 'store_many', full_disk)
        with pytest.raises(StorageError):
            service.create_product(product_form(), [make_upload()])
        assert session.query(Product).count() == 0


class TestUpdateProduct:
    """Tests for update_product."""

    def test_update_without_attachments_keeps_images(self, service):
        """Test that a stock-only update leaves images untouched."""
        product = service.create_product(product_form(), [make_upload(), make_upload()])
        images = list(product.images)

        updated = service.update_product(product.id, {'stock': 3})
        assert updated.stock == 3
        assert updated.images == images

    def test_new_attachments_replace_images(self, service, image_store):
        """Test replacement semantics; superseded files stay on disk."""
        product = service.create_product(product_form(), [make_upload('old.jpg')])
        old_images = list(product.images)

        updated = service.update_product(product.id, {}, [make_upload('n1.png', content_type='image/png'),
                                                          make_upload('n2.jpg')])
        assert len(updated.images) == 2
        assert updated.images[0].endswith('.png')
        assert not set(old_images) & set(updated.images)
        assert image_store.exists(old_images[0])

    def test_specifications_renormalized(self, service):
        """Test that updated specifications go through the parser again."""
        product = service.create_product(product_form(), [make_upload()])
        updated = service.update_product(product.id, {'specifications': '{"voltage": "110V", "weight": ""}'})
        assert updated.specifications == {'voltage': '110V'}

    def test_update_missing_product(self, service):
        """Test NotFoundError for unknown ids."""
        with pytest.raises(NotFoundError):
            service.update_product(123456, {'stock': 1})

    def test_invalid_update_rolls_back_new_images(self, service, image_store, monkeypatch):
        """Test that files stored for a failed update are removed."""
        product = service.create_product(product_form(), [make_upload()])
        before = stored_files(image_store)

        def broken_update(product_id, fields):
            raise DatabaseError('deadlock')

        monkeypatch.setattr(service.repository, 'update_fields', broken_update)
        with pytest.raises(DatabaseError):
            service.update_product(product.id, {}, [make_upload()])
        assert stored_files(image_store) == before

    def test_invalid_fields_rejected(self, service):
        """Test validation on update."""
        product = service.create_product(product_form(), [make_upload()])
        with pytest.raises(ValidationError):
            service.update_product(product.id, {'stock': '-1'})


class TestDeleteProduct:
    """Tests for the hard and soft delete policies."""

    def test_hard_delete_removes_record_and_files(self, service, session, image_store):
        """Test that hard delete cleans up every referenced file."""
        product = service.create_product(product_form(), [make_upload(), make_upload()])
        product_id = product.id

        service.hard_delete_product(product_id)
        assert ProductRepository(session).find_by_id(product_id) is None
        assert stored_files(image_store) == []

    def test_hard_delete_with_missing_image(self, service, session, image_store):
        """Test that an already-missing image does not block deletion."""
        product = service.create_product(product_form(), [make_upload(), make_upload()])
        product_id = product.id
        os.remove(image_store.resolve_path(product.images[0]))

        service.hard_delete_product(product_id)
        assert ProductRepository(session).find_by_id(product_id) is None
        assert stored_files(image_store) == []

    def test_hard_delete_when_cleanup_fails(self, service, session, image_store, monkeypatch):
        """Test that total image cleanup failure is logged and the record still goes."""
        product = service.create_product(product_form(), [make_upload()])
        product_id = product.id

        def broken_delete_many(urls):
            raise StorageError('permission denied')

        monkeypatch.setattr(image_store, 'delete_many', broken_delete_many)
        service.hard_delete_product(product_id)
        assert ProductRepository(session).find_by_id(product_id) is None

    def test_hard_delete_missing_product(self, service):
        """Test NotFoundError for unknown ids."""
        with pytest.raises(NotFoundError):
            service.hard_delete_product(98765)

    def test_soft_delete_keeps_files(self, service, session, image_store):
        """Test that soft delete only flips isActive."""
        product = service.create_product(product_form(), [make_upload()])
        product_id, images = product.id, list(product.images)

        result = service.soft_delete_product(product_id)
        assert result.is_active is False
        assert ProductRepository(session).find_by_id(product_id) is not None
        assert all(image_store.exists(url) for url in images)

    def test_delete_product_follows_policy(self, session, image_store):
        """Test that delete_product dispatches on the configured policy."""
        soft = CatalogWriteService(session, image_store, delete_policy='soft')
        product = soft.create_product(product_form(), [make_upload()])

        assert soft.delete_product(product.id).is_active is False

        hard = CatalogWriteService(session, image_store, delete_policy='hard')
        assert hard.delete_product(product.id) is None
        assert ProductRepository(session).find_by_id(product.id) is None

    def test_unknown_policy_rejected(self, session, image_store):
        """Test that a typo in the policy fails fast."""
        with pytest.raises(ValueError):
            CatalogWriteService(session, image_store, delete_policy='archive')
