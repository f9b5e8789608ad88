"""
Local-disk image storage for product pictures.

Files live in one namespaced directory per deployment
(``<UPLOAD_FOLDER>/<UPLOAD_NAMESPACE>``) and are addressed by public URLs of
the form ``/uploads/products/<generated filename>``.

Architecture:
- Explicit ImageStoreConfig passed to the constructor (no process-wide state)
- Directory is created once, at construction
- Generated names are unique and created exclusively, so concurrent uploads
  never share a file
- Batch deletion fans out on a thread pool and only fails if every file fails
"""
import logging
import mimetypes
import os
import secrets
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Union

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from storefront.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

Content = Union[bytes, bytearray, FileStorage]


@dataclass(frozen=True)
class ImageStoreConfig:
    """Upload settings for an ImageStore."""
    root_dir: str
    namespace: str = 'products'
    url_prefix: str = '/uploads'
    max_file_size: int = 5 * 1024 * 1024
    max_files: int = 5
    allowed_mime_types: frozenset = field(default_factory=lambda: frozenset({
        'image/jpeg', 'image/png', 'image/gif', 'image/webp'
    }))
    write_timeout: float = 10.0
    delete_workers: int = 4

    @classmethod
    def from_mapping(cls, config) -> 'ImageStoreConfig':
        """Build from a Flask config (or any mapping with the same keys)."""
        return cls(
            root_dir=config['UPLOAD_FOLDER'],
            namespace=config.get('UPLOAD_NAMESPACE', 'products'),
            url_prefix=config.get('UPLOAD_URL_PREFIX', '/uploads').rstrip('/'),
            max_file_size=int(config.get('MAX_UPLOAD_SIZE', 5 * 1024 * 1024)),
            max_files=int(config.get('MAX_IMAGES_PER_PRODUCT', 5)),
            allowed_mime_types=frozenset(config.get('ALLOWED_MIME_TYPES') or ()),
            write_timeout=float(config.get('UPLOAD_WRITE_TIMEOUT', 10)),
            delete_workers=int(config.get('IMAGE_DELETE_WORKERS', 4)),
        )

    @property
    def directory(self) -> str:
        return os.path.join(self.root_dir, self.namespace)

    @property
    def base_url(self) -> str:
        return f"{self.url_prefix}/{self.namespace}"


class ImageStore:
    """
    Image file storage on local disk.

    Usage:
        store = ImageStore(ImageStoreConfig(root_dir='/srv/uploads'))
        url = store.store(file)            # '/uploads/products/1718000000000-3fa2c1.jpg'
        store.delete(url)
        store.delete_many([url1, url2])
    """

    def __init__(self, config: ImageStoreConfig):
        self.config = config
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, config.delete_workers),
            thread_name_prefix='image-store'
        )
        self.ensure_ready()

    def ensure_ready(self):
        """Create the namespaced upload directory if it doesn't exist."""
        try:
            os.makedirs(self.config.directory, exist_ok=True)
            logger.info(f"[STORAGE] Upload directory ready: {self.config.directory}")
        except OSError as e:
            logger.error(f"[STORAGE] ✗ Cannot create upload directory {self.config.directory}: {e}")
            raise StorageError('Upload directory is not available', path=self.config.directory, cause=e)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def validate(self, files: Sequence[FileStorage], required: bool = True):
        """
        Validate a batch of uploads before anything is written.

        Args:
            files: Werkzeug FileStorage objects from request.files
            required: Whether at least one file must be present

        Raises:
            ValidationError: On count, type or size violations
        """
        errors = []
        if required and not files:
            errors.append('At least one product image is required')
        if len(files) > self.config.max_files:
            errors.append(f'A product can have at most {self.config.max_files} images')

        for file in files:
            errors.extend(self._file_errors(file))

        if errors:
            raise ValidationError('Invalid image upload', errors=errors)

    def _file_errors(self, file: FileStorage) -> List[str]:
        name = file.filename or '<unnamed>'
        if not file.filename:
            return ['Uploaded image has no filename']

        errors = []
        content_type = (file.mimetype or '').lower()
        if not content_type.startswith('image/'):
            errors.append(f'{name}: only image files are allowed')
        elif self.config.allowed_mime_types and content_type not in self.config.allowed_mime_types:
            allowed = ', '.join(sorted(self.config.allowed_mime_types))
            errors.append(f'{name}: file type {content_type} not allowed. Allowed: {allowed}')

        size = _stream_size(file)
        if size > self.config.max_file_size:
            max_mb = self.config.max_file_size / (1024 * 1024)
            errors.append(f'{name}: file is too large. Maximum {max_mb:.1f}MB')
        return errors

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store(self, content: Content, original_name: Optional[str] = None,
              content_type: Optional[str] = None) -> str:
        """
        Persist binary content under a generated collision-free name.

        Args:
            content: Raw bytes or a FileStorage
            original_name: Client filename; only its extension is kept
            content_type: MIME type, used when the name has no extension

        Returns:
            Public URL of the stored file

        Raises:
            StorageError: If the write fails or exceeds the write timeout
        """
        if isinstance(content, FileStorage):
            original_name = original_name or content.filename
            content_type = content_type or content.mimetype
            content.stream.seek(0)
            data = content.stream.read()
        else:
            data = bytes(content)

        extension = _extension_for(original_name, content_type)
        path = None
        for _ in range(5):
            filename = _generate_filename(extension)
            path = os.path.join(self.config.directory, filename)
            future = self._executor.submit(_write_exclusive, path, data)
            try:
                future.result(timeout=self.config.write_timeout)
            except FileExistsError:
                continue
            except FutureTimeoutError as e:
                # The write keeps running in the pool; drop whatever it leaves behind
                future.add_done_callback(lambda _f, p=path: _silent_remove(p))
                logger.error(f"[STORAGE] ✗ Write timed out after {self.config.write_timeout}s: {path}")
                raise StorageError('Image upload timed out', path=path, cause=e)
            except OSError as e:
                _silent_remove(path)
                logger.error(f"[STORAGE] ✗ Write failed for {path}: {e}")
                raise StorageError('Could not save image', path=path, cause=e)

            url = self.url_for_filename(filename)
            logger.info(f"[STORAGE] ✓ File stored: {url} ({len(data)} bytes)")
            return url

        raise StorageError('Could not allocate a unique image filename', path=path)

    def store_many(self, files: Sequence[FileStorage]) -> List[str]:
        """
        Store uploads in submission order.

        If one store fails, the files already written by this call are
        removed before the error propagates.
        """
        urls: List[str] = []
        try:
            for file in files:
                urls.append(self.store(file))
        except BaseException:
            if urls:
                logger.warning(f"[STORAGE] Rolling back {len(urls)} stored file(s) after failed batch")
                self.discard(urls)
            raise
        return urls

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete(self, url: str):
        """
        Delete the file behind a URL. A file that is already gone counts as deleted.

        Raises:
            StorageError: If the URL is foreign or the file cannot be removed
        """
        path = self.resolve_path(url)
        try:
            os.remove(path)
            logger.info(f"[STORAGE] ✓ File deleted: {url}")
        except FileNotFoundError:
            logger.info(f"[STORAGE] File already absent: {url}")
        except OSError as e:
            logger.error(f"[STORAGE] ✗ Delete failed for {path}: {e}")
            raise StorageError('Could not delete image', path=path, cause=e)

    def delete_many(self, urls: Iterable[str]):
        """
        Delete every URL independently on the worker pool.

        Each failure is logged; StorageError is raised only when every
        deletion failed.
        """
        urls = list(urls)
        if not urls:
            return

        outcomes = list(self._executor.map(self._try_delete, urls))
        failures = [error for error in outcomes if error is not None]
        if failures and len(failures) == len(urls):
            first = failures[0]
            raise StorageError(
                f'Could not delete any of {len(urls)} image(s)',
                path=getattr(first, 'path', None),
                cause=first
            )
        if failures:
            logger.warning(f"[STORAGE] {len(failures)} of {len(urls)} image deletion(s) failed")

    def discard(self, urls: Iterable[str]):
        """Best-effort rollback of freshly stored files; never raises."""
        try:
            self.delete_many(urls)
        except StorageError as e:
            logger.error(f"[STORAGE] ✗ Rollback could not remove stored files: {e.message}")

    def _try_delete(self, url: str) -> Optional[Exception]:
        try:
            self.delete(url)
            return None
        except StorageError as e:
            return e

    # ------------------------------------------------------------------
    # Paths and URLs
    # ------------------------------------------------------------------

    def url_for_filename(self, filename: str) -> str:
        return f"{self.config.base_url}/{filename}"

    def resolve_path(self, url: str) -> str:
        """
        Map a public URL (``/uploads/products/<name>``) to its file path.

        Raises:
            StorageError: If the URL does not point inside this store
        """
        prefix = self.config.base_url + '/'
        filename = url[len(prefix):] if url and url.startswith(prefix) else None
        if not filename or filename != os.path.basename(filename) or filename in ('.', '..'):
            raise StorageError(f'Not a stored image URL: {url}', path=url)
        return os.path.join(self.config.directory, filename)

    def exists(self, url: str) -> bool:
        try:
            return os.path.isfile(self.resolve_path(url))
        except StorageError:
            return False

    def shutdown(self):
        self._executor.shutdown(wait=True)


def _stream_size(file: FileStorage) -> int:
    stream = file.stream
    stream.seek(0, 2)  # Seek to end
    size = stream.tell()
    stream.seek(0)  # Reset
    return size


def _generate_filename(extension: str) -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}{extension}"


def _extension_for(original_name: Optional[str], content_type: Optional[str]) -> str:
    extension = os.path.splitext(secure_filename(original_name or ''))[1].lower()
    if not extension and content_type:
        extension = mimetypes.guess_extension(content_type) or ''
    return extension


def _write_exclusive(path: str, data: bytes):
    # 'x' refuses to overwrite, so two writers can never share a name
    try:
        with open(path, 'xb') as fh:
            fh.write(data)
    except FileExistsError:
        raise
    except OSError:
        _silent_remove(path)
        raise


def _silent_remove(path: str):
    try:
        os.remove(path)
    except OSError:
        pass


# Per-app instance, created by init_image_store()
EXTENSION_KEY = 'image_store'


def init_image_store(app) -> ImageStore:
    """Create the app's ImageStore and register it on app.extensions."""
    store = ImageStore(ImageStoreConfig.from_mapping(app.config))
    app.extensions[EXTENSION_KEY] = store
    return store


def get_image_store() -> ImageStore:
    """
    Get the ImageStore of the current app.

    Returns:
        ImageStore instance
    """
    return current_app.extensions[EXTENSION_KEY]
