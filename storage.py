import os
import time
from flask import current_app
from werkzeug.utils import secure_filename
from auth import has_role
from errors import ValidationError, StorageError, AuthorizationError


def validate_attachment(filename, mimetype, size):
    """Check an upload against the bucket limits before anything is written."""
    if size > current_app.config['MAX_ATTACHMENT_SIZE']:
        raise ValidationError('File size must be less than 10MB')
    if mimetype not in current_app.config['ALLOWED_ATTACHMENT_TYPES']:
        raise ValidationError('Unsupported file type')
    if not filename:
        raise ValidationError('File name is required')


def object_path(user_id, filename, now=None):
    # <owner>/<ms timestamp>.<ext>; unique per owner without a lookup
    millis = int((now if now is not None else time.time()) * 1000)
    ext = os.path.splitext(secure_filename(filename or ''))[1].lstrip('.').lower()
    return f"{user_id}/{millis}.{ext}" if ext else f"{user_id}/{millis}"


def url_for_path(path):
    return f"{current_app.config['ATTACHMENT_URL_PREFIX']}/{path}"


def path_from_url(url):
    prefix = current_app.config['ATTACHMENT_URL_PREFIX'] + '/'
    if not url or not url.startswith(prefix):
        return None
    return url[len(prefix):]


class AttachmentStore:
    """Private per-owner file bucket on the local filesystem.

    The first path segment names the owner. Owners may write, read and delete
    their own objects; admins may read everything.
    """

    def __init__(self, session, ctx, root=None):
        self.session = session
        self.ctx = ctx
        self.root = root or current_app.config['ATTACHMENT_FOLDER']

    def _resolve(self, path):
        parts = (path or '').split('/')
        if len(parts) != 2 or not all(parts) or any(p in ('.', '..') for p in parts):
            raise AuthorizationError()
        return parts[0], os.path.join(self.root, *parts)

    def _owns(self, owner):
        return self.ctx is not None and owner == self.ctx.user_id

    def put(self, path, data, mimetype):
        owner, full = self._resolve(path)
        if not self._owns(owner):
            raise AuthorizationError()
        validate_attachment(path, mimetype, len(data))
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, 'xb') as f:
                f.write(data)
        except FileExistsError:
            raise StorageError('The resource already exists')
        except OSError as e:
            current_app.logger.error('Upload of %s failed: %s', path, e)
            raise StorageError()
        return url_for_path(path)

    def open(self, path):
        owner, full = self._resolve(path)
        if not self._owns(owner) and not (self.ctx and has_role(self.session, self.ctx.user_id, 'admin')):
            raise AuthorizationError()
        if not os.path.isfile(full):
            raise StorageError('Object not found')
        return full

    def remove(self, path):
        owner, full = self._resolve(path)
        if not self._owns(owner):
            raise AuthorizationError()
        try:
            os.remove(full)
        except FileNotFoundError:
            return False
        except OSError as e:
            current_app.logger.error('Delete of %s failed: %s', path, e)
            raise StorageError('Failed to delete file')
        return True
