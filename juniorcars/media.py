import base64
import binascii
import io
import secrets
import time
from urllib.parse import unquote_to_bytes

from flask import current_app
from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from .errors import BadRequest
from .models import Media, db
from .utils import clean_text

RASTER_IMAGE_TYPES = {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}
EXTENSION_MIME_TYPES = {
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'gif': 'image/gif',
    'webp': 'image/webp',
    'svg': 'image/svg+xml',
    'mp4': 'video/mp4',
    'webm': 'video/webm',
    'pdf': 'application/pdf',
}
PILLOW_FORMAT_MIME_TYPES = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
    'GIF': 'image/gif',
    'WEBP': 'image/webp',
}


def upload_config():
    return {
        'maxFileSize': int(current_app.config['MEDIA_MAX_UPLOAD_BYTES']),
        'allowedTypes': list(current_app.config['ALLOWED_UPLOAD_MIME_TYPES']),
    }


def resolve_mime_type(filename, declared_type):
    mime_type = (declared_type or '').split(';', 1)[0].strip().lower()
    if mime_type == 'image/jpg':
        mime_type = 'image/jpeg'
    if not mime_type or mime_type == 'application/octet-stream':
        extension = filename.rsplit('.', 1)[1].lower() if '.' in filename else ''
        mime_type = EXTENSION_MIME_TYPES.get(extension, mime_type)
    return mime_type


def _inspect_raster(data, mime_type):
    max_pixels = max(1, int(current_app.config.get('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000)))
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
            detected = PILLOW_FORMAT_MIME_TYPES.get(image.format)
            if width < 1 or height < 1 or (width * height) > max_pixels:
                raise BadRequest('Image dimensions are not allowed')
            image.verify()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise BadRequest('File content does not match an allowed image type') from exc
    if detected != mime_type:
        raise BadRequest('File content does not match its declared type')
    return width, height


def inspect_upload(filename, declared_type, data):
    """Return ``(mime_type, width, height)`` for an allowed upload or raise BadRequest."""
    allowed_types = current_app.config.get('ALLOWED_UPLOAD_MIME_TYPES', ())
    mime_type = resolve_mime_type(filename, declared_type)
    if mime_type not in allowed_types:
        raise BadRequest(f"File type not supported: {declared_type or 'unknown'}. Allowed types: {', '.join(allowed_types)}")
    max_bytes = int(current_app.config['MEDIA_MAX_UPLOAD_BYTES'])
    if not data:
        raise BadRequest('Uploaded file is empty')
    if len(data) > max_bytes:
        raise BadRequest(f'File size too large. Maximum size is {max_bytes // (1024 * 1024)}MB')

    width = height = None
    if mime_type in RASTER_IMAGE_TYPES:
        width, height = _inspect_raster(data, mime_type)
    elif mime_type == 'image/svg+xml':
        head = data[:512].lstrip().lower()
        if not (head.startswith(b'<svg') or head.startswith(b'<?xml')):
            raise BadRequest('File content does not match an allowed image type')
    elif mime_type == 'application/pdf' and not data.startswith(b'%PDF-'):
        raise BadRequest('File content does not match its declared type')
    return mime_type, width, height


def encode_data_url(mime_type, data):
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_url(url):
    """Split a data URL into ``(mime_type, bytes)``."""
    if not (url or '').startswith('data:') or ',' not in url:
        raise BadRequest('Invalid media data')
    header, payload = url[len('data:'):].split(',', 1)
    parts = header.split(';')
    mime_type = parts[0] or 'text/plain'
    if 'base64' in parts[1:]:
        try:
            return mime_type, base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise BadRequest('Invalid media data') from exc
    return mime_type, unquote_to_bytes(payload)


def store_upload(file, alt_text=''):
    if not file or not file.filename:
        raise BadRequest('No file provided')
    original_name = clean_text(file.filename, 300)
    data = file.read()
    mime_type, width, height = inspect_upload(original_name, file.mimetype, data)

    # Generated names stay unique without a lookup.
    safe_name = secure_filename(original_name) or 'upload'
    extension = safe_name.rsplit('.', 1)[1].lower() if '.' in safe_name else ''
    filename = f'cms_{int(time.time() * 1000)}_{secrets.token_hex(6)}'
    if extension:
        filename = f'{filename}.{extension}'

    media = Media(
        filename=filename,
        original_name=original_name,
        url=encode_data_url(mime_type, data),
        alt_text=clean_text(alt_text, 300),
        size=len(data),
        mime_type=mime_type,
        width=width,
        height=height,
    )
    db.session.add(media)
    db.session.commit()
    current_app.logger.info(f'Stored upload {media.id} ({mime_type}, {media.size} bytes).')
    return media


def media_content(media):
    """Return ``(bytes, content_type)`` for a stored data URL."""
    declared, data = decode_data_url(media.url)
    return data, media.mime_type or declared or 'application/octet-stream'
