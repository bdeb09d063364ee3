from flask import Blueprint, current_app, jsonify, redirect, request
from werkzeug.exceptions import HTTPException

from .. import cms, media as media_store, navigation, seo
from ..auth import current_api_user, login, require_api_user
from ..errors import BadRequest, CmsError, Unauthorized

cms_api_bp = Blueprint('cms_api', __name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization',
}
MUTATING_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')
AUTH_EXEMPT_ENDPOINTS = ('cms_api.auth_login',)
MEDIA_CACHE_CONTROL = 'public, max-age=31536000, immutable'


def envelope(data=None, message=None, status=200, pagination=None):
    payload = {'success': True, 'data': data}
    if message:
        payload['message'] = message
    if pagination is not None:
        payload['pagination'] = pagination
    return jsonify(payload), status


def error_envelope(message, status, details=None):
    payload = {'success': False, 'error': message}
    if details:
        payload['details'] = details
    response = jsonify(payload)
    response.status_code = status
    return response


def json_body():
    payload = request.get_json(silent=True)
    if payload is None:
        raise BadRequest('Invalid JSON in request body')
    return payload


def no_content():
    return current_app.response_class(status=204)


@cms_api_bp.before_request
def require_token_for_mutations():
    if request.method not in MUTATING_METHODS or request.endpoint in AUTH_EXEMPT_ENDPOINTS:
        return None
    if current_app.config.get('CMS_API_REQUIRE_AUTH'):
        require_api_user()
    return None


def apply_cors_headers(response):
    for header, value in CORS_HEADERS.items():
        response.headers[header] = value
    return response


@cms_api_bp.after_request
def add_cors_headers(response):
    apply_cors_headers(response)
    response.headers['Cross-Origin-Resource-Policy'] = 'cross-origin'
    response.headers.setdefault('Cache-Control', 'no-store')
    return response


@cms_api_bp.errorhandler(CmsError)
def handle_cms_error(error):
    if error.status_code >= 500:
        current_app.logger.error(f'CMS API error: {error.message}')
    return error_envelope(error.message, error.status_code, error.details)


@cms_api_bp.errorhandler(HTTPException)
def handle_http_error(error):
    return error_envelope(error.description or error.name, error.code or 500)


@cms_api_bp.errorhandler(Exception)
def handle_unexpected_error(error):
    current_app.logger.exception('Unhandled CMS API error.')
    return error_envelope('Internal server error', 500)


# Pages
@cms_api_bp.route('/pages', methods=['GET'])
def pages_list():
    items, pagination = cms.list_pages(request.args)
    return envelope([item.to_dict() for item in items], pagination=pagination)


@cms_api_bp.route('/pages', methods=['POST'])
def pages_create():
    page = cms.create_page(json_body())
    return envelope(page.to_dict(), 'Page created successfully', status=201)


@cms_api_bp.route('/pages/<id>', methods=['GET'])
def pages_get(id):
    return envelope(cms.get_page(id).to_dict())


@cms_api_bp.route('/pages/<id>', methods=['PUT'])
def pages_update(id):
    page = cms.update_page(id, json_body())
    return envelope(page.to_dict(), 'Page updated successfully')


@cms_api_bp.route('/pages/<id>', methods=['DELETE'])
def pages_delete(id):
    cms.delete_page(id)
    return no_content()


# Car series
@cms_api_bp.route('/car-series', methods=['GET'])
def car_series_list():
    items, pagination = cms.list_car_series(request.args)
    return envelope([item.to_dict() for item in items], pagination=pagination)


@cms_api_bp.route('/car-series', methods=['POST'])
def car_series_create():
    series = cms.create_car_series(json_body())
    return envelope(series.to_dict(), 'Car series created successfully', status=201)


@cms_api_bp.route('/car-series/<id>', methods=['GET'])
def car_series_get(id):
    return envelope(cms.get_car_series(id).to_dict())


@cms_api_bp.route('/car-series/<id>', methods=['PUT'])
def car_series_update(id):
    series = cms.update_car_series(id, json_body())
    return envelope(series.to_dict(), 'Car series updated successfully')


@cms_api_bp.route('/car-series/<id>', methods=['DELETE'])
def car_series_delete(id):
    cms.delete_car_series(id)
    return no_content()


# Navigation
@cms_api_bp.route('/navigation', methods=['GET'])
def navigation_list():
    items, pagination = navigation.list_navigation(request.args)
    return envelope([item.to_dict() for item in items], pagination=pagination)


@cms_api_bp.route('/navigation', methods=['POST'])
def navigation_create():
    item = navigation.create_navigation_item(json_body())
    return envelope(item.to_dict(), 'Navigation item created successfully', status=201)


@cms_api_bp.route('/navigation/tree', methods=['GET'])
def navigation_tree():
    active_only = (request.args.get('activeOnly') or '').strip().lower() in {'1', 'true', 'yes'}
    return envelope(navigation.navigation_tree(active_only=active_only))


@cms_api_bp.route('/navigation', methods=['PUT'])
@cms_api_bp.route('/navigation/reorder', methods=['PUT'])
def navigation_reorder():
    tree = navigation.reorder_navigation(json_body())
    return envelope(tree, 'Navigation items reordered successfully')


@cms_api_bp.route('/navigation/<id>', methods=['GET'])
def navigation_get(id):
    return envelope(navigation.get_navigation_item(id).to_dict())


@cms_api_bp.route('/navigation/<id>', methods=['PUT'])
def navigation_update(id):
    item = navigation.update_navigation_item(id, json_body())
    return envelope(item.to_dict(), 'Navigation item updated successfully')


@cms_api_bp.route('/navigation/<id>', methods=['DELETE'])
def navigation_delete(id):
    navigation.delete_navigation_item(id)
    return no_content()


# Content blocks
@cms_api_bp.route('/content-blocks', methods=['GET'])
def content_blocks_list():
    items, pagination = cms.list_content_blocks(request.args)
    return envelope([item.to_dict() for item in items], pagination=pagination)


@cms_api_bp.route('/content-blocks', methods=['POST'])
def content_blocks_create():
    block = cms.create_content_block(json_body())
    return envelope(block.to_dict(), 'Content block created successfully', status=201)


@cms_api_bp.route('/content-blocks', methods=['PUT'])
@cms_api_bp.route('/content-blocks/reorder', methods=['PUT'])
def content_blocks_reorder():
    blocks = cms.reorder_content_blocks(json_body())
    return envelope([block.to_dict() for block in blocks], 'Content blocks reordered successfully')


@cms_api_bp.route('/content-blocks/<id>', methods=['GET'])
def content_blocks_get(id):
    return envelope(cms.get_content_block(id).to_dict())


@cms_api_bp.route('/content-blocks/<id>', methods=['PUT'])
def content_blocks_update(id):
    block = cms.update_content_block(id, json_body())
    return envelope(block.to_dict(), 'Content block updated successfully')


@cms_api_bp.route('/content-blocks/<id>', methods=['DELETE'])
def content_blocks_delete(id):
    cms.delete_content_block(id)
    return no_content()


# Media
@cms_api_bp.route('/media', methods=['GET'])
def media_list():
    items, pagination = cms.list_media(request.args)
    return envelope([item.to_dict() for item in items], pagination=pagination)


@cms_api_bp.route('/media', methods=['POST'])
def media_create():
    item = cms.create_media(json_body())
    return envelope(item.to_dict(), 'Media file created successfully', status=201)


@cms_api_bp.route('/media', methods=['DELETE'])
def media_bulk_delete():
    deleted = cms.bulk_delete_media(json_body())
    return envelope({'deletedCount': deleted}, f'Successfully deleted {deleted} media files')


@cms_api_bp.route('/media/upload', methods=['GET'])
def media_upload_config():
    return envelope(media_store.upload_config())


@cms_api_bp.route('/media/upload', methods=['POST'])
def media_upload():
    item = media_store.store_upload(request.files.get('file'), request.form.get('altText', ''))
    return envelope(item.to_dict(), 'File uploaded successfully', status=201)


@cms_api_bp.route('/media/serve/<id>', methods=['GET'])
def media_serve(id):
    item = cms.get_media(id)
    if not item.is_data_url:
        return redirect(item.url)
    data, content_type = media_store.media_content(item)
    response = current_app.response_class(data, mimetype=content_type)
    response.headers['Cache-Control'] = MEDIA_CACHE_CONTROL
    response.headers['Content-Security-Policy'] = "default-src 'none'; style-src 'unsafe-inline'; sandbox"
    return response


@cms_api_bp.route('/media/<id>', methods=['GET'])
def media_get(id):
    return envelope(cms.get_media(id).to_dict())


@cms_api_bp.route('/media/<id>', methods=['PUT'])
def media_update(id):
    item = cms.update_media(id, json_body())
    return envelope(item.to_dict(), 'Media file updated successfully')


@cms_api_bp.route('/media/<id>', methods=['DELETE'])
def media_delete(id):
    cms.delete_media(id)
    return no_content()


# SEO
@cms_api_bp.route('/seo', methods=['GET'])
def seo_overview():
    return envelope(seo.seo_overview())


@cms_api_bp.route('/seo', methods=['POST'])
def seo_bulk_update():
    updated = seo.bulk_update(json_body())
    return envelope({'updatedCount': updated}, f'Successfully updated {updated} pages')


# Auth
@cms_api_bp.route('/auth/login', methods=['POST'])
def auth_login():
    return envelope(login(json_body()), 'Login successful')


@cms_api_bp.route('/auth/session', methods=['GET'])
def auth_session():
    user = current_api_user()
    if not user:
        raise Unauthorized('Invalid or expired session token')
    return envelope(user.to_dict())
