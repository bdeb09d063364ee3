import math

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from ..auth import bearer_token, verify_session_token
from ..errors import BadRequest, CmsError, Forbidden, NotFound, Unauthorized
from ..headless import (
    CAR_SERIES_FIND,
    CAR_SERIES_FIND_ONE,
    NAVIGATION_FIND,
    PAGE_FIND,
    PAGE_FIND_ONE,
    car_series_entry,
    is_action_allowed,
    navigation_entry,
    page_entry,
)
from ..models import API_ROLE_AUTHENTICATED, API_ROLE_PUBLIC, CarSeries, Page
from ..utils import parse_positive_int

headless_bp = Blueprint('headless', __name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
ERROR_NAMES = {
    400: 'ValidationError',
    401: 'UnauthorizedError',
    403: 'ForbiddenError',
    404: 'NotFoundError',
    405: 'MethodNotAllowedError',
}


def headless_error(status, message, details=None):
    response = jsonify({'data': None, 'error': {
        'status': status,
        'name': ERROR_NAMES.get(status, 'ApplicationError'),
        'message': message,
        'details': details or {},
    }})
    response.status_code = status
    return response


def _caller_role():
    token = bearer_token()
    if not token:
        return API_ROLE_PUBLIC
    if verify_session_token(token) is None:
        raise Unauthorized('Missing or invalid credentials')
    return API_ROLE_AUTHENTICATED


def require_permission(action):
    if not is_action_allowed(_caller_role(), action):
        raise Forbidden('Forbidden')


def _pagination_params():
    page = request.args.get('pagination[page]')
    page_size = request.args.get('pagination[pageSize]')
    parsed_page = parse_positive_int(page) if page is not None else 1
    parsed_size = parse_positive_int(page_size) if page_size is not None else DEFAULT_PAGE_SIZE
    if parsed_page is None or parsed_size is None:
        raise BadRequest('Invalid pagination parameters')
    return parsed_page, min(parsed_size, MAX_PAGE_SIZE)


def _apply_sort(query, model, sort_columns):
    raw = (request.args.get('sort') or '').strip()
    if not raw:
        return query.order_by(model.id.asc())
    field, _, direction = raw.partition(':')
    column = sort_columns.get(field.strip())
    direction = (direction or 'asc').strip().lower()
    if column is None or direction not in {'asc', 'desc'}:
        raise BadRequest(f'Invalid sort parameter: {raw}')
    if direction == 'desc':
        return query.order_by(column.desc(), model.id.desc())
    return query.order_by(column.asc(), model.id.asc())


def collection_response(model, sort_columns, serializer):
    query = model.query.filter(model.published.is_(True))
    slug = request.args.get('filters[slug][$eq]')
    if slug is not None:
        query = query.filter(model.slug == slug.strip())
    page, page_size = _pagination_params()
    total = query.order_by(None).count()
    items = _apply_sort(query, model, sort_columns).offset((page - 1) * page_size).limit(page_size).all()
    return jsonify({
        'data': [serializer(item) for item in items],
        'meta': {'pagination': {
            'page': page,
            'pageSize': page_size,
            'pageCount': math.ceil(total / page_size),
            'total': total,
        }},
    })


def entry_response(model, raw_id, serializer):
    item_id = parse_positive_int(raw_id)
    item = model.query.filter(model.id == item_id, model.published.is_(True)).first() if item_id else None
    if not item:
        raise NotFound('Not Found')
    return jsonify({'data': serializer(item), 'meta': {}})


PAGE_SORT_COLUMNS = {
    'title': Page.title,
    'slug': Page.slug,
    'createdAt': Page.created_at,
    'updatedAt': Page.updated_at,
    'publishedAt': Page.updated_at,
}
CAR_SERIES_SORT_COLUMNS = {
    'name': CarSeries.name,
    'slug': CarSeries.slug,
    'price': CarSeries.price,
    'createdAt': CarSeries.created_at,
    'updatedAt': CarSeries.updated_at,
    'publishedAt': CarSeries.updated_at,
}


@headless_bp.after_request
def add_cors_headers(response):
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization'
    response.headers['Cross-Origin-Resource-Policy'] = 'cross-origin'
    return response


@headless_bp.errorhandler(CmsError)
def handle_cms_error(error):
    return headless_error(error.status_code, error.message, {'errors': error.details} if error.details else None)


@headless_bp.errorhandler(HTTPException)
def handle_http_error(error):
    return headless_error(error.code or 500, error.description or error.name)


@headless_bp.errorhandler(Exception)
def handle_unexpected_error(error):
    current_app.logger.exception('Unhandled headless API error.')
    return headless_error(500, 'Internal Server Error')


@headless_bp.route('/pages', methods=['GET'])
def pages_find():
    require_permission(PAGE_FIND)
    return collection_response(Page, PAGE_SORT_COLUMNS, page_entry)


@headless_bp.route('/pages/<id>', methods=['GET'])
def pages_find_one(id):
    require_permission(PAGE_FIND_ONE)
    return entry_response(Page, id, page_entry)


@headless_bp.route('/car-series-collection', methods=['GET'])
def car_series_find():
    require_permission(CAR_SERIES_FIND)
    return collection_response(CarSeries, CAR_SERIES_SORT_COLUMNS, car_series_entry)


@headless_bp.route('/car-series-collection/<id>', methods=['GET'])
def car_series_find_one(id):
    require_permission(CAR_SERIES_FIND_ONE)
    return entry_response(CarSeries, id, car_series_entry)


@headless_bp.route('/navigation', methods=['GET'])
def navigation_find():
    require_permission(NAVIGATION_FIND)
    return jsonify({'data': navigation_entry(), 'meta': {}})
