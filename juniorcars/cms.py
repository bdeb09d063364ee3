"""CMS resource operations shared by the JSON API and the admin UI.

Each operation validates its input with the request schemas, talks to the
database through Flask-SQLAlchemy and returns model instances. Failures are
raised as ``CmsError`` subclasses so both callers can shape them their own way.
"""
import math

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from .errors import BadRequest, Conflict, NotFound, ValidationFailed
from .models import CarSeries, ContentBlock, Media, Page, db
from .schemas import (
    CarSeriesCreate,
    CarSeriesListQuery,
    CarSeriesUpdate,
    ContentBlockCreate,
    ContentBlockListQuery,
    ContentBlockReorder,
    ContentBlockUpdate,
    MediaBulkDelete,
    MediaCreate,
    MediaListQuery,
    MediaUpdate,
    PageCreate,
    PageListQuery,
    PageUpdate,
    validate_block_data,
    validate_payload,
    validate_query,
)
from .utils import escape_like, generate_slug, parse_positive_int, timestamp_suffixed_slug

PAGE_SORT_COLUMNS = {
    'createdAt': Page.created_at,
    'updatedAt': Page.updated_at,
    'title': Page.title,
    'slug': Page.slug,
}
CAR_SERIES_SORT_COLUMNS = {
    'createdAt': CarSeries.created_at,
    'updatedAt': CarSeries.updated_at,
    'name': CarSeries.name,
    'slug': CarSeries.slug,
    'price': CarSeries.price,
}
MEDIA_SORT_COLUMNS = {
    'createdAt': Media.created_at,
    'updatedAt': Media.updated_at,
    'filename': Media.filename,
    'size': Media.size,
}
CONTENT_BLOCK_SORT_COLUMNS = {
    'orderIndex': ContentBlock.order_index,
    'createdAt': ContentBlock.created_at,
    'updatedAt': ContentBlock.updated_at,
}

# Columns that may never be written as NULL through a partial update.
PAGE_REQUIRED_FIELDS = {'title', 'slug', 'published'}
CAR_SERIES_REQUIRED_FIELDS = {'name', 'slug', 'published'}
MEDIA_REQUIRED_FIELDS = {'filename', 'original_name', 'url'}
CONTENT_BLOCK_REQUIRED_FIELDS = {'page_id', 'type', 'data', 'order_index'}


# Query helpers
def parse_id(raw_id, label):
    parsed = parse_positive_int(raw_id)
    if parsed is None:
        raise BadRequest(f'Invalid {label} ID')
    return parsed


def get_or_404(model, raw_id, label, options=()):
    item_id = parse_id(raw_id, label.lower())
    query = model.query
    if options:
        query = query.options(*options)
    item = query.filter(model.id == item_id).first()
    if not item:
        raise NotFound(f'{label} not found')
    return item


def apply_search(query, columns, term):
    term = (term or '').strip()
    if not term:
        return query
    pattern = f'%{escape_like(term.lower())}%'
    return query.filter(or_(*[func.lower(column).like(pattern, escape='\\') for column in columns]))


def apply_sort(query, model, sort_columns, sort_by, sort_order):
    column = sort_columns.get(sort_by, model.created_at)
    if sort_order == 'asc':
        return query.order_by(column.asc(), model.id.asc())
    return query.order_by(column.desc(), model.id.desc())


def paginate(query, page, limit):
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    pagination = {
        'page': page,
        'limit': limit,
        'total': total,
        'totalPages': math.ceil(total / limit) if limit else 0,
    }
    return items, pagination


def commit_or_conflict(message):
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning(f'Integrity error on commit: {exc.orig}')
        raise Conflict(message) from exc


def apply_fields(item, fields, required_fields):
    for key, value in fields.items():
        if key == 'id':
            continue
        if value is None and key in required_fields:
            continue
        setattr(item, key, value)


def with_id(payload, item_id):
    # Non-object bodies are passed through so validation reports them.
    if isinstance(payload, dict):
        return {**payload, 'id': item_id}
    return payload


def slug_for_create(model, requested_slug, source_text):
    slug = requested_slug or generate_slug(source_text)
    if not slug:
        raise ValidationFailed(
            'Validation error: slug: Unable to generate a valid slug',
            details=[{'field': 'slug', 'message': 'Unable to generate a valid slug'}],
        )
    if model.query.filter(model.slug == slug).first():
        slug = timestamp_suffixed_slug(slug)
    return slug


def ensure_slug_available(model, slug, item_id):
    clash = model.query.filter(model.slug == slug, model.id != item_id).first()
    if clash:
        raise Conflict('Slug already exists')


# Pages
def list_pages(args):
    params = validate_query(PageListQuery, args)
    query = Page.query.options(selectinload(Page.content_blocks))
    if params.published is not None:
        query = query.filter(Page.published.is_(params.published))
    query = apply_search(query, [Page.title, Page.slug], params.search)
    query = apply_sort(query, Page, PAGE_SORT_COLUMNS, params.sort_by, params.sort_order)
    return paginate(query, params.page, params.limit)


def get_page(raw_id):
    return get_or_404(Page, raw_id, 'Page', options=(selectinload(Page.content_blocks),))


def create_page(payload):
    data = validate_payload(PageCreate, payload)
    fields = data.to_fields()
    fields['slug'] = slug_for_create(Page, data.slug, data.title)
    fields.setdefault('published', data.published)
    page = Page(**fields)
    db.session.add(page)
    commit_or_conflict('Slug already exists')
    current_app.logger.info(f'Created page {page.id} ({page.slug}).')
    return page


def update_page(raw_id, payload):
    item_id = parse_id(raw_id, 'page')
    data = validate_payload(PageUpdate, with_id(payload, item_id))
    page = get_page(item_id)
    if data.slug and data.slug != page.slug:
        ensure_slug_available(Page, data.slug, page.id)
    apply_fields(page, data.to_fields(), PAGE_REQUIRED_FIELDS)
    commit_or_conflict('Slug already exists')
    return page


def delete_page(raw_id):
    page = get_page(raw_id)
    db.session.delete(page)
    db.session.commit()
    current_app.logger.info(f'Deleted page {page.id} and its content blocks.')


def set_page_published(raw_id, published):
    page = get_page(raw_id)
    page.published = bool(published)
    db.session.commit()
    return page


# Car series
def list_car_series(args):
    params = validate_query(CarSeriesListQuery, args)
    query = CarSeries.query
    if params.published is not None:
        query = query.filter(CarSeries.published.is_(params.published))
    query = apply_search(query, [CarSeries.name, CarSeries.slug, CarSeries.description], params.search)
    query = apply_sort(query, CarSeries, CAR_SERIES_SORT_COLUMNS, params.sort_by, params.sort_order)
    return paginate(query, params.page, params.limit)


def get_car_series(raw_id):
    return get_or_404(CarSeries, raw_id, 'Car series')


def create_car_series(payload):
    data = validate_payload(CarSeriesCreate, payload)
    fields = data.to_fields()
    fields['slug'] = slug_for_create(CarSeries, data.slug, data.name)
    fields.setdefault('published', data.published)
    series = CarSeries(**fields)
    db.session.add(series)
    commit_or_conflict('Slug already exists')
    current_app.logger.info(f'Created car series {series.id} ({series.slug}).')
    return series


def update_car_series(raw_id, payload):
    item_id = parse_id(raw_id, 'car series')
    data = validate_payload(CarSeriesUpdate, with_id(payload, item_id))
    series = get_car_series(item_id)
    if data.slug and data.slug != series.slug:
        ensure_slug_available(CarSeries, data.slug, series.id)
    apply_fields(series, data.to_fields(), CAR_SERIES_REQUIRED_FIELDS)
    commit_or_conflict('Slug already exists')
    return series


def delete_car_series(raw_id):
    series = get_car_series(raw_id)
    db.session.delete(series)
    db.session.commit()
    current_app.logger.info(f'Deleted car series {series.id}.')


def set_car_series_published(raw_id, published):
    series = get_car_series(raw_id)
    series.published = bool(published)
    db.session.commit()
    return series


# Content blocks
def list_content_blocks(args):
    params = validate_query(ContentBlockListQuery, args)
    query = ContentBlock.query
    if params.page_id is not None:
        query = query.filter(ContentBlock.page_id == params.page_id)
    if params.type:
        query = query.filter(ContentBlock.type == params.type)
    query = apply_search(query, [ContentBlock.type], params.search)
    query = apply_sort(query, ContentBlock, CONTENT_BLOCK_SORT_COLUMNS, params.sort_by, params.sort_order)
    return paginate(query, params.page, params.limit)


def get_content_block(raw_id):
    return get_or_404(ContentBlock, raw_id, 'Content block')


def _require_page(page_id):
    if not db.session.get(Page, page_id):
        raise BadRequest('Page not found')


def next_block_order_index(page_id):
    current_max = db.session.query(func.max(ContentBlock.order_index)).filter(
        ContentBlock.page_id == page_id,
    ).scalar()
    return (current_max or 0) + 1


def create_content_block(payload):
    data = validate_payload(ContentBlockCreate, payload)
    block_data = validate_block_data(data.type, data.data)
    _require_page(data.page_id)
    order_index = data.order_index if data.order_index is not None else next_block_order_index(data.page_id)
    block = ContentBlock(page_id=data.page_id, type=data.type, data=block_data, order_index=order_index)
    db.session.add(block)
    db.session.commit()
    return block


def update_content_block(raw_id, payload):
    item_id = parse_id(raw_id, 'content block')
    data = validate_payload(ContentBlockUpdate, with_id(payload, item_id))
    block = get_content_block(item_id)
    fields = data.to_fields()
    if data.page_id is not None and data.page_id != block.page_id:
        _require_page(data.page_id)
    block_type = data.type or block.type
    if data.data is not None:
        fields['data'] = validate_block_data(block_type, data.data)
    elif data.type and data.type != block.type:
        fields['data'] = validate_block_data(block_type, block.data)
    apply_fields(block, fields, CONTENT_BLOCK_REQUIRED_FIELDS)
    db.session.commit()
    return block


def delete_content_block(raw_id):
    block = get_content_block(raw_id)
    db.session.delete(block)
    db.session.commit()


def reorder_content_blocks(payload):
    data = validate_payload(ContentBlockReorder, payload)
    ids = [entry.id for entry in data.blocks]
    blocks = {block.id: block for block in ContentBlock.query.filter(ContentBlock.id.in_(ids)).all()}
    missing = [block_id for block_id in ids if block_id not in blocks]
    if missing:
        raise NotFound(f'Content block not found: {missing[0]}')
    for entry in data.blocks:
        blocks[entry.id].order_index = entry.order_index
    db.session.commit()
    return [blocks[block_id] for block_id in ids]


# Media
def _media_type_filter(query, media_type):
    if media_type == 'image':
        return query.filter(Media.mime_type.like('image/%'))
    if media_type == 'video':
        return query.filter(Media.mime_type.like('video/%'))
    if media_type == 'document':
        return query.filter(or_(
            Media.mime_type.is_(None),
            ~or_(Media.mime_type.like('image/%'), Media.mime_type.like('video/%')),
        ))
    return query


def list_media(args):
    params = validate_query(MediaListQuery, args)
    query = _media_type_filter(Media.query, params.type)
    query = apply_search(query, [Media.filename, Media.original_name, Media.alt_text], params.search)
    query = apply_sort(query, Media, MEDIA_SORT_COLUMNS, params.sort_by, params.sort_order)
    return paginate(query, params.page, params.limit)


def get_media(raw_id):
    return get_or_404(Media, raw_id, 'Media file')


def _ensure_filename_available(filename, item_id=None):
    query = Media.query.filter(Media.filename == filename)
    if item_id is not None:
        query = query.filter(Media.id != item_id)
    if query.first():
        raise Conflict('Media file with this filename already exists')


def create_media(payload):
    data = validate_payload(MediaCreate, payload)
    _ensure_filename_available(data.filename)
    media = Media(**data.to_fields())
    db.session.add(media)
    commit_or_conflict('Media file with this filename already exists')
    return media


def update_media(raw_id, payload):
    item_id = parse_id(raw_id, 'media')
    data = validate_payload(MediaUpdate, with_id(payload, item_id))
    media = get_media(item_id)
    if data.filename and data.filename != media.filename:
        _ensure_filename_available(data.filename, media.id)
    apply_fields(media, data.to_fields(), MEDIA_REQUIRED_FIELDS)
    commit_or_conflict('Media file with this filename already exists')
    return media


def delete_media(raw_id):
    media = get_media(raw_id)
    db.session.delete(media)
    db.session.commit()


def bulk_delete_media(payload):
    data = validate_payload(MediaBulkDelete, payload)
    deleted = Media.query.filter(Media.id.in_(data.ids)).delete(synchronize_session=False)
    db.session.commit()
    current_app.logger.info(f'Bulk deleted {deleted} media file(s).')
    return deleted


def dashboard_counts():
    return {
        'pages': Page.query.count(),
        'published_pages': Page.query.filter(Page.published.is_(True)).count(),
        'car_series': CarSeries.query.count(),
        'published_car_series': CarSeries.query.filter(CarSeries.published.is_(True)).count(),
        'content_blocks': ContentBlock.query.count(),
        'media': Media.query.count(),
    }
