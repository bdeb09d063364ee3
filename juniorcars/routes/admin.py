import json

from flask import Blueprint, current_app, flash, redirect, render_template, request, session, url_for
from flask_login import current_user, login_required, login_user, logout_user

from .. import cms, media as media_store, navigation, seo
from ..auth import authenticate, issue_session_token, verify_session_token
from ..errors import CmsError, NotFound
from ..forms import (
    CarSeriesForm,
    ContentBlockForm,
    LoginForm,
    MediaEditForm,
    MediaUploadForm,
    NavigationItemForm,
    PageForm,
    SeoBulkForm,
)
from ..models import CarSeries, Media, NavigationItem, Page
from ..utils import clean_text

admin_bp = Blueprint('admin', __name__)
SESSION_TOKEN_KEY = 'cms_session_token'
PUBLIC_ENDPOINTS = {'admin.login'}
SPEC_FIELDS = ('engine', 'power', 'torque', 'transmission', 'fuel_type', 'acceleration', 'top_speed', 'weight')
SPEC_KEYS = {
    'fuel_type': 'fuelType',
    'top_speed': 'topSpeed',
}


def _flash_error(error):
    flash(error.message, 'danger')


def _form_errors(form):
    for field_name, messages in form.errors.items():
        label = getattr(form, field_name).label.text
        for message in messages:
            flash(f'{label}: {message}', 'danger')


def _merge_blob(existing, updates):
    """Overlay form values onto a stored JSON blob; blank values remove the key."""
    merged = dict(existing) if isinstance(existing, dict) else {}
    for key, value in updates.items():
        if value in (None, ''):
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged or None


@admin_bp.before_request
def verify_admin_session():
    if request.endpoint in PUBLIC_ENDPOINTS or not current_user.is_authenticated:
        return None
    user = verify_session_token(session.get(SESSION_TOKEN_KEY))
    if user is None or user.id != current_user.id:
        logout_user()
        session.pop(SESSION_TOKEN_KEY, None)
        flash('Your session has expired. Please sign in again.', 'warning')
        return redirect(url_for('admin.login'))
    return None


# Auth
@admin_bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated and verify_session_token(session.get(SESSION_TOKEN_KEY)):
        return redirect(url_for('admin.dashboard'))
    form = LoginForm()
    if form.validate_on_submit():
        user = authenticate(form.email.data, form.password.data)
        if user:
            session.clear()
            login_user(user)
            session[SESSION_TOKEN_KEY] = issue_session_token(user)
            current_app.logger.info(f'Admin login succeeded for user {user.id}.')
            return redirect(url_for('admin.dashboard'))
        current_app.logger.warning('Failed admin login attempt.')
        flash('Invalid email or password.', 'danger')
        return render_template('admin/login.html', form=form), 401
    return render_template('admin/login.html', form=form)


@admin_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    session.pop(SESSION_TOKEN_KEY, None)
    return redirect(url_for('admin.login'))


# Dashboard
@admin_bp.route('/')
@login_required
def dashboard():
    counts = cms.dashboard_counts()
    recent_pages = Page.query.order_by(Page.updated_at.desc(), Page.id.desc()).limit(5).all()
    recent_series = CarSeries.query.order_by(CarSeries.updated_at.desc(), CarSeries.id.desc()).limit(5).all()
    seo_score = seo.seo_overview()['overview']['seoScore']
    return render_template(
        'admin/dashboard.html',
        counts=counts,
        recent_pages=recent_pages,
        recent_series=recent_series,
        seo_score=seo_score,
    )


# Pages
def _page_form_data(page):
    hero = page.hero_data or {}
    seo_data = page.seo_data or {}
    content = page.content if isinstance(page.content, dict) else {}
    return {
        'title': page.title,
        'slug': page.slug,
        'hero_title': hero.get('title'),
        'hero_subtitle': hero.get('subtitle'),
        'hero_description': hero.get('description'),
        'hero_image': hero.get('image'),
        'body': content.get('body') if content else (page.content if isinstance(page.content, str) else ''),
        'seo_title': seo_data.get('title'),
        'seo_description': seo_data.get('description'),
        'published': bool(page.published),
    }


def _page_payload(form, page=None):
    payload = {
        'title': clean_text(form.title.data, 200),
        'published': bool(form.published.data),
        'heroData': _merge_blob(page.hero_data if page else None, {
            'title': clean_text(form.hero_title.data, 200),
            'subtitle': clean_text(form.hero_subtitle.data, 300),
            'description': clean_text(form.hero_description.data, 2000),
            'image': clean_text(form.hero_image.data, 2000),
        }),
        'seoData': _merge_blob(page.seo_data if page else None, {
            'title': clean_text(form.seo_title.data, 200),
            'description': clean_text(form.seo_description.data, 500),
        }),
        'content': _merge_blob(
            page.content if page and isinstance(page.content, dict) else None,
            {'body': (form.body.data or '').strip()},
        ),
    }
    slug = clean_text(form.slug.data, 200)
    if slug:
        payload['slug'] = slug
    return payload


@admin_bp.route('/pages')
@login_required
def pages():
    items = Page.query.order_by(Page.updated_at.desc(), Page.id.desc()).all()
    return render_template('admin/pages.html', items=items)


@admin_bp.route('/pages/new', methods=['GET', 'POST'])
@login_required
def page_add():
    form = PageForm()
    if form.validate_on_submit():
        try:
            page = cms.create_page(_page_payload(form))
        except CmsError as e:
            _flash_error(e)
        else:
            flash('Page created.', 'success')
            return redirect(url_for('admin.page_edit', id=page.id))
    elif form.is_submitted():
        _form_errors(form)
    return render_template('admin/page_form.html', form=form, item=None, block_form=None)


@admin_bp.route('/pages/<int:id>/edit', methods=['GET', 'POST'])
@login_required
def page_edit(id):
    item = cms.get_page(id)
    form = PageForm(data=_page_form_data(item) if request.method == 'GET' else None)
    if form.validate_on_submit():
        try:
            cms.update_page(item.id, _page_payload(form, item))
        except CmsError as e:
            _flash_error(e)
        else:
            flash('Page updated.', 'success')
            return redirect(url_for('admin.page_edit', id=item.id))
    elif form.is_submitted():
        _form_errors(form)
    block_form = ContentBlockForm(formdata=None, data={'data_json': '{\n  "content": ""\n}'})
    return render_template('admin/page_form.html', form=form, item=item, block_form=block_form)


@admin_bp.route('/pages/<int:id>/delete', methods=['POST'])
@login_required
def page_delete(id):
    try:
        cms.delete_page(id)
    except CmsError as e:
        _flash_error(e)
    else:
        flash('Page deleted.', 'success')
    return redirect(url_for('admin.pages'))


@admin_bp.route('/pages/<int:id>/publish', methods=['POST'])
@login_required
def page_toggle_publish(id):
    try:
        page = cms.get_page(id)
        cms.set_page_published(page.id, not page.published)
    except CmsError as e:
        _flash_error(e)
    else:
        flash('Page published.' if page.published else 'Page unpublished.', 'success')
    return redirect(url_for('admin.pages'))


@admin_bp.route('/pages/<int:id>/blocks', methods=['POST'])
@login_required
def page_block_add(id):
    form = ContentBlockForm()
    if not form.validate_on_submit():
        _form_errors(form)
        return redirect(url_for('admin.page_edit', id=id))
    try:
        data = json.loads(form.data_json.data)
    except (TypeError, json.JSONDecodeError):
        flash('Block data must be valid JSON.', 'danger')
        return redirect(url_for('admin.page_edit', id=id))
    payload = {'pageId': id, 'type': form.type.data, 'data': data}
    if form.order_index.data is not None:
        payload['orderIndex'] = form.order_index.data
    try:
        cms.create_content_block(payload)
    except CmsError as e:
        _flash_error(e)
    else:
        flash('Content block added.', 'success')
    return redirect(url_for('admin.page_edit', id=id))


@admin_bp.route('/pages/<int:id>/blocks/<int:block_id>/delete', methods=['POST'])
@login_required
def page_block_delete(id, block_id):
    try:
        block = cms.get_content_block(block_id)
        if block.page_id != id:
            raise NotFound('Content block not found')
        cms.delete_content_block(block_id)
    except CmsError as e:
        _flash_error(e)
    else:
        flash('Content block deleted.', 'success')
    return redirect(url_for('admin.page_edit', id=id))


# Car series
def _car_series_form_data(series):
    specs = series.specifications or {}
    hero = series.hero_data or {}
    data = {
        'name': series.name,
        'slug': series.slug,
        'description': series.description,
        'price': series.price,
        'features': '\n'.join(specs.get('features') or []),
        'hero_image': hero.get('image'),
        'published': bool(series.published),
    }
    for field in SPEC_FIELDS:
        data[field] = specs.get(SPEC_KEYS.get(field, field))
    return data


def _car_series_payload(form, series=None):
    spec_updates = {
        SPEC_KEYS.get(field, field): clean_text(getattr(form, field).data, 200)
        for field in SPEC_FIELDS
    }
    features = [line.strip() for line in (form.features.data or '').splitlines() if line.strip()]
    spec_updates['features'] = features or None
    payload = {
        'name': clean_text(form.name.data, 200),
        'description': (form.description.data or '').strip() or None,
        'price': float(form.price.data) if form.price.data is not None else None,
        'specifications': _merge_blob(series.specifications if series else None, spec_updates),
        'heroData': _merge_blob(series.hero_data if series else None, {
            'image': clean_text(form.hero_image.data, 2000),
        }),
        'published': bool(form.published.data),
    }
    slug = clean_text(form.slug.data, 200)
    if slug:
        payload['slug'] = slug
    return payload


@admin_bp.route('/car-series')
@login_required
def car_series():
    items = CarSeries.query.order_by(CarSeries.name.asc(), CarSeries.id.asc()).all()
    return render_template('admin/car_series.html', items=items)


@admin_bp.route('/car-series/new', methods=['GET', 'POST'])
@login_required
def car_series_add():
    form = CarSeriesForm()
    if form.validate_on_submit():
        try:
            cms.create_car_series(_car_series_payload(form))
        except CmsError as e:
            _flash_error(e)
        else:
            flash('Car series created.', 'success')
            return redirect(url_for('admin.car_series'))
    elif form.is_submitted():
        _form_errors(form)
    return render_template('admin/car_series_form.html', form=form, item=None)


@admin_bp.route('/car-series/<int:id>/edit', methods=['GET', 'POST'])
@login_required
def car_series_edit(id):
    item = cms.get_car_series(id)
    form = CarSeriesForm(data=_car_series_form_data(item) if request.method == 'GET' else None)
    if form.validate_on_submit():
        try:
            cms.update_car_series(item.id, _car_series_payload(form, item))
        except CmsError as e:
            _flash_error(e)
        else:
            flash('Car series updated.', 'success')
            return redirect(url_for('admin.car_series'))
    elif form.is_submitted():
        _form_errors(form)
    return render_template('admin/car_series_form.html', form=form, item=item)


@admin_bp.route('/car-series/<int:id>/delete', methods=['POST'])
@login_required
def car_series_delete(id):
    try:
        cms.delete_car_series(id)
    except CmsError as e:
        _flash_error(e)
    else:
        flash('Car series deleted.', 'success')
    return redirect(url_for('admin.car_series'))


@admin_bp.route('/car-series/<int:id>/publish', methods=['POST'])
@login_required
def car_series_toggle_publish(id):
    try:
        series = cms.get_car_series(id)
        cms.set_car_series_published(series.id, not series.published)
    except CmsError as e:
        _flash_error(e)
    else:
        flash('Car series published.' if series.published else 'Car series unpublished.', 'success')
    return redirect(url_for('admin.car_series'))


# Navigation
def _descendant_ids(item_id):
    children = {}
    for nav_id, parent_id in NavigationItem.query.with_entities(NavigationItem.id, NavigationItem.parent_id):
        children.setdefault(parent_id, []).append(nav_id)
    found, pending = set(), [item_id]
    while pending:
        current = pending.pop()
        for child_id in children.get(current, []):
            if child_id not in found:
                found.add(child_id)
                pending.append(child_id)
    return found


def _parent_choices(exclude_id=None):
    excluded = set()
    if exclude_id is not None:
        excluded = _descendant_ids(exclude_id) | {exclude_id}
    items = NavigationItem.query.order_by(NavigationItem.order_index.asc(), NavigationItem.id.asc()).all()
    return [(0, '(top level)')] + [(item.id, item.label) for item in items if item.id not in excluded]


def _navigation_payload(form):
    payload = {
        'label': clean_text(form.label.data, 100),
        'url': clean_text(form.url.data, 500) or None,
        'parentId': form.parent_id.data or None,
        'target': form.target.data,
        'isActive': bool(form.is_active.data),
        'isExternal': bool(form.is_external.data),
    }
    if form.order_index.data is not None:
        payload['orderIndex'] = form.order_index.data
    return payload


@admin_bp.route('/navigation', methods=['GET', 'POST'])
@login_required
def navigation_items():
    form = NavigationItemForm()
    form.parent_id.choices = _parent_choices()
    if form.validate_on_submit():
        try:
            navigation.create_navigation_item(_navigation_payload(form))
        except CmsError as e:
            _flash_error(e)
        else:
            flash('Navigation item added.', 'success')
            return redirect(url_for('admin.navigation_items'))
    elif form.is_submitted():
        _form_errors(form)
    return render_template('admin/navigation.html', tree=navigation.navigation_tree(), form=form)


@admin_bp.route('/navigation/<int:id>/edit', methods=['GET', 'POST'])
@login_required
def navigation_edit(id):
    item = navigation.get_navigation_item(id)
    form_data = None
    if request.method == 'GET':
        form_data = {
            'label': item.label,
            'url': item.url,
            'parent_id': item.parent_id or 0,
            'order_index': item.order_index,
            'target': item.target,
            'is_active': bool(item.is_active),
            'is_external': bool(item.is_external),
        }
    form = NavigationItemForm(data=form_data)
    form.parent_id.choices = _parent_choices(exclude_id=item.id)
    if form.validate_on_submit():
        try:
            navigation.update_navigation_item(item.id, _navigation_payload(form))
        except CmsError as e:
            _flash_error(e)
        else:
            flash('Navigation item updated.', 'success')
            return redirect(url_for('admin.navigation_items'))
    elif form.is_submitted():
        _form_errors(form)
    return render_template('admin/navigation_form.html', form=form, item=item)


@admin_bp.route('/navigation/<int:id>/delete', methods=['POST'])
@login_required
def navigation_delete(id):
    try:
        navigation.delete_navigation_item(id)
    except CmsError as e:
        _flash_error(e)
    else:
        flash('Navigation item deleted.', 'success')
    return redirect(url_for('admin.navigation_items'))


@admin_bp.route('/navigation/<int:id>/move/<direction>', methods=['POST'])
@login_required
def navigation_move(id, direction):
    if direction not in {'up', 'down'}:
        flash('Unknown move direction.', 'danger')
        return redirect(url_for('admin.navigation_items'))
    try:
        navigation.move_navigation_item(id, direction)
    except CmsError as e:
        _flash_error(e)
    return redirect(url_for('admin.navigation_items'))


# Media
@admin_bp.route('/media')
@login_required
def media():
    items = Media.query.order_by(Media.created_at.desc(), Media.id.desc()).all()
    return render_template('admin/media.html', items=items, form=MediaUploadForm(formdata=None))


@admin_bp.route('/media/upload', methods=['POST'])
@login_required
def media_upload():
    form = MediaUploadForm()
    if not form.validate_on_submit():
        _form_errors(form)
        return redirect(url_for('admin.media'))
    try:
        media_store.store_upload(form.file.data, form.alt_text.data or '')
    except CmsError as e:
        _flash_error(e)
    else:
        flash('File uploaded.', 'success')
    return redirect(url_for('admin.media'))


@admin_bp.route('/media/<int:id>/edit', methods=['POST'])
@login_required
def media_edit(id):
    form = MediaEditForm()
    if not form.validate_on_submit():
        _form_errors(form)
        return redirect(url_for('admin.media'))
    try:
        cms.update_media(id, {'altText': clean_text(form.alt_text.data, 300) or None})
    except CmsError as e:
        _flash_error(e)
    else:
        flash('Alt text saved.', 'success')
    return redirect(url_for('admin.media'))


@admin_bp.route('/media/<int:id>/delete', methods=['POST'])
@login_required
def media_delete(id):
    try:
        cms.delete_media(id)
    except CmsError as e:
        _flash_error(e)
    else:
        flash('File deleted.', 'success')
    return redirect(url_for('admin.media'))


# SEO
@admin_bp.route('/seo')
@login_required
def seo_overview():
    return render_template('admin/seo.html', overview=seo.seo_overview(), form=SeoBulkForm(formdata=None))


@admin_bp.route('/seo/bulk', methods=['POST'])
@login_required
def seo_bulk():
    form = SeoBulkForm()
    if not form.validate_on_submit():
        _form_errors(form)
        return redirect(url_for('admin.seo_overview'))
    payload = {'action': form.action.data}
    template = clean_text(form.template.data, 200)
    if template:
        payload['template'] = template
    try:
        updated = seo.bulk_update(payload)
    except CmsError as e:
        _flash_error(e)
    else:
        flash(f'Updated {updated} page(s).', 'success')
    return redirect(url_for('admin.seo_overview'))
