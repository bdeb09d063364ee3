from html import escape as xml_escape

from flask import Blueprint, abort, current_app, render_template, request, url_for

from ..cms_client import (
    FALLBACK_CONTENT,
    CmsClient,
    car_series_list_to_overview,
    car_series_to_props,
    fallback_car_series_props,
    fallback_page_props,
    page_to_props,
)
from ..errors import CmsClientError
from ..headless_client import HeadlessCmsClient

site_bp = Blueprint('site', __name__)

CAR_SERIES_LIST_LIMIT = 100
STATIC_PAGE_ENDPOINTS = ('site.about', 'site.contact', 'site.wall_art', 'site.privacy', 'site.terms')


def content_client():
    if (current_app.config.get('CONTENT_SOURCE') or 'cms').strip().lower() == 'headless':
        return HeadlessCmsClient()
    return CmsClient()


def load_page_props(client, slug):
    """Props for a published CMS page, or the static defaults for ``slug``."""
    page = client.get_page_by_slug(slug)
    if page and page.get('published'):
        return page_to_props(page), True
    return fallback_page_props(slug), False


def load_car_series_overview(client):
    try:
        overview = car_series_list_to_overview(client.get_car_series(limit=CAR_SERIES_LIST_LIMIT))
    except CmsClientError as e:
        current_app.logger.warning(f'Car series unavailable, using fallback list: {e.message}')
        return FALLBACK_CONTENT['car_series'], False
    if not overview:
        return FALLBACK_CONTENT['car_series'], False
    return overview, True


@site_bp.context_processor
def inject_navigation():
    try:
        nav_menu = content_client().get_navigation_tree(active_only=True)
    except CmsClientError as e:
        current_app.logger.warning(f'Navigation unavailable, using fallback menu: {e.message}')
        nav_menu = None
    return dict(nav_menu=nav_menu or FALLBACK_CONTENT['navigation'])


def get_public_base_url():
    configured = (current_app.config.get('APP_BASE_URL') or '').strip()
    if configured.startswith('http://') or configured.startswith('https://'):
        return configured.rstrip('/')
    return request.url_root.rstrip('/')


def absolute_public_url(path):
    if path.startswith('http://') or path.startswith('https://'):
        return path
    if not path.startswith('/'):
        path = f'/{path}'
    return f"{get_public_base_url()}{path}"


def build_sitemap_entry(path, lastmod=None, changefreq='weekly', priority='0.6'):
    lines = [
        '  <url>',
        f"    <loc>{xml_escape(absolute_public_url(path))}</loc>",
    ]
    if lastmod:
        # CMS timestamps are already ISO-8601 UTC strings.
        lines.append(f"    <lastmod>{xml_escape(lastmod)}</lastmod>")
    if changefreq:
        lines.append(f"    <changefreq>{changefreq}</changefreq>")
    if priority:
        lines.append(f"    <priority>{priority}</priority>")
    lines.append('  </url>')
    return '\n'.join(lines)


@site_bp.route('/')
def index():
    client = content_client()
    props, _ = load_page_props(client, 'home')
    car_series, _ = load_car_series_overview(client)
    return render_template('index.html', props=props, car_series=car_series)


@site_bp.route('/cars')
def cars():
    client = content_client()
    props, _ = load_page_props(client, 'cars')
    car_series, _ = load_car_series_overview(client)
    return render_template('cars.html', props=props, car_series=car_series)


@site_bp.route('/cars/<slug>')
def car_detail(slug):
    series = content_client().get_car_series_by_slug(slug)
    if series:
        if not series.get('published'):
            abort(404)
        props = car_series_to_props(series)
    else:
        props = fallback_car_series_props(slug)
        if props is None:
            abort(404)
    return render_template('car_detail.html', props=props)


def _render_static_page(slug, template):
    props, _ = load_page_props(content_client(), slug)
    return render_template(template, props=props)


@site_bp.route('/about')
def about():
    return _render_static_page('about', 'about.html')


@site_bp.route('/contact')
def contact():
    return _render_static_page('contact', 'contact.html')


@site_bp.route('/wall-art')
def wall_art():
    return _render_static_page('wall-art', 'wall_art.html')


@site_bp.route('/privacy')
def privacy():
    return _render_static_page('privacy', 'privacy.html')


@site_bp.route('/terms')
def terms():
    return _render_static_page('terms', 'terms.html')


@site_bp.route('/sitemap.xml')
def sitemap_xml():
    entries = [
        build_sitemap_entry(url_for('site.index'), changefreq='weekly', priority='1.0'),
        build_sitemap_entry(url_for('site.cars'), changefreq='weekly', priority='0.9'),
    ]
    entries.extend(
        build_sitemap_entry(url_for(endpoint), changefreq='monthly', priority='0.5')
        for endpoint in STATIC_PAGE_ENDPOINTS
    )
    try:
        for series in content_client().get_car_series(limit=CAR_SERIES_LIST_LIMIT) or []:
            if not series.get('published') or not series.get('slug'):
                continue
            entries.append(
                build_sitemap_entry(
                    url_for('site.car_detail', slug=series['slug']),
                    lastmod=series.get('updatedAt'),
                    changefreq='monthly',
                    priority='0.8',
                )
            )
    except CmsClientError:
        current_app.logger.exception('Failed to load car series for the sitemap; serving core entries only.')

    xml_body = '\n'.join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        *entries,
        '</urlset>',
    ])
    response = current_app.response_class(xml_body, mimetype='application/xml')
    response.headers['Cache-Control'] = 'public, max-age=3600'
    return response


@site_bp.route('/robots.txt')
def robots_txt():
    sitemap_url = absolute_public_url(url_for('site.sitemap_xml'))
    body = '\n'.join([
        'User-agent: *',
        'Allow: /',
        'Disallow: /admin/',
        'Disallow: /api/',
        '',
        f'Sitemap: {sitemap_url}',
        '',
    ])
    response = current_app.response_class(body, mimetype='text/plain')
    response.headers['Cache-Control'] = 'public, max-age=3600'
    return response
