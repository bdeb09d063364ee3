"""Entry serializers and role permissions for the read-only headless delivery API.

Entries are shaped as ``{id, attributes}`` with hero, carousel and SEO
components always populated, the way headless CMS platforms deliver them.
"""
from flask import current_app

from .models import (
    API_ROLE_AUTHENTICATED,
    API_ROLE_PUBLIC,
    ApiPermission,
    SiteSetting,
    db,
    isoformat,
)
from .navigation import navigation_tree

PAGE_FIND = 'api::page.page.find'
PAGE_FIND_ONE = 'api::page.page.findOne'
CAR_SERIES_FIND = 'api::car-series.car-series.find'
CAR_SERIES_FIND_ONE = 'api::car-series.car-series.findOne'
NAVIGATION_FIND = 'api::navigation.navigation.find'
NAVIGATION_FIND_ONE = 'api::navigation.navigation.findOne'
UPLOAD_FIND = 'plugin::upload.content-api.find'
UPLOAD_FIND_ONE = 'plugin::upload.content-api.findOne'

PUBLIC_READ_ACTIONS = (
    PAGE_FIND,
    PAGE_FIND_ONE,
    CAR_SERIES_FIND,
    CAR_SERIES_FIND_ONE,
    NAVIGATION_FIND,
    NAVIGATION_FIND_ONE,
    UPLOAD_FIND,
    UPLOAD_FIND_ONE,
)
SOCIAL_PLATFORMS = ('instagram', 'youtube', 'tiktok')


def is_action_allowed(role, action):
    if role == API_ROLE_AUTHENTICATED:
        return True
    permission = ApiPermission.query.filter_by(role=role, action=action).first()
    return bool(permission and permission.enabled)


def setup_public_permissions(actions=PUBLIC_READ_ACTIONS):
    """Enable read access for the public role; individual failures are logged and skipped."""
    results = {'created': [], 'updated': [], 'failed': []}
    for action in actions:
        try:
            permission = ApiPermission.query.filter_by(role=API_ROLE_PUBLIC, action=action).first()
            if permission:
                permission.enabled = True
                results['updated'].append(action)
            else:
                db.session.add(ApiPermission(role=API_ROLE_PUBLIC, action=action, enabled=True))
                results['created'].append(action)
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f'Permission {action} could not be enabled; continuing.')
            results['failed'].append(action)
    return results


def media_relation(url, alt=None, caption=None):
    if not url:
        return {'data': None}
    return {'data': {'id': None, 'attributes': {
        'url': url,
        'alternativeText': alt,
        'caption': caption,
    }}}


def hero_component(hero):
    hero = hero if isinstance(hero, dict) else {}
    if not hero:
        return None
    return {
        'title': hero.get('title'),
        'subtitle': hero.get('subtitle'),
        'description': hero.get('description'),
        'ctaText': hero.get('ctaText'),
        'ctaLink': hero.get('ctaUrl'),
        'backgroundImage': media_relation(hero.get('image'), hero.get('title')),
        'backgroundVideo': media_relation(hero.get('video')),
    }


def carousel_component(carousel):
    images = carousel.get('images') if isinstance(carousel, dict) else None
    if not images:
        return None
    return {
        'title': carousel.get('title'),
        'images': {'data': [
            media_relation(image.get('url'), image.get('alt'), image.get('caption'))['data']
            for image in images
            if isinstance(image, dict) and image.get('url')
        ]},
    }


def seo_component(seo):
    seo = seo if isinstance(seo, dict) else {}
    if not seo:
        return None
    return {
        'metaTitle': seo.get('title'),
        'metaDescription': seo.get('description'),
        'keywords': seo.get('keywords'),
        'canonicalURL': seo.get('canonicalUrl'),
        'metaImage': media_relation(seo.get('ogImage')),
    }


def _published_at(item):
    return isoformat(item.updated_at) if item.published else None


def page_entry(page):
    return {'id': page.id, 'attributes': {
        'title': page.title,
        'slug': page.slug,
        'content': page.content,
        'hero': hero_component(page.hero_data),
        'carousel': carousel_component(page.carousel_data),
        'seo': seo_component(page.seo_data),
        'createdAt': isoformat(page.created_at),
        'updatedAt': isoformat(page.updated_at),
        'publishedAt': _published_at(page),
    }}


def car_series_entry(series):
    return {'id': series.id, 'attributes': {
        'name': series.name,
        'slug': series.slug,
        'description': series.description,
        'specifications': series.specifications,
        'price': series.price,
        'hero': hero_component(series.hero_data),
        'carousel': carousel_component(series.carousel_data),
        'createdAt': isoformat(series.created_at),
        'updatedAt': isoformat(series.updated_at),
        'publishedAt': _published_at(series),
    }}


def _menu_item(node, include_submenu):
    item = {
        'id': node['id'],
        'label': node['label'],
        'url': node['url'],
        'order': node['orderIndex'],
        'target': node['target'],
    }
    if include_submenu:
        item['submenu'] = [_menu_item(child, False) for child in node['children']]
    return item


def navigation_entry():
    roots = navigation_tree(active_only=True)
    settings = {setting.key: setting.value for setting in SiteSetting.query.all()}
    social_links = [
        {'platform': platform, 'url': settings[platform], 'order': index}
        for index, platform in enumerate(SOCIAL_PLATFORMS, start=1)
        if settings.get(platform)
    ]
    return {'id': 1, 'attributes': {
        'mainMenu': [_menu_item(node, True) for node in roots],
        'footerMenu': [_menu_item(node, False) for node in roots],
        'socialLinks': social_links,
    }}
