"""Client for the headless delivery API.

Entries come back as ``{id, attributes}`` with nested components; this client
flattens them into the same record shape ``CmsClient`` returns so the page
renderers can use either source.
"""
from flask import current_app

from .cms_client import JsonTransport
from .errors import CmsClientError


def _relation_url(relation):
    data = relation.get('data') if isinstance(relation, dict) else None
    attributes = data.get('attributes') if isinstance(data, dict) else None
    return attributes.get('url') if isinstance(attributes, dict) else None


class HeadlessCmsClient:
    api_prefix = '/api/headless'

    def __init__(self, base_url=None, timeout=None):
        config = current_app.config
        if base_url is None:
            base_url = config.get('HEADLESS_CMS_URL', '')
        if timeout is None:
            timeout = config.get('CMS_CLIENT_TIMEOUT_SECONDS', 10)
        self.base_url = (base_url or '').rstrip('/')
        self.transport = JsonTransport(self.base_url, timeout)

    def get_media_url(self, url):
        if not url:
            return ''
        if url.startswith(('http://', 'https://', 'data:')):
            return url
        return f'{self.base_url}{url}'

    def fetch(self, endpoint, params=None):
        status, payload = self.transport.get(f'{self.api_prefix}{endpoint}', params)
        if not 200 <= status < 300:
            error = payload.get('error') if isinstance(payload, dict) else None
            message = error.get('message') if isinstance(error, dict) else None
            raise CmsClientError(message or f'Headless API error: {status}', status_code=status)
        if not isinstance(payload, dict) or 'data' not in payload:
            raise CmsClientError('Headless API returned an unexpected payload', status_code=status)
        return payload['data']

    def _hero(self, hero):
        if not isinstance(hero, dict):
            return None
        return {
            'title': hero.get('title'),
            'subtitle': hero.get('subtitle'),
            'description': hero.get('description'),
            'ctaText': hero.get('ctaText'),
            'ctaUrl': hero.get('ctaLink'),
            'image': self.get_media_url(_relation_url(hero.get('backgroundImage'))) or None,
            'video': self.get_media_url(_relation_url(hero.get('backgroundVideo'))) or None,
        }

    def _carousel(self, carousel):
        if not isinstance(carousel, dict):
            return None
        images = (carousel.get('images') or {}).get('data') or []
        return {
            'title': carousel.get('title'),
            'images': [
                {
                    'url': self.get_media_url(image['attributes'].get('url')),
                    'alt': image['attributes'].get('alternativeText') or '',
                    'caption': image['attributes'].get('caption'),
                }
                for image in images
                if isinstance(image, dict) and isinstance(image.get('attributes'), dict)
            ],
        }

    def _seo(self, seo):
        if not isinstance(seo, dict):
            return None
        return {
            'title': seo.get('metaTitle'),
            'description': seo.get('metaDescription'),
            'keywords': seo.get('keywords'),
            'canonicalUrl': seo.get('canonicalURL'),
            'ogImage': self.get_media_url(_relation_url(seo.get('metaImage'))) or None,
        }

    def flatten_page(self, entry):
        attributes = entry.get('attributes') or {}
        return {
            'id': entry.get('id'),
            'title': attributes.get('title'),
            'slug': attributes.get('slug'),
            'content': attributes.get('content'),
            'heroData': self._hero(attributes.get('hero')),
            'carouselData': self._carousel(attributes.get('carousel')),
            'seoData': self._seo(attributes.get('seo')),
            'published': attributes.get('publishedAt') is not None,
            'createdAt': attributes.get('createdAt'),
            'updatedAt': attributes.get('updatedAt'),
            'contentBlocks': [],
        }

    def flatten_car_series(self, entry):
        attributes = entry.get('attributes') or {}
        return {
            'id': entry.get('id'),
            'name': attributes.get('name'),
            'slug': attributes.get('slug'),
            'description': attributes.get('description'),
            'specifications': attributes.get('specifications'),
            'price': attributes.get('price'),
            'heroData': self._hero(attributes.get('hero')),
            'carouselData': self._carousel(attributes.get('carousel')),
            'published': attributes.get('publishedAt') is not None,
            'createdAt': attributes.get('createdAt'),
            'updatedAt': attributes.get('updatedAt'),
        }

    def _find_by_slug(self, endpoint, slug, flatten, label):
        try:
            entries = self.fetch(endpoint, {'filters[slug][$eq]': slug, 'populate': '*'})
        except CmsClientError as e:
            current_app.logger.warning(f'Error fetching {label} by slug {slug!r} from headless API: {e.message}')
            return None
        for entry in entries or []:
            record = flatten(entry)
            if record.get('slug') == slug:
                return record
        return None

    def _collection_params(self, params):
        params.setdefault('populate', '*')
        if 'limit' in params:
            params['pagination[pageSize]'] = params.pop('limit')
        return params

    def get_pages(self, **params):
        params = self._collection_params(params)
        return [self.flatten_page(entry) for entry in self.fetch('/pages', params) or []]

    def get_page_by_id(self, page_id):
        return self.flatten_page(self.fetch(f'/pages/{page_id}', {'populate': '*'}))

    def get_page_by_slug(self, slug):
        return self._find_by_slug('/pages', slug, self.flatten_page, 'page')

    def get_car_series(self, **params):
        params = self._collection_params(params)
        return [self.flatten_car_series(entry) for entry in self.fetch('/car-series-collection', params) or []]

    def get_car_series_by_id(self, series_id):
        return self.flatten_car_series(self.fetch(f'/car-series-collection/{series_id}', {'populate': '*'}))

    def get_car_series_by_slug(self, slug):
        return self._find_by_slug('/car-series-collection', slug, self.flatten_car_series, 'car series')

    def get_navigation_tree(self, active_only=True):
        navigation = self.fetch('/navigation', {'populate': '*'}) or {}
        menu = (navigation.get('attributes') or {}).get('mainMenu') or []
        return [
            {
                'id': item.get('id'),
                'label': item.get('label'),
                'url': item.get('url'),
                'target': item.get('target') or '_self',
                'children': [
                    {
                        'id': child.get('id'),
                        'label': child.get('label'),
                        'url': child.get('url'),
                        'target': child.get('target') or '_self',
                        'children': [],
                    }
                    for child in item.get('submenu') or []
                ],
            }
            for item in menu
        ]
