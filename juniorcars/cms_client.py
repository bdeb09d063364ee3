"""Service client the public site uses to read content from the CMS API.

The client unwraps the ``{success, data, error}`` envelope and raises
``CmsClientError`` on any failure. With ``CMS_BASE_URL`` set it calls the API
over HTTP; otherwise it dispatches to this app's own ``/api/cms`` routes
in-process. Renderers pair it with ``FALLBACK_CONTENT`` so a CMS outage shows
default content instead of an error page.
"""
import json
import urllib.error
import urllib.parse
import urllib.request

from flask import current_app, g, has_app_context
from werkzeug.test import Client

from .errors import CmsClientError

SLUG_LOOKUP_LIMIT = 100


def request_headers():
    """Accept JSON and carry the calling request's id so both log lines correlate."""
    headers = {'Accept': 'application/json'}
    request_id = g.get('request_id') if has_app_context() else None
    if request_id:
        headers['X-Request-ID'] = request_id
    return headers


class JsonTransport:
    """GET JSON from ``base_url + path``, or from the running app when no base URL is set."""

    def __init__(self, base_url='', timeout=10):
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout

    def get(self, path, params=None):
        query = urllib.parse.urlencode(
            {key: value for key, value in (params or {}).items() if value is not None},
            doseq=True,
        )
        if self.base_url:
            return self._get_http(path, query)
        return self._get_in_process(path, query)

    def _get_http(self, path, query):
        url = f'{self.base_url}{path}'
        if query:
            url = f'{url}?{query}'
        req = urllib.request.Request(url, headers=request_headers(), method='GET')
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                status, body = resp.status, resp.read()
        except urllib.error.HTTPError as e:
            status, body = e.code, e.read()
        except (urllib.error.URLError, OSError) as e:
            raise CmsClientError(f'CMS request to {path} failed: {e}') from e
        return status, _decode_json(body, path)

    def _get_in_process(self, path, query):
        client = Client(current_app._get_current_object())
        response = client.get(path, query_string=query, headers=request_headers())
        return response.status_code, _decode_json(response.get_data(), path)


def _decode_json(body, path):
    try:
        return json.loads(body or b'null')
    except ValueError as e:
        raise CmsClientError(f'CMS response from {path} is not valid JSON') from e


class CmsClient:
    api_prefix = '/api/cms'

    def __init__(self, base_url=None, timeout=None):
        config = current_app.config
        if base_url is None:
            base_url = config.get('CMS_BASE_URL', '')
        if timeout is None:
            timeout = config.get('CMS_CLIENT_TIMEOUT_SECONDS', 10)
        self.transport = JsonTransport(base_url, timeout)

    def fetch(self, endpoint, params=None):
        status, payload = self.transport.get(f'{self.api_prefix}{endpoint}', params)
        if not 200 <= status < 300:
            message = payload.get('error') if isinstance(payload, dict) else None
            raise CmsClientError(message or f'CMS API error: {status}', status_code=status)
        if not isinstance(payload, dict) or not payload.get('success'):
            error = payload.get('error') if isinstance(payload, dict) else None
            raise CmsClientError(error or 'CMS API request failed', status_code=status)
        return payload.get('data')

    def _find_by_slug(self, endpoint, slug, label):
        try:
            records = self.fetch(endpoint, {'search': slug, 'limit': SLUG_LOOKUP_LIMIT})
        except CmsClientError as e:
            current_app.logger.warning(f'Error fetching {label} by slug {slug!r}: {e.message}')
            return None
        for record in records or []:
            if record.get('slug') == slug:
                return record
        return None

    # Pages
    def get_pages(self, **params):
        return self.fetch('/pages', params)

    def get_page_by_id(self, page_id):
        return self.fetch(f'/pages/{page_id}')

    def get_page_by_slug(self, slug):
        return self._find_by_slug('/pages', slug, 'page')

    # Car series
    def get_car_series(self, **params):
        return self.fetch('/car-series', params)

    def get_car_series_by_id(self, series_id):
        return self.fetch(f'/car-series/{series_id}')

    def get_car_series_by_slug(self, slug):
        return self._find_by_slug('/car-series', slug, 'car series')

    # Navigation and media
    def get_navigation(self, **params):
        return self.fetch('/navigation', params)

    def get_navigation_tree(self, active_only=True):
        return self.fetch('/navigation/tree', {'activeOnly': 'true' if active_only else None})

    def get_media(self, **params):
        return self.fetch('/media', params)


def _hero_image(hero):
    return hero.get('image') or hero.get('imageUrl')


def _carousel_images(carousel, record_id, placeholder, alt_prefix):
    images = carousel.get('images') if isinstance(carousel, dict) else None
    props = []
    for index, image in enumerate(images or []):
        image = image if isinstance(image, dict) else {}
        props.append({
            'id': f'{record_id}-{index}',
            'src': image.get('url') or image.get('src') or placeholder(index + 1),
            'alt': image.get('alt') or image.get('title') or f'{alt_prefix} image {index + 1}',
            'title': image.get('title'),
            'caption': image.get('caption') or image.get('description'),
        })
    return props


def page_to_props(page):
    hero = page.get('heroData') or {}
    carousel = page.get('carouselData') or {}
    return {
        'title': page.get('title'),
        'hero_title': hero.get('title'),
        'hero_subtitle': hero.get('subtitle'),
        'hero_description': hero.get('description'),
        'hero_image_url': _hero_image(hero),
        'hero_video_url': hero.get('video') or hero.get('videoUrl'),
        'hero_cta_text': hero.get('ctaText'),
        'hero_cta_url': hero.get('ctaUrl'),
        'carousel_title': carousel.get('title'),
        'carousel_images': _carousel_images(
            carousel,
            page.get('id'),
            lambda n: f'/images/placeholder-{n}.jpg',
            page.get('title') or 'Page',
        ),
        'content': page.get('content'),
        'content_blocks': page.get('contentBlocks') or [],
        'seo': page.get('seoData') or {},
    }


def car_series_to_props(series):
    hero = series.get('heroData') or {}
    carousel = series.get('carouselData') or {}
    slug = series.get('slug')
    name = series.get('name') or ''
    return {
        'title': name,
        'slug': slug,
        'hero_title': hero.get('title') or name,
        'hero_subtitle': hero.get('subtitle'),
        'hero_description': hero.get('description') or series.get('description'),
        'hero_image_url': _hero_image(hero) or f'/images/{slug}-hero.jpg',
        'hero_video_url': hero.get('video') or hero.get('videoUrl'),
        'hero_cta_text': hero.get('ctaText'),
        'hero_cta_url': hero.get('ctaUrl'),
        'carousel_title': carousel.get('title'),
        'carousel_images': _carousel_images(
            carousel,
            series.get('id'),
            lambda n: f'/images/cars/{slug}/image-{n}.jpg',
            name,
        ),
        'description': series.get('description'),
        'specifications': series.get('specifications') or {},
        'price': series.get('price'),
        'seo': {
            'title': f'{name} - JuniorCars',
            'description': series.get('description'),
            'keywords': ', '.join([name.lower(), 'car', 'automotive', 'collection']),
        },
    }


def car_series_list_to_overview(series_list):
    return [
        {
            'name': series.get('name'),
            'slug': series.get('slug'),
            'description': series.get('description'),
            'image': _hero_image(series.get('heroData') or {}) or f"/images/{series.get('slug')}-hero.jpg",
            'price': series.get('price'),
        }
        for series in series_list or []
        if series.get('published')
    ]


FALLBACK_CONTENT = {
    'homepage': {
        'title': 'JuniorCars',
        'hero_title': 'JuniorCars',
        'hero_subtitle': 'Premium Automotive Collection',
        'hero_description': 'Discover our curated collection of classic and modern vehicles.',
        'hero_image_url': '/images/hero/hero-car.jpg',
        'carousel_title': 'Featured Collection',
        'carousel_images': [
            {'id': '1', 'src': '/images/gallery/series1.jpg', 'alt': 'Series 1', 'title': 'Series 1 Collection'},
            {'id': '2', 'src': '/images/gallery/300.jpg', 'alt': '300 Series', 'title': '300 Series'},
            {'id': '3', 'src': '/images/gallery/spyder.jpg', 'alt': '356 Heritage', 'title': '356 Heritage'},
            {'id': '4', 'src': '/images/gallery/landjunior.jpg', 'alt': 'Landrover', 'title': 'Landrover Adventure'},
        ],
    },
    'car_series': [
        {'name': 'Series 1', 'slug': 'series-1', 'description': 'Classic elegance redefined',
         'image': '/images/series-1-hero.jpg', 'price': None},
        {'name': '300 Series', 'slug': '300', 'description': 'Power meets sophistication',
         'image': '/images/300-hero.jpg', 'price': None},
        {'name': '356 Heritage', 'slug': '356', 'description': 'Timeless automotive art',
         'image': '/images/356-hero.jpg', 'price': None},
        {'name': 'Landrover', 'slug': 'landrover', 'description': 'Built for adventure',
         'image': '/images/landrover-hero.jpg', 'price': None},
    ],
    'pages': {
        'cars': {
            'title': 'Our Cars',
            'hero_title': 'Our Collection',
            'hero_subtitle': 'Classic and Modern Vehicles',
            'hero_description': 'Explore every series in the JuniorCars collection.',
            'hero_image_url': '/images/hero/hero-car.jpg',
        },
        'about': {
            'title': 'About Us',
            'hero_title': 'About JuniorCars',
            'hero_subtitle': 'Passion for Automotive Excellence',
            'hero_description': 'Discover our story and commitment to preserving automotive heritage',
            'hero_image_url': '/images/hero/hero-car-2.jpg',
        },
        'contact': {
            'title': 'Contact',
            'hero_title': 'Get in Touch',
            'hero_subtitle': 'We would love to hear from you',
            'hero_description': 'Questions about a vehicle, a viewing or our wall art? Reach out.',
            'hero_image_url': '/images/hero/hero-car-3.jpg',
        },
        'wall-art': {
            'title': 'Wall Art',
            'hero_title': 'Automotive Wall Art',
            'hero_subtitle': 'Iconic Designs for Your Space',
            'hero_description': 'Prints celebrating the lines and details of classic cars.',
            'hero_image_url': '/images/hero/wall-art.jpg',
        },
        'privacy': {
            'title': 'Privacy Policy',
            'hero_title': 'Privacy Policy',
            'hero_subtitle': 'How we handle your information',
        },
        'terms': {
            'title': 'Terms of Service',
            'hero_title': 'Terms of Service',
            'hero_subtitle': 'The terms that apply when you use this site',
        },
    },
    'navigation': [
        {'label': 'Cars', 'url': '/cars', 'target': '_self', 'children': [
            {'label': 'Series 1', 'url': '/cars/series-1', 'target': '_self', 'children': []},
            {'label': '300', 'url': '/cars/300', 'target': '_self', 'children': []},
            {'label': '356', 'url': '/cars/356', 'target': '_self', 'children': []},
            {'label': 'Landrover', 'url': '/cars/landrover', 'target': '_self', 'children': []},
        ]},
        {'label': 'Wall Art', 'url': '/wall-art', 'target': '_self', 'children': []},
        {'label': 'About', 'url': '/about', 'target': '_self', 'children': []},
        {'label': 'Contact', 'url': '/contact', 'target': '_self', 'children': []},
    ],
}


def fallback_page_props(key):
    props = {
        'title': 'JuniorCars',
        'hero_title': None,
        'hero_subtitle': None,
        'hero_description': None,
        'hero_image_url': None,
        'hero_video_url': None,
        'hero_cta_text': None,
        'hero_cta_url': None,
        'carousel_title': None,
        'carousel_images': [],
        'content': None,
        'content_blocks': [],
        'seo': {},
    }
    source = FALLBACK_CONTENT['homepage'] if key == 'home' else FALLBACK_CONTENT['pages'].get(key, {})
    props.update(source)
    return props


def fallback_car_series_props(slug):
    for entry in FALLBACK_CONTENT['car_series']:
        if entry['slug'] == slug:
            return car_series_to_props({
                'id': entry['slug'],
                'name': entry['name'],
                'slug': entry['slug'],
                'description': entry['description'],
                'heroData': {'image': entry['image']},
                'price': entry['price'],
            })
    return None
