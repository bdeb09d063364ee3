import os
import secrets

from flask import current_app

from .headless import setup_public_permissions
from .media import encode_data_url
from .models import (
    ROLE_ADMIN,
    CarSeries,
    Media,
    NavigationItem,
    Page,
    SiteSetting,
    User,
    db,
)

SITE_SETTING_DEFAULTS = {
    'company_name': 'JuniorCars',
    'tagline': 'Premium Automotive Collection',
    'phone': '+1 (555) 010-2040',
    'email': 'info@juniorcars.com',
    'address': '100 Heritage Drive, Los Angeles, CA 90001',
    'instagram': 'https://instagram.com/juniorcars',
    'youtube': 'https://youtube.com/@juniorcars',
    'tiktok': 'https://tiktok.com/@juniorcars',
    'meta_title': 'JuniorCars - Premium Automotive Collection',
    'meta_description': 'Discover our curated collection of classic and modern vehicles, featuring the finest in automotive excellence.',
    'footer_text': 'JuniorCars. All rights reserved.',
}

SAMPLE_PAGES = [
    {
        'title': 'Home',
        'slug': 'home',
        'hero_data': {
            'title': 'JuniorCars',
            'subtitle': 'Premium Automotive Collection',
            'description': 'Discover our curated collection of classic and modern vehicles, featuring the finest in automotive excellence.',
            'image': '/images/hero/hero-car.jpg',
        },
        'carousel_data': {
            'title': 'Featured Collection',
            'images': [
                {'title': 'Series 1 Collection', 'description': 'Discover our premium Series 1 automotive collection'},
                {'title': '300 Series', 'description': 'Experience the power and elegance of the 300 series'},
                {'title': '356 Heritage', 'description': 'Timeless design meets modern performance'},
                {'title': 'Landrover Adventure', 'description': 'Built for adventure, designed for excellence'},
            ],
        },
        'content': {
            'body': (
                'We specialize in premium automotive collections, featuring carefully selected vehicles '
                'from the Series 1, 300, 356, and Landrover collections. Each vehicle in our collection '
                'represents the pinnacle of automotive craftsmanship and design.'
            ),
        },
        'seo_data': {
            'title': 'JuniorCars - Premium Automotive Collection',
            'description': 'Discover our curated collection of classic and modern vehicles, featuring the finest in automotive excellence from Series 1, 300, 356, and Landrover collections.',
            'keywords': 'junior cars, automotive collection, classic cars, series 1, 300 series, 356, landrover',
        },
    },
    {
        'title': 'Our Car Collection',
        'slug': 'cars',
        'hero_data': {
            'title': 'Our Car Collection',
            'subtitle': 'Premium Automotive Excellence',
            'description': 'Explore our carefully curated collection of classic and modern vehicles',
            'image': '/images/cars-hero.jpg',
        },
        'content': {
            'body': (
                'Each series represents a unique blend of heritage, performance, and craftsmanship. '
                'Discover the collection that speaks to your automotive passion.'
            ),
        },
        'seo_data': {
            'title': 'Car Collection - JuniorCars Premium Automotive',
            'description': 'Explore our carefully curated collection of classic and modern vehicles including Series 1, 300, 356, and Landrover collections.',
            'keywords': 'car collection, automotive, classic cars, premium vehicles',
        },
    },
    {
        'title': 'About Us',
        'slug': 'about',
        'hero_data': {
            'title': 'About JuniorCars',
            'subtitle': 'Passion for Automotive Excellence',
            'description': 'Discover our story and commitment to preserving automotive heritage',
            'image': '/images/hero/hero-car-2.jpg',
        },
        'content': {
            'body': (
                'JuniorCars began with a love for the lines, sounds and craftsmanship of classic vehicles. '
                'Today we curate a small collection of restored and reimagined cars for drivers who care '
                'about the details.'
            ),
        },
    },
    {
        'title': 'Contact',
        'slug': 'contact',
        'hero_data': {
            'title': 'Get in Touch',
            'subtitle': 'We would love to hear from you',
            'description': 'Questions about a vehicle, a viewing or our wall art? Reach out.',
            'image': '/images/hero/hero-car-3.jpg',
        },
        'content': {'body': 'Call, email or visit the showroom. Viewings are by appointment.'},
    },
    {
        'title': 'Wall Art',
        'slug': 'wall-art',
        'hero_data': {
            'title': 'Automotive Wall Art',
            'subtitle': 'Iconic Designs for Your Space',
            'description': 'Prints celebrating the lines and details of classic cars.',
            'image': '/images/hero/wall-art.jpg',
        },
        'content': {'body': 'Limited edition prints of the cars in our collection, produced on archival paper.'},
    },
    {
        'title': 'Privacy Policy',
        'slug': 'privacy',
        'hero_data': {'title': 'Privacy Policy', 'subtitle': 'How we handle your information'},
        'content': {
            'body': (
                'We only collect the details you send us through the contact channels on this site and '
                'use them to answer your enquiry. We do not sell personal information.'
            ),
        },
    },
    {
        'title': 'Terms of Service',
        'slug': 'terms',
        'hero_data': {'title': 'Terms of Service', 'subtitle': 'The terms that apply when you use this site'},
        'content': {
            'body': (
                'Vehicle descriptions, specifications and prices are provided for information and may '
                'change without notice. A sale is only agreed in writing.'
            ),
        },
    },
]

SAMPLE_CAR_SERIES = [
    {
        'name': 'Series 1',
        'slug': 'series-1',
        'description': 'Classic elegance redefined with modern performance',
        'hero_data': {
            'title': 'Series 1 Collection',
            'subtitle': 'Classic Elegance Redefined',
            'description': 'Experience the timeless beauty and sophisticated engineering of our Series 1 collection',
            'image': '/images/hero/hero-car-1.jpg',
        },
        'carousel_data': {
            'title': 'Series 1 Gallery',
            'images': [
                {'title': 'Classic Elegance', 'description': 'The timeless design that started it all'},
                {'title': 'Luxurious Interior', 'description': 'Handcrafted details and premium materials'},
                {'title': 'Powerful Performance', 'description': 'Engineering excellence under the hood'},
                {'title': 'Iconic Profile', 'description': 'A silhouette that defines automotive beauty'},
            ],
        },
        'specifications': {
            'engine': 'Classic V8',
            'power': '250 HP',
            'transmission': 'Manual 5-speed',
            'acceleration': '0-60 mph in 6.5s',
            'topSpeed': '140 mph',
            'features': ['Handcrafted leather interior', 'Chrome detailing', 'Classic instrumentation', 'Premium sound system'],
        },
        'price': 85000,
    },
    {
        'name': '300 Series',
        'slug': '300',
        'description': 'Power meets sophistication in every detail',
        'hero_data': {
            'title': '300 Series Collection',
            'subtitle': 'Power Meets Sophistication',
            'description': 'Experience the perfect balance of raw power and refined elegance in our 300 Series',
            'image': '/images/hero/300-hero.jpg',
        },
        'carousel_data': {
            'title': '300 Series Gallery',
            'images': [
                {'title': 'Aggressive Styling', 'description': 'Bold design that commands attention'},
                {'title': 'Performance Interior', 'description': 'Sport-tuned cabin with premium finishes'},
                {'title': 'Powerful Engine', 'description': 'High-performance powertrain engineering'},
                {'title': 'Dynamic Profile', 'description': 'Aerodynamic excellence meets visual impact'},
            ],
        },
        'specifications': {
            'engine': 'Turbocharged V6',
            'power': '350 HP',
            'transmission': 'Automatic 8-speed',
            'acceleration': '0-60 mph in 5.2s',
            'topSpeed': '155 mph',
            'features': ['Sport leather seats', 'Performance suspension', 'Digital cockpit', 'Premium audio system'],
        },
        'price': 95000,
    },
    {
        'name': '356 Heritage',
        'slug': '356',
        'description': 'Timeless automotive art and engineering excellence',
        'hero_data': {
            'title': '356 Heritage Collection',
            'subtitle': 'Timeless Automotive Art',
            'description': 'Discover the legendary 356 Heritage, where classic design meets modern engineering',
            'image': '/images/hero/356-hero.jpg',
        },
        'carousel_data': {
            'title': '356 Heritage Gallery',
            'images': [
                {'title': 'Classic Lines', 'description': 'Iconic silhouette that defined an era'},
                {'title': 'Vintage Interior', 'description': 'Authentic details with modern comfort'},
                {'title': 'Heritage Engine', 'description': 'Time-tested performance and reliability'},
                {'title': "Collector's Dream", 'description': 'Investment-grade automotive artistry'},
            ],
        },
        'specifications': {
            'engine': 'Air-cooled Flat-4',
            'power': '180 HP',
            'transmission': 'Manual 4-speed',
            'acceleration': '0-60 mph in 7.8s',
            'topSpeed': '125 mph',
            'features': ['Authentic gauges', 'Vintage leather', 'Chrome accents', 'Heritage certification'],
        },
        'price': 125000,
    },
    {
        'name': 'Landrover',
        'slug': 'landrover',
        'description': 'Built for adventure, designed for excellence',
        'hero_data': {
            'title': 'Landrover Adventure Collection',
            'subtitle': 'Built for Adventure',
            'description': 'Conquer any terrain with our rugged yet refined Landrover collection',
            'image': '/images/hero/landrover-hero.jpg',
        },
        'carousel_data': {
            'title': 'Landrover Gallery',
            'images': [
                {'title': 'Rugged Capability', 'description': 'Unmatched off-road performance'},
                {'title': 'Luxury Interior', 'description': 'Premium comfort in any environment'},
                {'title': 'Advanced Systems', 'description': 'Cutting-edge technology for every adventure'},
                {'title': 'Iconic Design', 'description': 'Distinctive styling that stands apart'},
            ],
        },
        'specifications': {
            'engine': 'Supercharged V8',
            'power': '400 HP',
            'transmission': 'Automatic 8-speed',
            'acceleration': '0-60 mph in 5.8s',
            'topSpeed': '130 mph',
            'features': ['All-terrain capability', 'Luxury seating', 'Advanced traction control', 'Premium sound system'],
        },
        'price': 110000,
    },
]

# (label, url, children)
SAMPLE_NAVIGATION = [
    ('Cars', '/cars', [
        ('Series 1', '/cars/series-1'),
        ('300', '/cars/300'),
        ('356', '/cars/356'),
        ('Landrover', '/cars/landrover'),
    ]),
    ('Wall Art', '/wall-art', []),
    ('About', '/about', []),
    ('Contact', '/contact', []),
]

# (filename, original name, alt text, width, height)
SAMPLE_MEDIA = [
    ('hero-car-main', 'hero-car.jpg', 'JuniorCars Hero Image', 1200, 800),
    ('series1-gallery-1', 'series1.jpg', 'Series 1 Collection', 800, 600),
    ('300-gallery-1', '300.jpg', '300 Series', 800, 600),
    ('356-gallery-1', 'spyder.jpg', '356 Heritage', 800, 600),
    ('landrover-gallery-1', 'landjunior.jpg', 'Landrover Adventure', 800, 600),
]


def placeholder_svg(label, width, height):
    return (
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" fill="none" '
        f'xmlns="http://www.w3.org/2000/svg">'
        f'<rect width="{width}" height="{height}" fill="#F3F4F6"/>'
        f'<text x="{width // 2}" y="{height // 2}" text-anchor="middle" fill="#9CA3AF" '
        f'font-family="sans-serif" font-size="{max(16, width // 50)}">{label}</text>'
        '</svg>'
    ).encode('utf-8')


def carousel_blob(carousel, placeholder):
    """Give each sample carousel image a placeholder url, alt text and caption."""
    if not carousel:
        return None
    return {
        'title': carousel['title'],
        'images': [
            {'url': placeholder(index), 'alt': image['title'], 'title': image['title'], 'caption': image['description']}
            for index, image in enumerate(carousel['images'], start=1)
        ],
    }


def _seed_step(label, create):
    """Run one seed insert; a failure is logged and the remaining records still get seeded."""
    try:
        created = create()
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(f'[seed] Failed to create {label}; skipping.')
        return False
    if created:
        current_app.logger.info(f'[seed] Created {label}.')
    return created


def _seed_page(entry):
    if Page.query.filter_by(slug=entry['slug']).first():
        return False
    db.session.add(Page(
        title=entry['title'],
        slug=entry['slug'],
        content=entry.get('content'),
        hero_data=entry.get('hero_data'),
        carousel_data=carousel_blob(entry.get('carousel_data'), lambda n: f'/images/placeholder-{n}.jpg'),
        seo_data=entry.get('seo_data'),
        published=True,
    ))
    return True


def _seed_car_series(entry):
    if CarSeries.query.filter_by(slug=entry['slug']).first():
        return False
    db.session.add(CarSeries(
        name=entry['name'],
        slug=entry['slug'],
        description=entry['description'],
        specifications=entry['specifications'],
        price=entry['price'],
        hero_data=entry['hero_data'],
        carousel_data=carousel_blob(entry['carousel_data'], lambda n: f"/images/cars/{entry['slug']}/image-{n}.jpg"),
        published=True,
    ))
    return True


def _seed_navigation_item(label, url, parent_id, order_index):
    existing = NavigationItem.query.filter_by(label=label, parent_id=parent_id).first()
    if existing:
        return existing, False
    item = NavigationItem(label=label, url=url, parent_id=parent_id, order_index=order_index)
    db.session.add(item)
    db.session.flush()
    return item, True


def _seed_media(filename, original_name, alt_text, width, height):
    if Media.query.filter_by(filename=filename).first():
        return False
    data = placeholder_svg(alt_text, width, height)
    db.session.add(Media(
        filename=filename,
        original_name=original_name,
        url=encode_data_url('image/svg+xml', data),
        alt_text=alt_text,
        size=len(data),
        mime_type='image/svg+xml',
        width=width,
        height=height,
    ))
    return True


def seed_navigation():
    created = 0
    for order_index, (label, url, children) in enumerate(SAMPLE_NAVIGATION):
        try:
            parent, was_created = _seed_navigation_item(label, url, None, order_index)
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception(f'[seed] Failed to create navigation item {label!r}; skipping its menu.')
            continue
        if was_created:
            created += 1
            current_app.logger.info(f'[seed] Created navigation item {label!r}.')
        for child_index, (child_label, child_url) in enumerate(children):
            if _seed_step(
                f'navigation item {child_label!r}',
                lambda: _seed_navigation_item(child_label, child_url, parent.id, child_index)[1],
            ):
                created += 1
    return created


def seed_sample_content():
    """Create the JuniorCars pages, car series, navigation and placeholder media.

    Records are matched by slug (label for navigation, filename for media), so
    running this again only fills in what is missing.
    """
    summary = {'pages': 0, 'car_series': 0, 'navigation': 0, 'media': 0}
    for entry in SAMPLE_MEDIA:
        if _seed_step(f'media {entry[0]!r}', lambda: _seed_media(*entry)):
            summary['media'] += 1
    for entry in SAMPLE_PAGES:
        if _seed_step(f"page /{entry['slug']}", lambda: _seed_page(entry)):
            summary['pages'] += 1
    for entry in SAMPLE_CAR_SERIES:
        if _seed_step(f"car series /cars/{entry['slug']}", lambda: _seed_car_series(entry)):
            summary['car_series'] += 1
    summary['navigation'] = seed_navigation()
    current_app.logger.info(
        '[seed] Sample content: {pages} pages, {car_series} car series, '
        '{navigation} navigation items, {media} media files created.'.format(**summary)
    )
    return summary


def seed_site_settings():
    existing = {setting.key for setting in SiteSetting.query.all()}
    for key, value in SITE_SETTING_DEFAULTS.items():
        if key not in existing:
            db.session.add(SiteSetting(key=key, value=value))
    db.session.commit()


def seed_admin_user():
    email = (current_app.config.get('ADMIN_EMAIL') or 'admin@juniorcars.com').strip().lower()
    env_password = os.environ.get('ADMIN_PASSWORD') or ''

    admin = User.query.filter_by(email=email).first()
    if admin:
        # Always sync admin password with env var on startup
        if env_password:
            admin.set_password(env_password)
            db.session.commit()
        return admin
    if User.query.first():
        return None

    if not env_password:
        env_password = secrets.token_urlsafe(16)
        current_app.logger.warning(
            '[seed] ADMIN_PASSWORD not set. Seeded admin with a random password. '
            'Set ADMIN_PASSWORD and restart to rotate it to a known value.'
        )
    admin = User(email=email, first_name='Admin', last_name='User', role=ROLE_ADMIN)
    admin.set_password(env_password)
    db.session.add(admin)
    db.session.commit()
    current_app.logger.info(f'[seed] Created admin user {email}.')
    return admin


def seed_database():
    try:
        seed_admin_user()
    except Exception:
        db.session.rollback()
        current_app.logger.exception('[seed] Admin bootstrap failed.')
    try:
        seed_site_settings()
    except Exception:
        db.session.rollback()
        current_app.logger.exception('[seed] Site settings seeding failed.')
    setup_public_permissions()
    if current_app.config.get('SEED_SAMPLE_CONTENT'):
        seed_sample_content()
