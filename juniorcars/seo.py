"""SEO overview and bulk meta generation for pages.

Meta titles and descriptions live in ``Page.seo_data`` under ``title`` and
``description``.
"""
from collections import Counter

import bleach
from flask import current_app
from sqlalchemy.orm.attributes import flag_modified

from .models import Page, db, isoformat
from .schemas import SeoBulkUpdate, validate_payload

DESCRIPTION_SOFT_LIMIT = 150
CONTENT_TEXT_KEYS = ('body', 'text', 'content', 'intro', 'description', 'summary')


def _seo_value(page, key):
    seo = page.seo_data if isinstance(page.seo_data, dict) else {}
    value = seo.get(key)
    return value.strip() if isinstance(value, str) else ''


def _content_text(content):
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        for key in CONTENT_TEXT_KEYS:
            value = content.get(key)
            if isinstance(value, str) and value.strip():
                return value
        for value in content.values():
            text = _content_text(value)
            if text:
                return text
    if isinstance(content, list):
        for value in content:
            text = _content_text(value)
            if text:
                return text
    return ''


def generate_meta_description(title, content=None):
    plain_text = bleach.clean(_content_text(content), tags=[], strip=True).strip()
    if plain_text:
        first_sentence = plain_text.split('.')[0].strip()
        if first_sentence and len(first_sentence) <= DESCRIPTION_SOFT_LIMIT:
            return first_sentence + '.'
        return plain_text[:DESCRIPTION_SOFT_LIMIT - 3].rstrip() + '...'
    return f'Learn more about {title} at JuniorCars. Discover amazing cars and automotive content.'


def _recommendations(issues):
    recommendations = []
    if issues['missingMetaTitles']:
        recommendations.append({
            'type': 'error',
            'title': 'Missing Meta Titles',
            'description': f"{issues['missingMetaTitles']} pages are missing meta titles",
            'action': 'Add unique, descriptive meta titles (50-60 characters)',
            'priority': 'high',
        })
    if issues['missingMetaDescriptions']:
        recommendations.append({
            'type': 'error',
            'title': 'Missing Meta Descriptions',
            'description': f"{issues['missingMetaDescriptions']} pages are missing meta descriptions",
            'action': 'Add compelling meta descriptions (150-160 characters)',
            'priority': 'high',
        })
    if issues['longMetaTitles']:
        recommendations.append({
            'type': 'warning',
            'title': 'Long Meta Titles',
            'description': f"{issues['longMetaTitles']} pages have meta titles longer than 60 characters",
            'action': 'Shorten meta titles to improve search result display',
            'priority': 'medium',
        })
    if issues['longMetaDescriptions']:
        recommendations.append({
            'type': 'warning',
            'title': 'Long Meta Descriptions',
            'description': f"{issues['longMetaDescriptions']} pages have meta descriptions longer than 160 characters",
            'action': 'Shorten meta descriptions to prevent truncation',
            'priority': 'medium',
        })
    if issues['duplicateMetaTitles']:
        recommendations.append({
            'type': 'warning',
            'title': 'Duplicate Meta Titles',
            'description': f"{issues['duplicateMetaTitles']} meta titles are used on multiple pages",
            'action': 'Make each meta title unique to avoid SEO conflicts',
            'priority': 'medium',
        })
    return recommendations


def seo_overview():
    title_limit = int(current_app.config.get('SEO_TITLE_MAX_LENGTH', 60))
    description_limit = int(current_app.config.get('SEO_DESCRIPTION_MAX_LENGTH', 160))
    pages = Page.query.order_by(Page.updated_at.desc(), Page.id.desc()).all()

    titles = [_seo_value(page, 'title') for page in pages]
    descriptions = [_seo_value(page, 'description') for page in pages]
    title_counts = Counter(title for title in titles if title)
    issues = {
        'missingMetaTitles': sum(1 for title in titles if not title),
        'missingMetaDescriptions': sum(1 for description in descriptions if not description),
        'longMetaTitles': sum(1 for title in titles if len(title) > title_limit),
        'longMetaDescriptions': sum(1 for description in descriptions if len(description) > description_limit),
        'duplicateMetaTitles': sum(1 for count in title_counts.values() if count > 1),
    }

    total_pages = len(pages)
    if total_pages:
        present = (total_pages * 2) - issues['missingMetaTitles'] - issues['missingMetaDescriptions']
        seo_score = round(present / (total_pages * 2) * 100)
    else:
        seo_score = 100

    pages_with_issues = []
    for page, title, description in zip(pages, titles, descriptions):
        if title and description:
            continue
        pages_with_issues.append({
            'id': page.id,
            'title': page.title,
            'slug': page.slug,
            'metaTitle': title or None,
            'metaDescription': description or None,
            'published': bool(page.published),
            'updatedAt': isoformat(page.updated_at),
        })

    return {
        'overview': {
            'totalPages': total_pages,
            'publishedPages': sum(1 for page in pages if page.published),
            'seoScore': seo_score,
        },
        'issues': issues,
        'pagesWithIssues': pages_with_issues[:10],
        'recommendations': _recommendations(issues),
    }


def bulk_update(payload):
    """Generate meta titles or descriptions; no ``pageIds`` means every page missing one."""
    data = validate_payload(SeoBulkUpdate, payload)
    field = 'title' if data.action == 'generate_meta_titles' else 'description'
    if data.page_ids:
        pages = Page.query.filter(Page.id.in_(data.page_ids)).all()
    else:
        pages = [page for page in Page.query.all() if not _seo_value(page, field)]

    default_template = current_app.config.get('SEO_DEFAULT_TITLE_TEMPLATE', '{title} | JuniorCars')
    for page in pages:
        if data.template:
            value = data.template.replace('{title}', page.title)
        elif field == 'title':
            value = default_template.replace('{title}', page.title)
        else:
            value = generate_meta_description(page.title, page.content)
        seo = dict(page.seo_data) if isinstance(page.seo_data, dict) else {}
        seo[field] = value
        page.seo_data = seo
        flag_modified(page, 'seo_data')
    db.session.commit()
    current_app.logger.info(f'SEO bulk action {data.action} updated {len(pages)} page(s).')
    return len(pages)
