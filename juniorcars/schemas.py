"""
Request schemas

Pydantic models describing every create/update payload and list query the
CMS accepts. Field names are camelCase on the wire and snake_case in Python.
Use ``validate_payload`` / ``validate_query`` to turn a raw mapping into a
typed object or a ``ValidationFailed`` error listing every violated field.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from .errors import ValidationFailed
from .models import CONTENT_BLOCK_TYPES, NAV_TARGETS, USER_ROLE_CHOICES
from .utils import EMAIL_RE, SLUG_RE

SLUG_MESSAGE = 'Slug must contain only lowercase letters, numbers, and hyphens'


def _check_url(value, allow_data=False):
    if value is None:
        return value
    text = value.strip()
    if allow_data and text.startswith('data:') and ',' in text:
        return text
    if text.startswith('/') and not text.startswith('//'):
        return text
    parsed = urlparse(text)
    if parsed.scheme in {'http', 'https'} and parsed.netloc:
        return text
    raise ValueError('Invalid URL')


def _check_slug(value):
    if value is not None and not SLUG_RE.match(value):
        raise ValueError(SLUG_MESSAGE)
    return value


def _check_email(value):
    if not EMAIL_RE.match(value or ''):
        raise ValueError('Invalid email address')
    return value.lower()


UrlStr = Annotated[str, Field(max_length=2000), AfterValidator(_check_url)]
MediaUrlStr = Annotated[str, AfterValidator(lambda value: _check_url(value, allow_data=True))]
SlugStr = Annotated[str, Field(min_length=1, max_length=200), AfterValidator(_check_slug)]
EmailStr = Annotated[str, Field(max_length=255), AfterValidator(_check_email)]


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_fields(self):
        """Return only the explicitly provided fields, keyed by attribute name."""
        return self.model_dump(exclude_unset=True, by_alias=False)


class _Blob(_Schema):
    # JSON blobs keep keys the templates may use beyond the known ones.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='allow',
    )

    def to_json(self):
        return self.model_dump(by_alias=True, exclude_none=True)


# Auth / users
class LoginRequest(_Schema):
    # Format is not checked here; an unknown address is an ordinary failed login.
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class UserCreate(_Schema):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    role: Literal[USER_ROLE_CHOICES] = 'admin'


# Shared JSON blobs
class HeroData(_Blob):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: Optional[UrlStr] = None
    video: Optional[UrlStr] = None
    cta_text: Optional[str] = None
    cta_url: Optional[UrlStr] = None


class CarouselImage(_Blob):
    url: UrlStr
    alt: str
    caption: Optional[str] = None


class CarouselData(_Blob):
    images: List[CarouselImage]


class SeoData(_Blob):
    title: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[str] = None
    og_image: Optional[UrlStr] = None
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    twitter_card: Optional[str] = None
    canonical_url: Optional[UrlStr] = None


class Dimensions(_Blob):
    length: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    wheelbase: Optional[str] = None


class CarSpecifications(_Blob):
    engine: Optional[str] = None
    power: Optional[str] = None
    torque: Optional[str] = None
    transmission: Optional[str] = None
    fuel_type: Optional[str] = None
    acceleration: Optional[str] = None
    top_speed: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    features: Optional[List[str]] = None


def _blob_json(value):
    return value.to_json() if isinstance(value, BaseModel) else value


# Pages
class PageCreate(_Schema):
    title: str = Field(min_length=1, max_length=200)
    slug: Optional[SlugStr] = None
    content: Optional[Any] = None
    hero_data: Optional[HeroData] = None
    carousel_data: Optional[CarouselData] = None
    seo_data: Optional[SeoData] = None
    published: bool = False

    def to_fields(self):
        fields = super().to_fields()
        for key in ('hero_data', 'carousel_data', 'seo_data'):
            if key in fields:
                fields[key] = _blob_json(getattr(self, key))
        return fields


class PageUpdate(PageCreate):
    id: int = Field(gt=0)
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    published: Optional[bool] = None


# Car series
class CarSeriesCreate(_Schema):
    name: str = Field(min_length=1, max_length=200)
    slug: Optional[SlugStr] = None
    description: Optional[str] = Field(None, max_length=20000)
    specifications: Optional[CarSpecifications] = None
    price: Optional[float] = Field(None, gt=0)
    hero_data: Optional[HeroData] = None
    carousel_data: Optional[CarouselData] = None
    published: bool = False

    def to_fields(self):
        fields = super().to_fields()
        for key in ('specifications', 'hero_data', 'carousel_data'):
            if key in fields:
                fields[key] = _blob_json(getattr(self, key))
        return fields


class CarSeriesUpdate(CarSeriesCreate):
    id: int = Field(gt=0)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    published: Optional[bool] = None


# Navigation
class NavigationItemCreate(_Schema):
    label: str = Field(min_length=1, max_length=100)
    url: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[int] = Field(None, gt=0)
    order_index: Optional[int] = None
    is_active: bool = True
    is_external: bool = False
    target: Literal[NAV_TARGETS] = '_self'


class NavigationItemUpdate(NavigationItemCreate):
    id: int = Field(gt=0)
    label: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None
    is_external: Optional[bool] = None
    target: Optional[Literal[NAV_TARGETS]] = None


class NavigationReorderEntry(_Schema):
    id: int = Field(gt=0)
    order_index: int
    parent_id: Optional[int] = Field(None, gt=0)


class NavigationReorder(_Schema):
    items: List[NavigationReorderEntry] = Field(min_length=1)


# Media
class MediaCreate(_Schema):
    filename: str = Field(min_length=1, max_length=300)
    original_name: str = Field(min_length=1, max_length=300)
    url: MediaUrlStr
    alt_text: Optional[str] = Field(None, max_length=300)
    size: Optional[int] = Field(None, gt=0)
    mime_type: Optional[str] = Field(None, max_length=100)
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)


class MediaUpdate(MediaCreate):
    id: int = Field(gt=0)
    filename: Optional[str] = Field(None, min_length=1, max_length=300)
    original_name: Optional[str] = Field(None, min_length=1, max_length=300)
    url: Optional[MediaUrlStr] = None


class MediaBulkDelete(_Schema):
    ids: List[Annotated[int, Field(gt=0)]] = Field(min_length=1)


# Content blocks
class TextBlockData(_Blob):
    content: str
    alignment: Optional[Literal['left', 'center', 'right']] = None


class ImageBlockData(_Blob):
    url: MediaUrlStr
    alt: str
    caption: Optional[str] = None
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)


class HtmlBlockData(_Blob):
    content: str


BLOCK_DATA_SCHEMAS = {
    'hero': HeroData,
    'carousel': CarouselData,
    'text': TextBlockData,
    'image': ImageBlockData,
    'html': HtmlBlockData,
}


def validate_block_data(block_type, data):
    """Validate ``data`` against the shape required for ``block_type``."""
    try:
        return BLOCK_DATA_SCHEMAS[block_type].model_validate(data or {}).to_json()
    except ValidationError as exc:
        details = [
            {'field': '.'.join(['data', *(str(part) for part in item['field'].split('.') if part)]), 'message': item['message']}
            for item in format_errors(exc)
        ]
        raise ValidationFailed(
            'Validation error: ' + ', '.join(f"{item['field']}: {item['message']}" for item in details),
            details=details,
        ) from exc


class ContentBlockCreate(_Schema):
    page_id: int = Field(gt=0)
    type: Literal[CONTENT_BLOCK_TYPES]
    data: Dict[str, Any] = Field(default_factory=dict)
    order_index: Optional[int] = None


class ContentBlockUpdate(ContentBlockCreate):
    id: int = Field(gt=0)
    page_id: Optional[int] = Field(None, gt=0)
    type: Optional[Literal[CONTENT_BLOCK_TYPES]] = None
    data: Optional[Dict[str, Any]] = None


class ContentBlockReorderEntry(_Schema):
    id: int = Field(gt=0)
    order_index: int


class ContentBlockReorder(_Schema):
    blocks: List[ContentBlockReorderEntry] = Field(min_length=1)


# SEO bulk actions
class SeoBulkUpdate(_Schema):
    action: Literal['generate_meta_titles', 'generate_meta_descriptions']
    page_ids: List[Annotated[int, Field(gt=0)]] = Field(default_factory=list)
    template: Optional[str] = Field(None, max_length=300)


# List queries
class _ListQuery(_Schema):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='forbid',
    )

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    search: Optional[str] = Field(None, max_length=200, validation_alias=AliasChoices('search', 'q'))
    sort_order: Literal['asc', 'desc'] = 'desc'


class PageListQuery(_ListQuery):
    published: Optional[bool] = None
    sort_by: Literal['createdAt', 'updatedAt', 'title', 'slug'] = 'createdAt'


class CarSeriesListQuery(_ListQuery):
    published: Optional[bool] = None
    sort_by: Literal['createdAt', 'updatedAt', 'name', 'slug', 'price'] = 'createdAt'


class NavigationListQuery(_ListQuery):
    parent_id: Optional[int] = Field(None, gt=0)
    sort_by: Literal['orderIndex', 'label', 'createdAt', 'updatedAt'] = 'orderIndex'
    sort_order: Literal['asc', 'desc'] = 'asc'


class MediaListQuery(_ListQuery):
    type: Optional[Literal['image', 'video', 'document']] = None
    sort_by: Literal['createdAt', 'updatedAt', 'filename', 'size'] = 'createdAt'


class ContentBlockListQuery(_ListQuery):
    page_id: Optional[int] = Field(None, gt=0)
    type: Optional[Literal[CONTENT_BLOCK_TYPES]] = None
    sort_by: Literal['orderIndex', 'createdAt', 'updatedAt'] = 'orderIndex'
    sort_order: Literal['asc', 'desc'] = 'asc'


def format_errors(exc):
    details = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error.get('loc', ()) if part != '__root__')
        message = error.get('msg', 'Invalid value')
        if message.startswith('Value error, '):
            message = message[len('Value error, '):]
        details.append({'field': location, 'message': message})
    return details


def _raise_validation(exc):
    details = format_errors(exc)
    summary = ', '.join(f"{item['field']}: {item['message']}" if item['field'] else item['message'] for item in details)
    raise ValidationFailed(f'Validation error: {summary}', details=details) from exc


def validate_payload(schema, payload):
    if not isinstance(payload, dict):
        raise ValidationFailed('Validation error: request body must be a JSON object', details=[
            {'field': '', 'message': 'Expected a JSON object'},
        ])
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        _raise_validation(exc)


def validate_query(schema, args):
    raw = {}
    for key in args.keys():
        values = args.getlist(key) if hasattr(args, 'getlist') else [args[key]]
        raw[key] = values[-1] if values else None
    try:
        return schema.model_validate(raw)
    except ValidationError as exc:
        _raise_validation(exc)
