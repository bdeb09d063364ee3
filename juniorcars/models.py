from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

db = SQLAlchemy()

ROLE_ADMIN = 'admin'
ROLE_EDITOR = 'editor'
USER_ROLE_CHOICES = (
    ROLE_ADMIN,
    ROLE_EDITOR,
)
USER_ROLE_LABELS = {
    ROLE_ADMIN: 'Admin',
    ROLE_EDITOR: 'Editor',
}
ROLE_DEFAULT = ROLE_ADMIN

BLOCK_HERO = 'hero'
BLOCK_CAROUSEL = 'carousel'
BLOCK_TEXT = 'text'
BLOCK_IMAGE = 'image'
BLOCK_HTML = 'html'
CONTENT_BLOCK_TYPES = (
    BLOCK_HERO,
    BLOCK_CAROUSEL,
    BLOCK_TEXT,
    BLOCK_IMAGE,
    BLOCK_HTML,
)

NAV_TARGET_SELF = '_self'
NAV_TARGET_BLANK = '_blank'
NAV_TARGETS = (NAV_TARGET_SELF, NAV_TARGET_BLANK)

API_ROLE_PUBLIC = 'public'
API_ROLE_AUTHENTICATED = 'authenticated'


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(dt_value):
    if not dt_value:
        return None
    return dt_value.strftime('%Y-%m-%dT%H:%M:%S.') + f'{dt_value.microsecond // 1000:03d}Z'


def normalize_user_role(value, default=ROLE_DEFAULT):
    candidate = (value or '').strip().lower()
    if candidate in USER_ROLE_CHOICES:
        return candidate
    return default


def hash_password(password):
    return generate_password_hash(password)


def verify_password_hash(password_hash, password):
    if not password_hash or password is None:
        return False
    try:
        return check_password_hash(password_hash, password)
    except ValueError:
        # Stored hash names an unknown method.
        return False


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    role = db.Column(db.String(20), nullable=False, default=ROLE_DEFAULT, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    def set_password(self, password):
        self.password_hash = hash_password(password)

    def check_password(self, password):
        return verify_password_hash(self.password_hash, password)

    @property
    def role_key(self):
        return normalize_user_role(self.role, default=ROLE_DEFAULT)

    @property
    def role_label(self):
        return USER_ROLE_LABELS.get(self.role_key, USER_ROLE_LABELS[ROLE_DEFAULT])

    @property
    def display_name(self):
        full_name = ' '.join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.email

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'role': self.role_key,
        }


class Page(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False, index=True)
    content = db.Column(db.JSON)
    hero_data = db.Column(db.JSON)
    carousel_data = db.Column(db.JSON)
    seo_data = db.Column(db.JSON)
    published = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)
    content_blocks = db.relationship(
        'ContentBlock',
        backref='page',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='(ContentBlock.order_index, ContentBlock.id)',
    )

    def to_dict(self, include_blocks=True):
        payload = {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'content': self.content,
            'heroData': self.hero_data,
            'carouselData': self.carousel_data,
            'seoData': self.seo_data,
            'published': bool(self.published),
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if include_blocks:
            payload['contentBlocks'] = [block.to_dict() for block in self.content_blocks]
        return payload


class CarSeries(db.Model):
    __tablename__ = 'car_series'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), unique=True, nullable=False, index=True)
    description = db.Column(db.Text)
    specifications = db.Column(db.JSON)
    price = db.Column(db.Numeric(12, 2, asdecimal=False))
    hero_data = db.Column(db.JSON)
    carousel_data = db.Column(db.JSON)
    published = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'specifications': self.specifications,
            'price': self.price,
            'heroData': self.hero_data,
            'carouselData': self.carousel_data,
            'published': bool(self.published),
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class NavigationItem(db.Model):
    __tablename__ = 'navigation_item'

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(100), nullable=False)
    url = db.Column(db.String(500))
    parent_id = db.Column(db.Integer, db.ForeignKey('navigation_item.id'), index=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_external = db.Column(db.Boolean, nullable=False, default=False)
    target = db.Column(db.String(10), nullable=False, default=NAV_TARGET_SELF)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)
    parent = db.relationship('NavigationItem', remote_side=[id], backref=db.backref(
        'children',
        lazy=True,
        order_by='(NavigationItem.order_index, NavigationItem.id)',
    ))

    def to_dict(self, include_relations=True):
        payload = {
            'id': self.id,
            'label': self.label,
            'url': self.url,
            'parentId': self.parent_id,
            'orderIndex': self.order_index,
            'isActive': bool(self.is_active),
            'isExternal': bool(self.is_external),
            'target': self.target or NAV_TARGET_SELF,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if include_relations:
            payload['parent'] = self.parent.to_dict(include_relations=False) if self.parent else None
            payload['children'] = [child.to_dict(include_relations=False) for child in self.children]
        return payload


class ContentBlock(db.Model):
    __tablename__ = 'content_block'

    id = db.Column(db.Integer, primary_key=True)
    page_id = db.Column(db.Integer, db.ForeignKey('page.id', ondelete='CASCADE'), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.Index('ix_content_block_page_order', 'page_id', 'order_index'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'pageId': self.page_id,
            'type': self.type,
            'data': self.data or {},
            'orderIndex': self.order_index,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class Media(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(300), unique=True, nullable=False)
    original_name = db.Column(db.String(300), nullable=False)
    url = db.Column(db.Text, nullable=False)
    alt_text = db.Column(db.String(300))
    size = db.Column(db.Integer)
    mime_type = db.Column(db.String(100))
    width = db.Column(db.Integer)
    height = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    @property
    def is_data_url(self):
        return (self.url or '').startswith('data:')

    @property
    def kind(self):
        mime_type = (self.mime_type or '').lower()
        if mime_type.startswith('image/'):
            return 'image'
        if mime_type.startswith('video/'):
            return 'video'
        return 'document'

    def to_dict(self):
        return {
            'id': self.id,
            'filename': self.filename,
            'originalName': self.original_name,
            'url': self.url,
            'altText': self.alt_text,
            'size': self.size,
            'mimeType': self.mime_type,
            'width': self.width,
            'height': self.height,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class SiteSetting(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text, default='')


class ApiPermission(db.Model):
    __tablename__ = 'api_permission'

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(40), nullable=False, index=True)
    action = db.Column(db.String(120), nullable=False)
    enabled = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.UniqueConstraint('role', 'action', name='uq_api_permission_role_action'),
    )
