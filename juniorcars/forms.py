"""Flask-WTF forms for the admin UI.

CSRF is enforced globally in ``app.before_request``, so the forms disable
their own token.
"""
from flask_wtf import FlaskForm
from flask_wtf.file import FileField, FileRequired
from wtforms import (
    BooleanField,
    DecimalField,
    IntegerField,
    PasswordField,
    SelectField,
    StringField,
    TextAreaField,
)
from wtforms.validators import DataRequired, Length, NumberRange, Optional, Regexp

from .models import CONTENT_BLOCK_TYPES, NAV_TARGETS


class _BaseCmsForm(FlaskForm):
    class Meta:
        csrf = False


_slug_validator = Regexp(
    r"^[a-z0-9-]*$",
    message="Slug can only contain lowercase letters, numbers, and hyphens.",
)


class LoginForm(_BaseCmsForm):
    email = StringField("Email", validators=[DataRequired(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(), Length(max=200)])


class PageForm(_BaseCmsForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=200)])
    slug = StringField("Slug", validators=[Optional(), Length(max=200), _slug_validator])
    hero_title = StringField("Hero title", validators=[Optional(), Length(max=200)])
    hero_subtitle = StringField("Hero subtitle", validators=[Optional(), Length(max=300)])
    hero_description = TextAreaField("Hero description", validators=[Optional(), Length(max=2000)])
    hero_image = StringField("Hero image URL", validators=[Optional(), Length(max=2000)])
    body = TextAreaField("Body", validators=[Optional(), Length(max=200000)])
    seo_title = StringField("Meta title", validators=[Optional(), Length(max=200)])
    seo_description = TextAreaField("Meta description", validators=[Optional(), Length(max=500)])
    published = BooleanField("Published")


class ContentBlockForm(_BaseCmsForm):
    type = SelectField("Type", choices=[(value, value.title()) for value in CONTENT_BLOCK_TYPES])
    data_json = TextAreaField("Data (JSON)", validators=[DataRequired(), Length(max=200000)])
    order_index = IntegerField("Order", validators=[Optional(), NumberRange(min=0)])


class CarSeriesForm(_BaseCmsForm):
    name = StringField("Name", validators=[DataRequired(), Length(max=200)])
    slug = StringField("Slug", validators=[Optional(), Length(max=200), _slug_validator])
    description = TextAreaField("Description", validators=[Optional(), Length(max=10000)])
    price = DecimalField("Price", places=2, validators=[Optional(), NumberRange(min=0.01)])
    engine = StringField("Engine", validators=[Optional(), Length(max=200)])
    power = StringField("Power", validators=[Optional(), Length(max=200)])
    torque = StringField("Torque", validators=[Optional(), Length(max=200)])
    transmission = StringField("Transmission", validators=[Optional(), Length(max=200)])
    fuel_type = StringField("Fuel type", validators=[Optional(), Length(max=200)])
    acceleration = StringField("Acceleration", validators=[Optional(), Length(max=200)])
    top_speed = StringField("Top speed", validators=[Optional(), Length(max=200)])
    weight = StringField("Weight", validators=[Optional(), Length(max=200)])
    features = TextAreaField("Features (one per line)", validators=[Optional(), Length(max=5000)])
    hero_image = StringField("Hero image URL", validators=[Optional(), Length(max=2000)])
    published = BooleanField("Published")


class NavigationItemForm(_BaseCmsForm):
    label = StringField("Label", validators=[DataRequired(), Length(max=100)])
    url = StringField("URL", validators=[Optional(), Length(max=500)])
    parent_id = SelectField("Parent", coerce=int, default=0)
    order_index = IntegerField("Order", validators=[Optional(), NumberRange(min=0)])
    target = SelectField("Target", choices=[(value, value) for value in NAV_TARGETS], default=NAV_TARGETS[0])
    is_active = BooleanField("Active", default=True)
    is_external = BooleanField("External link")


class MediaUploadForm(_BaseCmsForm):
    file = FileField("File", validators=[FileRequired(message="Please choose a file to upload.")])
    alt_text = StringField("Alt text", validators=[Optional(), Length(max=300)])


class MediaEditForm(_BaseCmsForm):
    alt_text = StringField("Alt text", validators=[Optional(), Length(max=300)])


class SeoBulkForm(_BaseCmsForm):
    action = SelectField("Action", choices=[
        ('generate_meta_titles', 'Generate missing meta titles'),
        ('generate_meta_descriptions', 'Generate missing meta descriptions'),
    ])
    template = StringField("Template", validators=[Optional(), Length(max=200)])
