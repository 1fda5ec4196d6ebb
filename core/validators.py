"""
Custom validators for marketplace models.
"""

from django.conf import settings
from django.core.exceptions import ValidationError

VALID_IMAGE_EXTENSIONS = ['jpg', 'jpeg', 'png', 'webp']
VALID_IMAGE_CONTENT_TYPES = ['image/jpeg', 'image/jpg', 'image/png', 'image/webp']


def validate_image_file(image):
    """
    Validate an uploaded item or profile image.

    Checks:
    - File size (ITEM_IMAGE_MAX_SIZE, 5MB by default)
    - File format (jpg, jpeg, png, webp)
    - MIME type when the upload provides one

    Args:
        image: UploadedFile or FieldFile object

    Raises:
        ValidationError: If image is invalid
    """
    if not image:
        return

    max_size = getattr(settings, 'ITEM_IMAGE_MAX_SIZE', 5 * 1024 * 1024)
    if image.size > max_size:
        raise ValidationError(
            f'Image file size cannot exceed {max_size // (1024 * 1024)}MB. '
            f'Current size: {image.size / (1024 * 1024):.2f}MB',
            code='image_too_large'
        )

    file_name = image.name.lower()
    if not any(file_name.endswith(f'.{ext}') for ext in VALID_IMAGE_EXTENSIONS):
        raise ValidationError(
            f'Invalid image format. Allowed formats: {", ".join(VALID_IMAGE_EXTENSIONS)}',
            code='invalid_image_format'
        )

    content_type = getattr(image, 'content_type', None)
    if content_type and content_type not in VALID_IMAGE_CONTENT_TYPES:
        raise ValidationError(
            f'Invalid image content type: {content_type}',
            code='invalid_content_type'
        )


def validate_latitude(value):
    """Latitude must lie within [-90, 90]."""
    if value is not None and not -90 <= value <= 90:
        raise ValidationError(
            'Latitude must be between -90 and 90.',
            code='invalid_latitude'
        )


def validate_longitude(value):
    """Longitude must lie within [-180, 180]."""
    if value is not None and not -180 <= value <= 180:
        raise ValidationError(
            'Longitude must be between -180 and 180.',
            code='invalid_longitude'
        )


def validate_not_blank(value):
    """
    Reject strings that are empty once surrounding whitespace is removed.

    Args:
        value: String to validate

    Raises:
        ValidationError: If value is empty or whitespace-only
    """
    if not value or not value.strip():
        raise ValidationError(
            'This field cannot be empty.',
            code='blank'
        )
