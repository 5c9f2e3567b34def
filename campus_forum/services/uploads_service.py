import os
import uuid

from flask import current_app
from PIL import Image, ImageOps, UnidentifiedImageError

from ..core.utils import allowed_file


class UploadError(ValueError):
    """Raised when an uploaded file cannot be stored as an image."""


def save_image_upload(file_storage):
    """
    Normalises an uploaded image and stores it under the upload folder.

    The image is rotated according to its EXIF orientation, converted to RGB,
    shrunk to fit within UPLOAD_MAX_DIMENSION on both sides and written as a
    JPEG under a random name. Returns the public URL of the stored file.
    """
    if file_storage is None or not file_storage.filename:
        raise UploadError("No file uploaded")
    if not allowed_file(file_storage.filename):
        raise UploadError("Only images are allowed")

    try:
        image = Image.open(file_storage.stream)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        current_app.logger.info(f"Rejected upload {file_storage.filename}: {e}")
        raise UploadError("Only images are allowed") from e

    max_pixels = current_app.config.get("UPLOAD_MAX_PIXELS", 40_000_000)
    if image.width * image.height > max_pixels:
        current_app.logger.info(
            f"Rejected upload {file_storage.filename}: "
            f"{image.width}x{image.height} exceeds {max_pixels} pixels"
        )
        image.close()
        raise UploadError("Image is too large")

    try:
        image.load()
    except (Image.DecompressionBombError, OSError) as e:
        current_app.logger.info(f"Rejected upload {file_storage.filename}: {e}")
        raise UploadError("Only images are allowed") from e

    image = ImageOps.exif_transpose(image)
    if image.mode != "RGB":
        image = image.convert("RGB")

    max_dimension = current_app.config.get("UPLOAD_MAX_DIMENSION", 1920)
    image.thumbnail((max_dimension, max_dimension), Image.LANCZOS)

    filename = f"{uuid.uuid4().hex}.jpg"
    upload_folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(upload_folder, exist_ok=True)
    image.save(
        os.path.join(upload_folder, filename),
        "JPEG",
        quality=current_app.config.get("UPLOAD_JPEG_QUALITY", 85),
        optimize=True,
    )
    current_app.logger.info(
        f"Stored upload {filename} ({image.width}x{image.height})"
    )
    return f"/uploads/{filename}"
