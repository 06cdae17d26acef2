# Overview: Product image upload/delete against Cloudinary.

import uuid

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from flask import current_app


class ImageStorageError(ValueError):
    """Upload failed or the asset host is not configured."""


def init_image_storage(app) -> None:
    """Configure Cloudinary from CLOUDINARY_URL or the split credentials."""
    cloudinary_url = app.config.get("CLOUDINARY_URL")
    cloud_name = app.config.get("CLOUDINARY_CLOUD_NAME")
    api_key = app.config.get("CLOUDINARY_API_KEY")
    api_secret = app.config.get("CLOUDINARY_API_SECRET")

    configured = False
    if cloudinary_url:
        cloudinary.config(cloudinary_url=cloudinary_url)
        configured = True
    elif cloud_name and api_key and api_secret:
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)
        configured = True

    app.extensions["image_storage"] = configured
    if not configured:
        app.logger.info("Image storage not configured; product image uploads are disabled")


def upload_image(file) -> dict:
    """
    Upload one image file and return {"url", "public_id"}.

    `file` is a werkzeug FileStorage or anything cloudinary accepts.
    """
    if not current_app.extensions.get("image_storage"):
        raise ImageStorageError("Image storage is not configured.")

    try:
        result = cloudinary.uploader.upload(
            file,
            folder=current_app.config["CLOUDINARY_FOLDER"],
            public_id=uuid.uuid4().hex[:12],
            resource_type="image",
            overwrite=False,
        )
    except CloudinaryError as exc:
        current_app.logger.exception("Image upload failed")
        raise ImageStorageError(f"Image upload failed: {exc}") from exc

    return {"url": result.get("secure_url") or result.get("url"), "public_id": result["public_id"]}


def delete_image(public_id: str) -> bool:
    """Best effort: failures are logged and reported as False."""
    if not public_id or not current_app.extensions.get("image_storage"):
        return False
    try:
        result = cloudinary.uploader.destroy(public_id, resource_type="image")
    except CloudinaryError:
        current_app.logger.exception("Failed to delete image %s", public_id)
        return False
    return result.get("result") == "ok"


def delete_images(public_ids) -> int:
    return sum(1 for public_id in public_ids if delete_image(public_id))
