"""JPEG normalisation and verification for captured photos."""

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from fieldsync.services.exceptions import ArtifactUnreadableError


def compress_to_jpeg(data: bytes, quality: int = 80) -> bytes:
    """Re-encode any Pillow-readable image as JPEG bytes.

    Args:
        data: Encoded image (JPEG, PNG, HEIF with plugin, ...)
        quality: JPEG quality (1-100), default 80

    Returns:
        JPEG image as bytes

    Raises:
        ArtifactUnreadableError: If data is not a decodable image
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            buffer = BytesIO()
            img.save(buffer, format="JPEG", quality=quality, optimize=True)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ArtifactUnreadableError(f"Cannot decode image: {e}") from e
    return buffer.getvalue()


def verify_image(data: bytes) -> None:
    """Check that data decodes as an image without keeping the pixels.

    Raises:
        ArtifactUnreadableError: If data is empty, truncated, or not an image
    """
    if not data:
        raise ArtifactUnreadableError("Image data is empty")
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as e:
        raise ArtifactUnreadableError(f"Corrupted image: {e}") from e
