import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from admission.errors import ValidationFailed

logger = logging.getLogger(__name__)

TARGET_WIDTH = 300
TARGET_HEIGHT = 400
JPEG_QUALITY = 90
# Share of the vertical excess taken from the top; the rest comes off the bottom.
TOP_CROP_SHARE = 0.2


@dataclass
class NormalizedPhoto:
    data: bytes
    width: int
    height: int


def compute_crop_box(width: int, height: int, target_ratio: float) -> tuple[int, int, int, int] | None:
    """(left, upper, right, lower) that brings the image to ``target_ratio`` (w/h).

    Wider images lose equal margins on both sides. Taller images keep the
    upper region, where the face usually is.
    """
    if width <= 0 or height <= 0 or target_ratio <= 0:
        return None

    if width / height > target_ratio:
        new_width = round(height * target_ratio)
        left = (width - new_width) // 2
        return left, 0, left + new_width, height

    new_height = round(width / target_ratio)
    excess = height - new_height
    top = int(excess * TOP_CROP_SHARE)
    return 0, top, width, top + new_height


def normalize_photo(data: bytes, width: int = TARGET_WIDTH, height: int = TARGET_HEIGHT,
                    quality: int = JPEG_QUALITY) -> NormalizedPhoto:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationFailed(
            "Erro ao processar foto",
            ["Não foi possível ler a imagem enviada. Envie uma foto JPEG ou PNG."],
        ) from exc

    img = ImageOps.exif_transpose(img)
    if img.mode != "RGB":
        img = img.convert("RGB")

    box = compute_crop_box(img.width, img.height, width / height)
    if box is not None:
        img = img.crop(box)
    else:
        logger.warning("Photo dimensions unavailable, falling back to cover fit")

    img = ImageOps.fit(img, (width, height), method=Image.Resampling.LANCZOS, centering=(0.5, 0.0))

    out = io.BytesIO()
    img.save(out, format="JPEG", quality=quality)
    return NormalizedPhoto(data=out.getvalue(), width=width, height=height)
