"""
Image quality gate for uploaded admission documents.

Measures resolution, file size, format, sharpness and brightness and turns
them into a 0-100 score plus a list of plain-language issues:
  1. Resolution  → minimum width/height
  2. File size   → too small (likely low quality) or too large
  3. Format      → JPEG, PNG or WebP only
  4. Sharpness   → Laplacian variance on a down-scaled grayscale copy
  5. Brightness  → mean of the per-channel means
"""

import io
import logging
import math
from dataclasses import dataclass, field

import cv2
import numpy as np
from PIL import Image, ImageStat

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = {"jpeg", "png", "webp"}
SHARPNESS_SAMPLE_SIZE = (800, 800)
SHARPNESS_SCALE = 5.0
PASSING_SCORE = 60


@dataclass(frozen=True)
class QualityThresholds:
    min_width: int = 800
    min_height: int = 600
    min_bytes: int = 50 * 1024
    max_bytes: int = 10 * 1024 * 1024
    blurry: float = 30.0
    slightly_blurry: float = 50.0
    too_dark: float = 50.0
    too_bright: float = 230.0
    black: float = 10.0
    white: float = 245.0


DOCUMENT_THRESHOLDS = QualityThresholds()


def photo_thresholds(width: int, height: int, min_bytes: int) -> QualityThresholds:
    """Profile for normalized ID photos: the canvas itself is the minimum resolution."""
    return QualityThresholds(min_width=width, min_height=height, min_bytes=min_bytes)


@dataclass
class QualityResult:
    is_valid: bool
    score: int
    issues: list[str]
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "score": self.score,
            "issues": self.issues,
            "detalhes": self.details,
        }


class ImageQualityValidator:
    """Deterministic, OpenCV-backed quality gate (no network, a few ms per image)."""

    def __init__(self, thresholds: QualityThresholds = DOCUMENT_THRESHOLDS):
        self._t = thresholds

    def evaluate(self, image_bytes: bytes) -> QualityResult:
        try:
            img = Image.open(io.BytesIO(image_bytes))
            img.load()
        except Exception as exc:
            logger.warning("Could not decode uploaded image: %s", exc)
            return QualityResult(
                is_valid=False,
                score=0,
                issues=["Erro ao processar imagem. Verifique se o arquivo está correto."],
            )

        t = self._t
        issues: list[str] = []
        score = 100

        width, height = img.size
        fmt = (img.format or "unknown").lower()
        size = len(image_bytes)
        sharpness = self._estimate_sharpness(img)
        brightness = self._estimate_brightness(img)

        # --- 1. Resolution ---
        if width < t.min_width or height < t.min_height:
            issues.append(
                f"Resolução muito baixa ({width}x{height}). "
                f"Mínimo recomendado: {t.min_width}x{t.min_height}px"
            )
            score -= 30

        # --- 2. File size ---
        if size < t.min_bytes:
            issues.append("Arquivo muito pequeno. Pode estar com baixa qualidade.")
            score -= 20
        if size > t.max_bytes:
            issues.append("Arquivo muito grande. Considere comprimir a imagem.")
            score -= 10

        # --- 3. Format ---
        if fmt not in ALLOWED_FORMATS:
            issues.append(f"Formato não suportado ({fmt}). Use JPEG, PNG ou WebP.")
            score -= 40

        # --- 4. Sharpness ---
        if sharpness < t.blurry:
            issues.append("Imagem muito embaçada ou desfocada. Tire outra foto com mais nitidez.")
            score -= 40
        elif sharpness < t.slightly_blurry:
            issues.append("Imagem um pouco embaçada. Recomendamos tirar outra foto.")
            score -= 20

        # --- 5. Brightness ---
        if brightness < t.too_dark:
            issues.append("Imagem muito escura. Tire a foto com mais iluminação.")
            score -= 25
        elif brightness > t.too_bright:
            issues.append("Imagem muito clara/estourada. Reduza a exposição.")
            score -= 25

        # --- 6. Practically black or white ---
        if brightness < t.black:
            issues.append("Imagem praticamente preta. Documento ilegível.")
            score -= 50
        elif brightness > t.white:
            issues.append("Imagem praticamente branca. Documento ilegível.")
            score -= 50

        score = max(0, score)

        return QualityResult(
            # A discrete issue rejects the image even when the score alone would pass.
            is_valid=score >= PASSING_SCORE and not issues,
            score=score,
            issues=issues,
            details={
                "largura": width,
                "altura": height,
                "formato": fmt,
                "tamanho": size,
                "nitidez": round(sharpness, 2),
                "brilho": round(brightness, 2),
            },
        )

    # --- Internal measurements ---

    def _estimate_sharpness(self, img: Image.Image) -> float:
        """
        Laplacian variance of a grayscale copy that fits in 800x800,
        mapped to 0-100. Flat images score 0, crisp text saturates at 100.
        """
        gray = img.convert("L")
        gray.thumbnail(SHARPNESS_SAMPLE_SIZE)
        pixels = np.asarray(gray, dtype=np.uint8)
        variance = float(cv2.Laplacian(pixels, cv2.CV_64F).var())
        return min(100.0, math.sqrt(variance) * SHARPNESS_SCALE)

    def _estimate_brightness(self, img: Image.Image) -> float:
        if img.mode not in ("L", "RGB"):
            img = img.convert("RGB")
        means = ImageStat.Stat(img).mean
        if not means:
            return 128.0
        return float(sum(means) / len(means))
