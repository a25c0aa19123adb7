"""
Residency-proof validation from OCR text.

Reads the text of a utility bill (or similar), guesses the provider type,
picks the most recent date in it as the issue date and checks that:
  - the bill was issued within the last ``max_age_days`` days,
  - it is not dated in the future,
  - the candidate's name appears on it.
"""

import io
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

import pytesseract
from PIL import Image

from admission.errors import UpstreamFailure
from admission.utils.clock import utcnow

logger = logging.getLogger(__name__)

MAX_AGE_DAYS = 90
MIN_YEAR = 2000

# Order matters: the first type with a matching keyword wins.
PROVIDER_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("Conta de Luz", ("energia", "eletrica", "neoenergia", "celpe", "cemig", "copel", "cpfl")),
    ("Conta de Água", ("agua", "saneamento", "compesa", "sabesp", "cedae")),
    ("Conta de Internet", ("internet", "banda larga", "fibra", "oi", "vivo", "tim", "claro", "net")),
    ("Conta de Telefone", ("telefone", "telefonia", "celular")),
    ("Conta de Gás", ("gas", "comgas", "gaspetro")),
    ("Conta de Condomínio", ("condominio", "taxa condominial")),
]

_DAY_FIRST = re.compile(r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})")
_YEAR_FIRST = re.compile(r"(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})")


class OcrEngine(Protocol):
    def recognize(self, data: bytes, language: str) -> str: ...


class TesseractOcrEngine:
    """Local Tesseract via pytesseract, bounded by ``timeout_seconds``."""

    def __init__(self, timeout_seconds: int = 60):
        self.timeout_seconds = timeout_seconds

    def recognize(self, data: bytes, language: str) -> str:
        try:
            with Image.open(io.BytesIO(data)) as img:
                return pytesseract.image_to_string(img, lang=language, timeout=self.timeout_seconds)
        except (pytesseract.TesseractError, RuntimeError, OSError) as exc:
            # RuntimeError is pytesseract's timeout, OSError covers a missing binary.
            logger.exception("OCR engine failed")
            raise UpstreamFailure("Erro ao processar documento via OCR. Tente novamente.") from exc


@dataclass
class ResidencyCheck:
    is_valid: bool
    issue_date: date | None = None
    days_ago: int | None = None
    provider_type: str | None = None
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "dataEmissao": self.issue_date.isoformat() if self.issue_date else None,
            "diasAtras": self.days_ago,
            "tipoComprovante": self.provider_type or "Desconhecido",
            "issues": self.issues,
            "avisos": self.warnings,
        }


def _fold(text: str) -> str:
    """Lower-case and strip accents; OCR output is inconsistent about diacritics."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def detect_provider_type(text: str) -> str | None:
    folded = _fold(text)
    for name, keywords in PROVIDER_KEYWORDS:
        for keyword in keywords:
            # Whole words only: "oi" or "net" must not match inside other words.
            if re.search(rf"\b{re.escape(keyword)}\b", folded):
                return name
    return None


def extract_dates(text: str, today: date) -> list[date]:
    """Real calendar dates between 2000 and next year, de-duplicated, newest first."""
    found: set[date] = set()
    candidates = [(d, m, y) for d, m, y in _DAY_FIRST.findall(text)]
    candidates += [(d, m, y) for y, m, d in _YEAR_FIRST.findall(text)]
    for day, month, year in candidates:
        y, m, d = int(year), int(month), int(day)
        if not MIN_YEAR <= y <= today.year + 1:
            continue
        try:
            found.add(date(y, m, d))
        except ValueError:
            continue
    return sorted(found, reverse=True)


def name_appears(text: str, candidate_name: str) -> bool:
    folded = _fold(text)
    parts = [p for p in _fold(candidate_name).split() if len(p) > 2]
    matches = sum(1 for p in parts if p in folded)
    return matches >= min(2, len(parts))


def analyze_residency_text(text: str, candidate_name: str, today: date | None = None,
                           max_age_days: int = MAX_AGE_DAYS) -> ResidencyCheck:
    today = today or utcnow().date()
    text = (text or "").lower()
    provider_type = detect_provider_type(text)
    warnings = []
    if provider_type is None:
        warnings.append("Não foi possível identificar o tipo de comprovante (luz, água, internet, etc.)")

    dates = extract_dates(text, today)
    if not dates:
        return ResidencyCheck(
            is_valid=False,
            provider_type=provider_type,
            issues=["Nenhuma data foi encontrada no documento. Verifique se a imagem está legível."],
            warnings=warnings,
        )

    issue_date = dates[0]
    days_ago = (today - issue_date).days

    if days_ago > max_age_days:
        return ResidencyCheck(
            is_valid=False,
            issue_date=issue_date,
            days_ago=days_ago,
            provider_type=provider_type,
            issues=[
                f"Comprovante muito antigo ({days_ago} dias atrás). "
                "Envie um comprovante de até 3 meses."
            ],
            warnings=warnings,
        )
    if days_ago < 0:
        return ResidencyCheck(
            is_valid=False,
            issue_date=issue_date,
            days_ago=days_ago,
            provider_type=provider_type,
            issues=["Data do comprovante está no futuro. Verifique se a imagem está correta."],
            warnings=warnings,
        )

    issues = []
    if not name_appears(text, candidate_name):
        issues.append(
            "O nome do candidato não foi encontrado no comprovante. "
            "Verifique se o documento está em seu nome."
        )

    return ResidencyCheck(
        is_valid=not issues,
        issue_date=issue_date,
        days_ago=days_ago,
        provider_type=provider_type,
        issues=issues,
        warnings=warnings,
    )


def validate_residency_proof(engine: OcrEngine, data: bytes, candidate_name: str,
                             language: str = "por", today: date | None = None,
                             max_age_days: int = MAX_AGE_DAYS) -> ResidencyCheck:
    text = engine.recognize(data, language)
    logger.debug("OCR text (first 500 chars): %s", text[:500])
    result = analyze_residency_text(text, candidate_name, today=today, max_age_days=max_age_days)
    logger.info(
        "Residency proof checked: type=%s date=%s days_ago=%s valid=%s",
        result.provider_type, result.issue_date, result.days_ago, result.is_valid,
    )
    return result
