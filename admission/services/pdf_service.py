from fpdf import FPDF

from admission.config import settings
from admission.constants import Ethnicity
from admission.errors import InvalidState
from admission.models.document import DocumentRecord
from admission.services.document_service import get_candidate
from admission.utils.text import mask_cpf

ETHNICITY_LABELS = {
    Ethnicity.WHITE.value: "Branca",
    Ethnicity.BLACK.value: "Preta",
    Ethnicity.BROWN.value: "Parda",
    Ethnicity.YELLOW.value: "Amarela",
    Ethnicity.INDIGENOUS.value: "Indígena",
    Ethnicity.UNDECLARED.value: "Prefiro não declarar",
}


def _latin1(text: str) -> str:
    """Encode to latin-1, replacing unsupported chars; fpdf built-in fonts are latin-1 only."""
    return text.encode("latin-1", errors="replace").decode("latin-1")


def verification_url(verification_hash: str) -> str:
    base = settings.public_base_url.rstrip("/")
    return f"{base}{settings.api_prefix}/documents/verificar-autodeclaracao/{verification_hash}"


def generate_declaration_pdf(
    nome: str,
    cpf: str,
    job_title: str | None,
    raca: str,
    declared_at: str,
    verification_hash: str,
) -> bytes:
    """Render the printable receipt of an ethnicity self-declaration."""
    pdf = FPDF()
    pdf.set_margins(20, 20, 20)
    pdf.add_page()

    # Title
    pdf.set_font("Helvetica", "B", 16)
    pdf.multi_cell(0, 9, _latin1("Autodeclaração Étnico-Racial"), align="C")
    pdf.ln(4)

    # Candidate
    pdf.set_font("Helvetica", "", 11)
    pdf.set_text_color(80, 80, 80)
    pdf.cell(0, 7, _latin1(f"Nome: {nome}"), new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 7, _latin1(f"CPF: {mask_cpf(cpf)}"), new_x="LMARGIN", new_y="NEXT")
    if job_title:
        pdf.cell(0, 7, _latin1(f"Vaga: {job_title}"), new_x="LMARGIN", new_y="NEXT")

    # Divider
    pdf.ln(3)
    pdf.set_draw_color(200, 200, 200)
    pdf.line(20, pdf.get_y(), 190, pdf.get_y())
    pdf.ln(5)

    pdf.set_text_color(0, 0, 0)
    pdf.set_font("Helvetica", "", 11)
    label = ETHNICITY_LABELS.get(raca, raca)
    pdf.multi_cell(
        0, 6,
        _latin1(
            f"Declaro, para fins de admissão, que me autodeclaro de raça/cor {label}, "
            "conforme classificação do IBGE, e que as informações prestadas são verdadeiras."
        ),
    )
    pdf.ln(4)
    pdf.cell(0, 7, _latin1(f"Data da declaração: {declared_at}"), new_x="LMARGIN", new_y="NEXT")

    # Verification
    pdf.ln(6)
    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 8, _latin1(f"Código de verificação: {verification_hash}"), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 9)
    pdf.set_text_color(80, 80, 80)
    pdf.multi_cell(0, 5, _latin1(f"Confira a autenticidade em {verification_url(verification_hash)}"))

    return bytes(pdf.output())


def declaration_receipt(db, candidate_id: int) -> bytes:
    candidate = get_candidate(db, candidate_id)
    record = db.query(DocumentRecord).filter(DocumentRecord.candidate_id == candidate.id).first()
    if record is None or record.ethnicity is None:
        raise InvalidState("Autodeclaração ainda não foi enviada")
    return generate_declaration_pdf(
        nome=candidate.nome,
        cpf=candidate.cpf,
        job_title=candidate.job_title,
        raca=record.ethnicity,
        declared_at=record.ethnicity_declared_at.strftime("%d/%m/%Y %H:%M UTC"),
        verification_hash=record.ethnicity_hash,
    )
