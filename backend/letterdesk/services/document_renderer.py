"""
Document Renderer Adapter

Turns a letter into a PDF file under a dedicated directory. Files are named
``letter-{letterId}-{timestamp}.pdf``; any reference that does not match that
pattern, or that resolves outside the directory, is refused before serving.
"""
import html
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from ..errors import NotFoundError, RenderError

logger = logging.getLogger(__name__)

DOCUMENT_NAME_RE = re.compile(
    r"^letter-[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
    r"-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{6}Z\.pdf$"
)

LETTER_CSS = """
@page { margin: 1in; size: letter; }
body { font-family: 'Times New Roman', serif; font-size: 12pt; line-height: 1.6; color: #000; }
.letterhead { text-align: center; margin-bottom: 40px; border-bottom: 2px solid #333; padding-bottom: 20px; }
.firm-name { font-size: 18pt; font-weight: bold; color: #2c3e50; margin-bottom: 10px; }
.attorney-info { font-size: 11pt; color: #555; }
.date-section { text-align: right; margin-bottom: 30px; font-size: 11pt; }
.address-block { margin-bottom: 25px; }
.address-label { font-weight: bold; margin-bottom: 5px; font-size: 10pt; color: #666;
                 text-transform: uppercase; letter-spacing: 1px; }
.address-content { font-size: 11pt; line-height: 1.4; }
.subject-line { font-weight: bold; margin: 30px 0; text-decoration: underline; }
.letter-body { margin-bottom: 40px; text-align: justify; line-height: 1.8; }
.letter-body p { margin-bottom: 15px; }
.signature-section { margin-top: 50px; }
.closing { margin-bottom: 60px; }
.signature-line { border-bottom: 1px solid #333; width: 250px; margin-bottom: 5px; }
.signature-name { font-weight: bold; margin-bottom: 5px; }
.signature-title { font-size: 10pt; color: #666; }
.footer { position: fixed; bottom: 0.5in; left: 0; right: 0; text-align: center; font-size: 9pt;
          color: #888; border-top: 1px solid #ddd; padding-top: 10px; }
"""


def _field(letter: Any, name: str, default=None):
    if isinstance(letter, Mapping):
        return letter.get(name, default)
    return getattr(letter, name, default)


def format_date(value: datetime) -> str:
    """October 17, 2026"""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def format_address(address: Mapping) -> str:
    address = address or {}
    street = html.escape(str(address.get("street", "")))
    city = html.escape(str(address.get("city", "")))
    state = html.escape(str(address.get("state", "")))
    zip_code = html.escape(str(address.get("zip", "")))
    country = html.escape(str(address.get("country", "USA")))
    return f"{street}<br>\n{city}, {state} {zip_code}<br>\n{country}"


def format_letter_content(content: str) -> str:
    """Blank-line separated paragraphs, each wrapped in <p>."""
    if not content or not content.strip():
        return "<p>No content available.</p>"
    paragraphs = [
        " ".join(line.strip() for line in block.strip().splitlines())
        for block in re.split(r"\n\s*\n", content)
        if block.strip()
    ]
    return "\n".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)


def build_letter_html(letter: Any) -> str:
    """
    Full HTML document for a letter. ``letter`` may be a LetterDB or a
    mapping (the merged view used while completing a review).
    """
    completed_at = _field(letter, "completed_at")
    letter_date = completed_at if isinstance(completed_at, datetime) else datetime.utcnow()
    firm_name = _field(letter, "sender_firm_name")
    sender_name = html.escape(_field(letter, "sender_name", "") or "")
    recipient_name = html.escape(_field(letter, "recipient_name", "") or "")
    subject = html.escape(_field(letter, "subject", "") or "")
    body = _field(letter, "final_content") or _field(letter, "ai_generated_content") or ""
    signature_title = (
        f'<div class="signature-title">{html.escape(firm_name)}</div>' if firm_name else ""
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Legal Letter - {subject}</title>
<style>{LETTER_CSS}</style>
</head>
<body>
<div class="letterhead">
  <div class="firm-name">{html.escape(firm_name) if firm_name else 'LEGAL SERVICES'}</div>
  <div class="attorney-info">Professional Legal Correspondence</div>
</div>
<div class="date-section">{format_date(letter_date)}</div>
<div class="addresses">
  <div class="address-block">
    <div class="address-label">From:</div>
    <div class="address-content"><strong>{sender_name}</strong><br>
    {format_address(_field(letter, "sender_address"))}</div>
  </div>
  <div class="address-block">
    <div class="address-label">To:</div>
    <div class="address-content"><strong>{recipient_name}</strong><br>
    {format_address(_field(letter, "recipient_address"))}</div>
  </div>
</div>
<div class="subject-line">RE: {subject}</div>
<div class="letter-body">
{format_letter_content(body)}
</div>
<div class="signature-section">
  <div class="closing">Sincerely,</div>
  <div class="signature-line"></div>
  <div class="signature-name">{sender_name}</div>
  {signature_title}
</div>
<div class="footer">
  This letter was generated on {format_date(letter_date)} | Document ID: {html.escape(str(_field(letter, "id", "")))}
</div>
</body>
</html>
"""


def document_name_for(letter_id: str, now: datetime = None) -> str:
    timestamp = (now or datetime.utcnow()).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"letter-{letter_id}-{timestamp}.pdf"


def is_valid_document_name(name: str) -> bool:
    return bool(name) and DOCUMENT_NAME_RE.match(name) is not None


class DocumentRenderer:
    """WeasyPrint-backed HTML to PDF renderer."""

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir).resolve()
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def write_pdf(self, html_string: str, path: Path) -> None:
        from weasyprint import HTML
        HTML(string=html_string).write_pdf(target=str(path))

    def render(self, letter: Any) -> str:
        """Render and return the document reference (file name)."""
        letter_id = _field(letter, "id")
        name = document_name_for(letter_id)
        path = self.output_dir / name
        try:
            self.write_pdf(build_letter_html(letter), path)
        except Exception as e:
            logger.error(f"Error generating PDF for letter {letter_id}: {e}")
            raise RenderError(f"Failed to generate PDF: {e}") from e

        logger.info(f"PDF generated successfully: {path}")
        return name

    def resolve(self, document_ref: str) -> Path:
        """Path for a stored reference, refusing traversal and unknown names."""
        if not is_valid_document_name(document_ref or ""):
            raise NotFoundError("Invalid document reference")
        path = (self.output_dir / document_ref).resolve()
        if path.parent != self.output_dir:
            raise NotFoundError("Invalid document reference")
        if not path.is_file():
            raise NotFoundError("PDF file not found")
        return path
