#!/usr/bin/env python3
import argparse
import base64
import io
import logging
from dataclasses import dataclass
from pathlib import Path

import qrcode
from fpdf import FPDF, XPos, YPos
from PIL import Image

from cert_errors import AlreadyIssuedError, CertificateError, InvalidInputError, LedgerError
from hash_creation import CertificateFields, build_fingerprint
from ledger import Ledger, open_ledger
from proof_codec import ProofRecord, encode
from settings import Settings, configure_logging, load_settings

logger = logging.getLogger(__name__)

ERROR_CORRECTION = {
    "L": qrcode.constants.ERROR_CORRECT_L,
    "M": qrcode.constants.ERROR_CORRECT_M,
    "Q": qrcode.constants.ERROR_CORRECT_Q,
    "H": qrcode.constants.ERROR_CORRECT_H,
}


@dataclass(frozen=True)
class IssueResult:
    qr_code_image: str
    ledger_link: str
    details: ProofRecord
    proof_text: str

    def to_response(self) -> dict:
        return {
            "qrCodeImage": self.qr_code_image,
            "ledgerLink": self.ledger_link,
            "details": self.details.to_details(),
        }


def make_qr_image(qr_data: str, error_correction: str = "H", box_size: int = 10) -> Image.Image:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECTION[error_correction], box_size=box_size, border=4)
    qr.add_data(qr_data)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white").convert("RGB")


def qr_data_url(qr_data: str, error_correction: str = "H") -> str:
    buf = io.BytesIO()
    make_qr_image(qr_data, error_correction).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def _ledger_call(fn, *args):
    try:
        return fn(*args)
    except CertificateError:
        raise
    except Exception as e:
        # ledgers are expected to raise LedgerError; normalise anything else
        raise LedgerError(f"Ledger call {fn.__name__} failed: {e}") from e


def issue_certificate(fields, ledger: Ledger, settings: Settings = None) -> IssueResult:
    """Record the certificate fingerprint on the ledger and build its QR proof.

    Raises InvalidInputError for missing fields or a certificate number the
    ledger cannot hold, AlreadyIssuedError when the fingerprint is already
    recorded, and LedgerError when the ledger fails.
    """
    settings = settings or Settings()
    cert = fields if isinstance(fields, CertificateFields) else CertificateFields.from_mapping(fields)
    fingerprint = build_fingerprint(cert)

    issued, _ = _ledger_call(ledger.verify_certificate, fingerprint)
    if issued:
        logger.info("Certificate %s already issued (%s)", cert.certificate_number, fingerprint)
        raise AlreadyIssuedError(fingerprint)

    tx_hash = _ledger_call(ledger.issue_certificate, cert.certificate_number, fingerprint)

    details = ProofRecord(
        transaction_hash=tx_hash,
        certificate_hash=fingerprint,
        certificate_number=cert.certificate_number,
        name=cert.name,
        course_name=cert.course_name,
        grant_date=cert.grant_date,
        expiration_date=cert.expiration_date,
    )
    proof_text = encode(details)
    return IssueResult(
        qr_code_image=qr_data_url(proof_text, settings.qr_error_correction),
        ledger_link=f"{settings.explorer_tx_url}{tx_hash}",
        details=details,
        proof_text=proof_text,
    )


def _pdf_text(s: str) -> str:
    # core fonts are latin-1 only; the QR payload keeps the exact text
    return s.encode("latin-1", errors="replace").decode("latin-1")


DETAIL_ROWS = (
    ("Certificate Number", "certificate_number"),
    ("Course", "course_name"),
    ("Granted", "grant_date"),
    ("Expires", "expiration_date"),
)


def create_certificate_pdf(out_path: Path, details: ProofRecord, proof_text: str, error_correction: str = "H") -> Path:
    """Render a one-page certificate with the proof QR on the right-hand side."""
    pdf = FPDF(orientation="L", unit="mm", format="A4")
    pdf.set_auto_page_break(False)
    pdf.set_margins(18, 18, 18)
    pdf.add_page()
    page_w, page_h = pdf.w, pdf.h
    band_h = 34
    qr_size = 62
    qr_x = page_w - pdf.r_margin - qr_size
    text_w = qr_x - pdf.l_margin - 12

    # header band
    pdf.set_fill_color(24, 52, 86)
    pdf.rect(0, 0, page_w, band_h, style="F")
    pdf.set_xy(pdf.l_margin, 11)
    pdf.set_font("Helvetica", "B", 22)
    pdf.set_text_color(255, 255, 255)
    pdf.cell(text_w, 12, "Certificate of Completion", align="L")
    pdf.set_font("Helvetica", size=11)
    pdf.cell(0, 12, _pdf_text(f"No. {details.certificate_number}"), align="R")

    # recipient and course
    pdf.set_xy(pdf.l_margin, band_h + 18)
    pdf.set_text_color(90)
    pdf.set_font("Helvetica", size=12)
    pdf.cell(text_w, 7, "Awarded to", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_text_color(20)
    pdf.set_font("Helvetica", "B", 30)
    pdf.multi_cell(text_w, 13, _pdf_text(details.name), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(3)
    pdf.set_text_color(60)
    pdf.set_font("Helvetica", size=13)
    pdf.multi_cell(text_w, 7, _pdf_text(f"for completing {details.course_name}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    # detail table
    pdf.ln(8)
    label_w = 48
    pdf.set_draw_color(210, 210, 210)
    pdf.set_line_width(0.3)
    for label, attr in DETAIL_ROWS:
        pdf.set_font("Helvetica", "B", 11)
        pdf.set_text_color(70)
        pdf.cell(label_w, 9, label, border="B")
        pdf.set_font("Helvetica", size=11)
        pdf.set_text_color(20)
        pdf.cell(text_w - label_w, 9, _pdf_text(getattr(details, attr)), border="B", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    # proof QR
    qr_y = band_h + 20
    pdf.image(make_qr_image(proof_text, error_correction), x=qr_x, y=qr_y, w=qr_size, h=qr_size)
    pdf.set_xy(qr_x, qr_y + qr_size + 2)
    pdf.set_font("Helvetica", "I", 9)
    pdf.set_text_color(90)
    pdf.cell(qr_size, 5, "Scan to verify on the ledger", align="C")

    # ledger footer
    pdf.set_draw_color(24, 52, 86)
    pdf.set_line_width(0.6)
    pdf.line(pdf.l_margin, page_h - 30, page_w - pdf.r_margin, page_h - 30)
    pdf.set_xy(pdf.l_margin, page_h - 26)
    pdf.set_font("Courier", size=8)
    pdf.set_text_color(80)
    pdf.cell(0, 4, f"Certificate Hash  {details.certificate_hash}", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.cell(0, 4, f"Transaction       {details.transaction_hash}", new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    pdf.output(str(out_path))
    return out_path


def main(argv=None):
    p = argparse.ArgumentParser(description="Issue a certificate on the ledger and write its PDF with the QR proof")
    p.add_argument("--certificate-number", required=True)
    p.add_argument("--name", required=True, help="Recipient name")
    p.add_argument("--course-name", required=True)
    p.add_argument("--grant-date", required=True)
    p.add_argument("--expiration-date", required=True)
    p.add_argument("--config", default=None, help="JSON settings file")
    p.add_argument("--out-dir", default=None, help="Output folder (default: output_dir setting)")
    args = p.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.log_level)

    fields = {
        "Certificate_Number": args.certificate_number,
        "name": args.name,
        "courseName": args.course_name,
        "Grant_Date": args.grant_date,
        "Expiration_Date": args.expiration_date,
    }
    try:
        ledger = open_ledger(settings)
        result = issue_certificate(fields, ledger, settings)
    except (InvalidInputError, AlreadyIssuedError) as e:
        print("DECLINED:", e)
        return 2
    except LedgerError as e:
        print("ERROR:", e)
        return 10

    out_dir = Path(args.out_dir or settings.output_dir).resolve()
    number = result.details.certificate_number
    pdf_path = create_certificate_pdf(out_dir / f"Certificate_{number}.pdf", result.details, result.proof_text, settings.qr_error_correction)
    qr_path = out_dir / f"Certificate_{number}_qr.png"
    make_qr_image(result.proof_text, settings.qr_error_correction).save(qr_path, format="PNG")

    print("Certificate PDF written:", pdf_path)
    print("QR image written:", qr_path)
    print("Ledger link:", result.ledger_link)
    print()
    print(result.proof_text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
