import pytest

from cert_errors import ExtractionError
from certificate_maker import create_certificate_pdf, issue_certificate, make_qr_image
from certificate_verifier import VALID_MESSAGE, verify_document
from qr_extraction import extract_qr_text, extract_qr_text_from_image, extract_qr_text_from_pdf

pytest.importorskip("pyzbar.pyzbar", reason="zbar shared library not installed")


def test_reads_png(tmp_path):
    path = tmp_path / "qr.png"
    make_qr_image("Certificate Hash: abc123\nCertificate Number: 123").save(path, format="PNG")
    assert extract_qr_text(path) == "Certificate Hash: abc123\nCertificate Number: 123"


def test_blank_image_has_no_code(tmp_path):
    from PIL import Image

    path = tmp_path / "blank.png"
    Image.new("RGB", (200, 200), "white").save(path)
    with pytest.raises(ExtractionError):
        extract_qr_text_from_image(path)


def test_reads_issued_certificate_pdf(fields, ledger, settings, tmp_path):
    issued = issue_certificate(fields, ledger, settings)
    pdf = create_certificate_pdf(tmp_path / "cert.pdf", issued.details, issued.proof_text)
    assert extract_qr_text_from_pdf(pdf) == issued.proof_text


def test_issued_pdf_verifies_end_to_end(fields, ledger, settings, tmp_path):
    issued = issue_certificate(fields, ledger, settings)
    pdf = create_certificate_pdf(tmp_path / "cert.pdf", issued.details, issued.proof_text)
    result = verify_document(pdf, ledger)
    assert result.valid
    assert result.reason == VALID_MESSAGE
    assert result.proof_text == issued.proof_text


def test_pdf_without_images(tmp_path):
    from fpdf import FPDF

    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", size=12)
    pdf.cell(0, 10, "Certificate Hash: abc123")
    path = tmp_path / "plain.pdf"
    pdf.output(str(path))
    with pytest.raises(ExtractionError):
        extract_qr_text_from_pdf(path)


def test_unreadable_pdf(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"%PDF-1.4 garbage")
    with pytest.raises(ExtractionError):
        extract_qr_text_from_pdf(path)


def test_unsupported_suffix(tmp_path):
    with pytest.raises(ExtractionError):
        extract_qr_text(tmp_path / "cert.txt")


def _vector_qr_pdf(path, text, module_mm=1.2):
    """Draw the QR matrix as filled rectangles, with no embedded image."""
    import qrcode
    from fpdf import FPDF

    qr = qrcode.QRCode(border=4)
    qr.add_data(text)
    qr.make(fit=True)

    pdf = FPDF()
    pdf.add_page()
    pdf.set_fill_color(0, 0, 0)
    for row, line in enumerate(qr.get_matrix()):
        for col, dark in enumerate(line):
            if dark:
                pdf.rect(20 + col * module_mm, 40 + row * module_mm, module_mm, module_mm, style="F")
    pdf.output(str(path))
    return path


def test_reads_qr_drawn_as_vector_graphics(tmp_path):
    pdf = _vector_qr_pdf(tmp_path / "vector.pdf", "Certificate Hash: abc123\nCertificate Number: 123")
    assert extract_qr_text_from_pdf(pdf) == "Certificate Hash: abc123\nCertificate Number: 123"


def test_vector_qr_certificate_verifies(fields, ledger, settings, tmp_path):
    issued = issue_certificate(fields, ledger, settings)
    pdf = _vector_qr_pdf(tmp_path / "vector.pdf", issued.proof_text)
    result = verify_document(pdf, ledger)
    assert result.valid
    assert result.proof_text == issued.proof_text
