#!/usr/bin/env python3
import argparse
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from cert_errors import LedgerError
from ledger import Ledger, open_ledger
from proof_codec import DecodedProof, decode, decode_record
from qr_extraction import extract_qr_text
from settings import configure_logging, load_settings

logger = logging.getLogger(__name__)

VALID_MESSAGE = "Verified: Certificate is valid"
INVALID_MESSAGE = "Certificate is not valid"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: str
    proof_text: Optional[str] = None

    def to_response(self) -> dict:
        return {"message": self.reason, "detailsQR": self.proof_text}


def _as_number(value):
    try:
        num = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return num if num.is_finite() else None


def numbers_match(decoded_number, stored_number) -> bool:
    left = _as_number(decoded_number)
    right = _as_number(stored_number)
    return left is not None and right is not None and left == right


def _invalid(proof_text=None) -> VerificationResult:
    return VerificationResult(False, INVALID_MESSAGE, proof_text)


def verify(decoded: DecodedProof, ledger: Ledger, proof_text: str = None) -> VerificationResult:
    if not decoded.found:
        logger.warning("No certificate hash in proof; treating as not found")
        return _invalid(proof_text)
    try:
        issued, stored_number = ledger.verify_certificate(decoded.certificate_hash)
    except Exception as e:
        logger.warning("Ledger lookup failed for %s: %s", decoded.certificate_hash, e)
        return _invalid(proof_text)

    if issued and numbers_match(decoded.certificate_number, stored_number):
        return VerificationResult(True, VALID_MESSAGE, proof_text)
    logger.info(
        "Certificate %s not valid (issued=%s, stored number=%s)",
        decoded.certificate_number, issued, stored_number,
    )
    return _invalid(proof_text)


def verify_proof_text(proof_text: str, ledger: Ledger) -> VerificationResult:
    return verify(decode(proof_text), ledger, proof_text)


def verify_document(path, ledger: Ledger) -> VerificationResult:
    """Read the QR proof out of a PDF or image and check it against the ledger.

    Never raises: unreadable documents and ledger failures come back as an
    invalid result. The raw proof text is returned when one was extracted.
    """
    try:
        proof_text = extract_qr_text(path)
    except Exception as e:
        logger.warning("Proof extraction failed for %s: %s", Path(path).name, e)
        return _invalid()
    logger.info("QR Code Text: %r", proof_text)
    return verify_proof_text(proof_text, ledger)


def main(argv=None):
    ap = argparse.ArgumentParser(description="Verify a certificate PDF against the ledger")
    ap.add_argument("--pdf", required=True, help="Certificate PDF (or PNG/JPEG of its QR code)")
    ap.add_argument("--config", default=None)
    ap.add_argument("--print-payload", action="store_true")
    args = ap.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.log_level)
    try:
        ledger = open_ledger(settings)
    except LedgerError as e:
        print("VERDICT: ERROR")
        print("Reason:", e)
        return 10

    result = verify_document(Path(args.pdf).resolve(), ledger)
    if result.valid:
        print("VERDICT: VALID")
    else:
        print("VERDICT: INVALID")
    print("Reason:", result.reason)

    if args.print_payload and result.proof_text is not None:
        record = decode_record(result.proof_text)
        print("\n-- Proof (from QR) --")
        for key, value in record.to_details().items():
            print(f"{key}: {value}")
    return 0 if result.valid else 1


if __name__ == "__main__":
    raise SystemExit(main())
