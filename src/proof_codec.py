"""Text payload carried by the certificate QR code.

One ``Label: value`` pair per line. Only the certificate hash and number are
read back for verification; the remaining lines are for people scanning the
code. Decoding drops every comma from a value, so values containing commas do
not survive a round trip.
"""
import logging
from dataclasses import dataclass, fields

from cert_errors import InvalidInputError

logger = logging.getLogger(__name__)

PROOF_KEYS = (
    ("transaction_hash", "Transaction Hash"),
    ("certificate_hash", "Certificate Hash"),
    ("certificate_number", "Certificate Number"),
    ("name", "Name"),
    ("course_name", "Course Name"),
    ("grant_date", "Grant Date"),
    ("expiration_date", "Expiration Date"),
)
TRACKED_KEYS = ("Certificate Hash", "Certificate Number")

DETAIL_KEYS = {
    "transaction_hash": "Transaction_Hash",
    "certificate_hash": "Certificate_Hash",
    "certificate_number": "Certificate_Number",
    "name": "Name",
    "course_name": "Course_Name",
    "grant_date": "Grant_Date",
    "expiration_date": "Expiration_Date",
}


@dataclass(frozen=True)
class ProofRecord:
    transaction_hash: str
    certificate_hash: str
    certificate_number: str
    name: str
    course_name: str
    grant_date: str
    expiration_date: str

    def to_details(self) -> dict:
        return {DETAIL_KEYS[f.name]: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class DecodedProof:
    certificate_hash: str = ""
    certificate_number: str = ""

    @property
    def found(self) -> bool:
        return self.certificate_hash != ""


def encode(proof: ProofRecord) -> str:
    lines = []
    for attr, label in PROOF_KEYS:
        value = str(getattr(proof, attr))
        if "\n" in value or "\r" in value:
            raise InvalidInputError(f"{label} must not contain line breaks", field=attr)
        if "," in value:
            if label in TRACKED_KEYS:
                raise InvalidInputError(f"{label} must not contain commas", field=attr)
            logger.warning("%s contains a comma; it will be dropped when the proof is decoded", label)
        lines.append(f"{label}: {value}")
    return "\n".join(lines)


def _pairs(text: str):
    for line in text.split("\n"):
        parts = line.strip().split(":")
        if len(parts) != 2:
            continue
        yield parts[0].strip(), parts[1].strip().replace(",", "")


def decode(text: str) -> DecodedProof:
    found = {label: "" for label in TRACKED_KEYS}
    for key, value in _pairs(text or ""):
        if key in found:
            found[key] = value
    return DecodedProof(found["Certificate Hash"], found["Certificate Number"])


def decode_record(text: str) -> ProofRecord:
    by_label = {label: attr for attr, label in PROOF_KEYS}
    values = {attr: "" for attr, _ in PROOF_KEYS}
    for key, value in _pairs(text or ""):
        if key in by_label:
            values[by_label[key]] = value
    # older payloads quoted the transaction hash
    values["transaction_hash"] = values["transaction_hash"].strip('"')
    return ProofRecord(**values)
