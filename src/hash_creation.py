#!/usr/bin/env python3
"""
hash_creation.py

Builds the certificate fingerprint stored on the ledger:
 - hashes each certificate field value (sha256, exact string, no normalisation)
 - serialises the per-field hashes as compact JSON in FIELD_ORDER
 - hashes that serialisation into the combined fingerprint

Usage:
    python hash_creation.py --certificate-number 123 --name Alice --course-name Go101 \
        --grant-date 2024-01-01 --expiration-date 2025-01-01
    python hash_creation.py --json fields.json
"""

import argparse
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path

from cert_errors import InvalidInputError

# Changing the order or the serialisation changes every fingerprint; bump the scheme.
FINGERPRINT_SCHEME = "v1"
FIELD_ORDER = ("Certificate_Number", "name", "courseName", "Grant_Date", "Expiration_Date")

# ---------- Helpers ----------
def calculate_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()

def _coerce_field(key: str, value) -> str:
    if value is None:
        raise InvalidInputError(f"Missing required field: {key}", field=key)
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidInputError(f"Field {key} must be a string, got {type(value).__name__}", field=key)
    text = value if isinstance(value, str) else str(value)
    if not text.strip():
        raise InvalidInputError(f"Missing required field: {key}", field=key)
    return text

@dataclass(frozen=True)
class CertificateFields:
    certificate_number: str
    name: str
    course_name: str
    grant_date: str
    expiration_date: str

    @classmethod
    def from_mapping(cls, data) -> "CertificateFields":
        if not isinstance(data, dict):
            raise InvalidInputError("Certificate fields must be a JSON object")
        values = [_coerce_field(key, data.get(key)) for key in FIELD_ORDER]
        return cls(*values)

    def as_mapping(self) -> dict:
        return dict(zip(FIELD_ORDER, (
            self.certificate_number,
            self.name,
            self.course_name,
            self.grant_date,
            self.expiration_date,
        )))

def _as_fields(fields) -> CertificateFields:
    if isinstance(fields, CertificateFields):
        return fields
    return CertificateFields.from_mapping(fields)

# ---------- Fingerprint ----------
def build_field_hashes(fields) -> dict:
    mapping = _as_fields(fields).as_mapping()
    return {key: calculate_hash(mapping[key]) for key in FIELD_ORDER}

def serialize_field_hashes(hashes: dict) -> str:
    # same bytes as JSON.stringify on an object built in FIELD_ORDER
    ordered = {key: hashes[key] for key in FIELD_ORDER}
    return json.dumps(ordered, ensure_ascii=False, separators=(",", ":"))

def build_fingerprint(fields) -> str:
    return calculate_hash(serialize_field_hashes(build_field_hashes(fields)))

# ---------- CLI ----------
def main(argv=None):
    p = argparse.ArgumentParser(description="Compute the ledger fingerprint of a certificate")
    p.add_argument("--json", help="JSON file holding the five certificate fields", default=None)
    p.add_argument("--certificate-number")
    p.add_argument("--name")
    p.add_argument("--course-name")
    p.add_argument("--grant-date")
    p.add_argument("--expiration-date")
    args = p.parse_args(argv)

    if args.json:
        data = json.loads(Path(args.json).read_text(encoding="utf-8"))
    else:
        data = {
            "Certificate_Number": args.certificate_number,
            "name": args.name,
            "courseName": args.course_name,
            "Grant_Date": args.grant_date,
            "Expiration_Date": args.expiration_date,
        }

    try:
        hashes = build_field_hashes(data)
    except InvalidInputError as e:
        print("ERROR:", e)
        return 2

    print(f"=== Field hashes (scheme {FINGERPRINT_SCHEME}) ===")
    for key in FIELD_ORDER:
        print(f"{key}: {hashes[key]}")
    print()
    print("Fingerprint (sha256):", calculate_hash(serialize_field_hashes(hashes)))
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
