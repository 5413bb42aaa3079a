import io
from pathlib import Path

import pytest

from cert_errors import LedgerError
from certificate_verifier import INVALID_MESSAGE, VerificationResult
from server import create_app


@pytest.fixture
def app(settings, ledger):
    app = create_app(settings, ledger)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def test_index_redirects_to_docs(client):
    resp = client.get("/")
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/api-docs/")


def test_docs_page_is_served(client):
    assert client.get("/api-docs/").status_code == 200


def test_openapi_spec_documents_both_endpoints(client):
    resp = client.get("/api-docs/apispec.json")
    assert resp.status_code == 200
    spec = resp.get_json()
    assert spec["openapi"].startswith("3.")
    assert set(spec["components"]["schemas"]) >= {"Certificate", "DetailsQR"}

    issue = spec["paths"]["/api/issue"]["post"]
    assert issue["requestBody"]["content"]["application/json"]["schema"]["$ref"] == "#/components/schemas/Certificate"
    assert {"200", "400"} <= {str(code) for code in issue["responses"]}

    verify = spec["paths"]["/api/verify"]["post"]
    form = verify["requestBody"]["content"]["multipart/form-data"]["schema"]
    assert form["properties"]["pdfFile"]["format"] == "binary"
    assert {"200", "400"} <= {str(code) for code in verify["responses"]}


def test_issue(client, fields):
    resp = client.post("/api/issue", json=fields)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["qrCodeImage"].startswith("data:image/png;base64,")
    assert body["ledgerLink"].startswith("https://explorer.test/tx/0x")
    assert body["details"]["Certificate_Number"] == "123"
    assert body["details"]["Course_Name"] == "Go101"


def test_issue_twice_is_declined(client, fields):
    assert client.post("/api/issue", json=fields).status_code == 200
    resp = client.post("/api/issue", json=fields)
    assert resp.status_code == 400
    assert resp.get_json() == {"message": "Certificate already issued"}


def test_issue_missing_field(client, fields):
    del fields["Grant_Date"]
    resp = client.post("/api/issue", json=fields)
    assert resp.status_code == 400
    assert "Grant_Date" in resp.get_json()["message"]


def test_issue_requires_json(client):
    resp = client.post("/api/issue", data="Certificate_Number=123")
    assert resp.status_code == 400


def test_issue_non_numeric_certificate_number(client, fields):
    resp = client.post("/api/issue", json=dict(fields, Certificate_Number="CERT-ABC"))
    assert resp.status_code == 400
    message = resp.get_json()["message"]
    assert "Certificate_Number" in message and "CERT-ABC" in message


def test_issue_ledger_failure(settings, fields, stub_ledger):
    client = create_app(settings, stub_ledger(error=LedgerError("rpc down"))).test_client()
    resp = client.post("/api/issue", json=fields)
    assert resp.status_code == 502


def test_issue_ledger_connection_error(settings, fields, stub_ledger):
    client = create_app(settings, stub_ledger(error=ConnectionError("reset by peer"))).test_client()
    resp = client.post("/api/issue", json=fields)
    assert resp.status_code == 502
    assert resp.get_json() == {"message": "Ledger unavailable, certificate not issued"}


def test_verify_requires_file(client):
    resp = client.post("/api/verify", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json() == {"message": "No file uploaded"}


def test_verify_rejects_other_types(client):
    data = {"pdfFile": (io.BytesIO(b"hello"), "cert.txt", "text/plain")}
    resp = client.post("/api/verify", data=data, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert "Invalid file type" in resp.get_json()["message"]


def test_verify_unreadable_pdf_is_not_valid(client, settings):
    data = {"pdfFile": (io.BytesIO(b"%PDF-1.4 nothing here"), "cert.pdf", "application/pdf")}
    resp = client.post("/api/verify", data=data, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json() == {"message": INVALID_MESSAGE, "detailsQR": None}


def test_verify_removes_upload(client, settings, monkeypatch):
    seen = []

    def fake_verify(path, ledger):
        seen.append(path)
        assert path.exists()
        return VerificationResult(True, "Verified: Certificate is valid", "Certificate Hash: abc")

    monkeypatch.setattr("server.verify_document", fake_verify)
    data = {"pdfFile": (io.BytesIO(b"%PDF-1.4"), "../../etc/cert.pdf", "application/pdf")}
    resp = client.post("/api/verify", data=data, content_type="multipart/form-data")

    assert resp.status_code == 200
    assert resp.get_json()["detailsQR"] == "Certificate Hash: abc"
    assert seen[0].parent.resolve() == Path(settings.upload_dir).resolve()
    assert seen[0].name.endswith("_etc_cert.pdf")
    assert not seen[0].exists()


def test_issue_then_verify_pdf(client, fields, tmp_path):
    pytest.importorskip("pyzbar.pyzbar", reason="zbar shared library not installed")
    from certificate_maker import create_certificate_pdf
    from proof_codec import ProofRecord, decode_record, encode

    body = client.post("/api/issue", json=fields).get_json()
    details = body["details"]
    record = ProofRecord(
        transaction_hash=details["Transaction_Hash"],
        certificate_hash=details["Certificate_Hash"],
        certificate_number=details["Certificate_Number"],
        name=details["Name"],
        course_name=details["Course_Name"],
        grant_date=details["Grant_Date"],
        expiration_date=details["Expiration_Date"],
    )
    pdf = create_certificate_pdf(tmp_path / "cert.pdf", record, encode(record))

    with open(pdf, "rb") as f:
        data = {"pdfFile": (f, "cert.pdf", "application/pdf")}
        resp = client.post("/api/verify", data=data, content_type="multipart/form-data")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["message"] == "Verified: Certificate is valid"
    assert decode_record(body["detailsQR"]) == record
