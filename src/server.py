#!/usr/bin/env python3
import logging
import os
import uuid
from pathlib import Path

from flasgger import Swagger
from flask import Flask, jsonify, redirect, request
from flask_cors import CORS
from werkzeug.utils import secure_filename

from cert_errors import AlreadyIssuedError, InvalidInputError, LedgerError
from certificate_maker import issue_certificate
from certificate_verifier import verify_document
from ledger import open_ledger
from settings import configure_logging, load_settings

logger = logging.getLogger(__name__)

ALLOWED_MIMETYPES = {"application/pdf", "image/png", "image/jpeg"}
SUFFIX_BY_MIMETYPE = {"application/pdf": ".pdf", "image/png": ".png", "image/jpeg": ".jpg"}

DOCS_ROUTE = "/api-docs/"
API_TEMPLATE = {
    "info": {
        "title": "Certificate API",
        "version": "1.0.0",
        "description": "Issue certificates on the ledger and verify certificate PDFs against it",
    },
    "tags": [
        {"name": "Issuer", "description": "APIs for issuing certificates"},
        {"name": "Verifier", "description": "APIs for verifying certificates"},
    ],
    "components": {
        "schemas": {
            "Certificate": {
                "type": "object",
                "properties": {
                    "Certificate_Number": {"type": "string"},
                    "name": {"type": "string"},
                    "courseName": {"type": "string"},
                    "Grant_Date": {"type": "string"},
                    "Expiration_Date": {"type": "string"},
                },
                "required": ["Certificate_Number", "name", "courseName", "Grant_Date", "Expiration_Date"],
            },
            "DetailsQR": {
                "type": "object",
                "properties": {
                    "Transaction_Hash": {"type": "string"},
                    "Certificate_Hash": {"type": "string"},
                    "Certificate_Number": {"type": "string"},
                    "Name": {"type": "string"},
                    "Course_Name": {"type": "string"},
                    "Grant_Date": {"type": "string"},
                    "Expiration_Date": {"type": "string"},
                },
            },
            "Message": {
                "type": "object",
                "properties": {"message": {"type": "string"}},
            },
        },
    },
}


def _docs_config() -> dict:
    return {
        **Swagger.DEFAULT_CONFIG,
        "specs": [{
            "endpoint": "apispec",
            "route": DOCS_ROUTE + "apispec.json",
            "rule_filter": lambda rule: rule.rule.startswith("/api/"),
            "model_filter": lambda tag: True,
        }],
        "specs_route": DOCS_ROUTE,
        "openapi": "3.0.2",
        "uiversion": 3,
    }


def create_app(settings=None, ledger=None) -> Flask:
    settings = settings or load_settings()
    ledger = ledger if ledger is not None else open_ledger(settings)
    upload_dir = Path(settings.upload_dir)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_mb * 1024 * 1024
    app.config["CERT_SETTINGS"] = settings
    app.config["CERT_LEDGER"] = ledger
    CORS(app)
    app.config["SWAGGER"] = {"title": API_TEMPLATE["info"]["title"], "openapi": "3.0.2", "uiversion": 3}
    Swagger(app, template=API_TEMPLATE, config=_docs_config())

    @app.get("/")
    def index():
        return redirect(DOCS_ROUTE)

    @app.post("/api/issue")
    def issue():
        """Issue a certificate
        ---
        tags:
          - Issuer
        requestBody:
          required: true
          content:
            application/json:
              schema:
                $ref: '#/components/schemas/Certificate'
        responses:
          200:
            description: Certificate issued successfully
            content:
              application/json:
                schema:
                  type: object
                  properties:
                    qrCodeImage:
                      type: string
                      description: Base64-encoded PNG image of the QR code, as a data URL
                    ledgerLink:
                      type: string
                      description: Explorer link for the ledger transaction
                    details:
                      $ref: '#/components/schemas/DetailsQR'
          400:
            description: Certificate already issued or invalid certificate fields
            content:
              application/json:
                schema:
                  $ref: '#/components/schemas/Message'
          502:
            description: Ledger unavailable
            content:
              application/json:
                schema:
                  $ref: '#/components/schemas/Message'
        """
        payload = request.get_json(silent=True)
        if payload is None:
            return jsonify({"message": "Request body must be JSON"}), 400
        try:
            result = issue_certificate(payload, ledger, settings)
        except (InvalidInputError, AlreadyIssuedError) as e:
            return jsonify({"message": str(e)}), 400
        except LedgerError as e:
            logger.error("Ledger write failed: %s", e)
            return jsonify({"message": "Ledger unavailable, certificate not issued"}), 502
        return jsonify(result.to_response()), 200

    @app.post("/api/verify")
    def verify():
        """Verify a certificate
        ---
        tags:
          - Verifier
        requestBody:
          required: true
          content:
            multipart/form-data:
              schema:
                type: object
                properties:
                  pdfFile:
                    type: string
                    format: binary
                    description: Certificate PDF (or PNG/JPEG of its QR code) to verify
                required:
                  - pdfFile
        responses:
          200:
            description: Certificate verified successfully
            content:
              application/json:
                schema:
                  type: object
                  properties:
                    message:
                      type: string
                    detailsQR:
                      type: string
                      nullable: true
                      description: Raw proof text read from the QR code
          400:
            description: Certificate is not valid, or no usable file was uploaded
            content:
              application/json:
                schema:
                  type: object
                  properties:
                    message:
                      type: string
                    detailsQR:
                      type: string
                      nullable: true
        """
        upload = request.files.get("pdfFile")
        if upload is None or not upload.filename:
            return jsonify({"message": "No file uploaded"}), 400
        if upload.mimetype not in ALLOWED_MIMETYPES:
            return jsonify({"message": "Invalid file type. Only PDF, PNG and JPEG files are allowed."}), 400

        upload_dir.mkdir(parents=True, exist_ok=True)
        stem = Path(secure_filename(upload.filename)).stem or "upload"
        path = upload_dir / f"{uuid.uuid4().hex}_{stem}{SUFFIX_BY_MIMETYPE[upload.mimetype]}"
        upload.save(path)
        try:
            result = verify_document(path, ledger)
        finally:
            try:
                os.remove(path)
            except OSError as e:
                logger.warning("Could not remove upload %s: %s", path, e)
        return jsonify(result.to_response()), 200 if result.valid else 400

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"message": f"File exceeds {settings.max_upload_mb} MB"}), 413

    return app


def main():
    settings = load_settings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    logger.info("Server listening on http://%s:%s", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
