class CertificateError(Exception):
    pass


class InvalidInputError(CertificateError):
    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class ExtractionError(CertificateError):
    pass


class LedgerError(CertificateError):
    pass


class AlreadyIssuedError(CertificateError):
    def __init__(self, fingerprint: str, message: str = "Certificate already issued"):
        super().__init__(message)
        self.fingerprint = fingerprint
