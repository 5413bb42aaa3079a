import pytest

from ledger import ChainLedger, InMemoryLedger
from settings import Settings


@pytest.fixture
def fields():
    return {
        "Certificate_Number": "123",
        "name": "Alice",
        "courseName": "Go101",
        "Grant_Date": "2024-01-01",
        "Expiration_Date": "2025-01-01",
    }


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ledger_path=str(tmp_path / "ledger.json"),
        upload_dir=str(tmp_path / "uploads"),
        output_dir=str(tmp_path / "out"),
        explorer_tx_url="https://explorer.test/tx/",
    )


@pytest.fixture
def chain_ledger(tmp_path):
    return ChainLedger(tmp_path / "chain.json", pow_prefix="0")


class StubLedger:
    """Answers every lookup with a fixed record and remembers what was asked."""

    def __init__(self, issued=True, certificate_number=123, error=None):
        self.record = (issued, certificate_number)
        self.error = error
        self.lookups = []

    def verify_certificate(self, fingerprint):
        self.lookups.append(fingerprint)
        if self.error is not None:
            raise self.error
        return self.record

    def issue_certificate(self, certificate_number, fingerprint):
        raise AssertionError("stub ledger is read-only")


@pytest.fixture
def stub_ledger():
    return StubLedger
