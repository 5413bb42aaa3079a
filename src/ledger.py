#!/usr/bin/env python3
import argparse
import hashlib
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, NamedTuple

from cert_errors import AlreadyIssuedError, InvalidInputError, LedgerError
from settings import configure_logging, load_settings

logger = logging.getLogger(__name__)


class LedgerRecord(NamedTuple):
    issued: bool
    certificate_number: int


NOT_ISSUED = LedgerRecord(False, 0)


def sha256(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def parse_certificate_number(value) -> int:
    # stored on chain as an unsigned integer
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        raise InvalidInputError(
            f"Certificate_Number must be a non-negative integer, got {value!r}",
            field="Certificate_Number",
        )
    return int(text)


class Ledger(ABC):
    """Read/write port onto the store that records issued fingerprints.

    Implementations wrap transport and storage failures (connection errors,
    timeouts, I/O) in LedgerError, and reject a certificate number the store
    cannot hold with InvalidInputError.
    """

    @abstractmethod
    def verify_certificate(self, fingerprint: str) -> LedgerRecord:
        ...

    @abstractmethod
    def issue_certificate(self, certificate_number, fingerprint: str) -> str:
        """Record the fingerprint and return the transaction hash."""


class InMemoryLedger(Ledger):
    def __init__(self):
        self._records: Dict[str, LedgerRecord] = {}
        self._lock = threading.Lock()

    def verify_certificate(self, fingerprint: str) -> LedgerRecord:
        return self._records.get(fingerprint, NOT_ISSUED)

    def issue_certificate(self, certificate_number, fingerprint: str) -> str:
        number = parse_certificate_number(certificate_number)
        with self._lock:
            if fingerprint in self._records:
                raise AlreadyIssuedError(fingerprint)
            self._records[fingerprint] = LedgerRecord(True, number)
            seq = len(self._records)
        return "0x" + sha256(f"{number}:{fingerprint}:{seq}")


@dataclass
class Block:
    index: int
    timestamp: float
    data: dict
    prev_hash: str
    nonce: int = 0

    def hash(self) -> str:
        body = {
            "index": self.index,
            "timestamp": self.timestamp,
            "data": self.data,
            "prev_hash": self.prev_hash,
            "nonce": self.nonce,
        }
        return sha256(json.dumps(body, separators=(",", ":"), sort_keys=True))


class ChainLedger(Ledger):
    """Append-only hash-chained block file; every issuance mines one ISSUE block."""

    def __init__(self, path, pow_prefix: str = "00"):
        self.path = Path(path)
        self.pow_prefix = pow_prefix
        self.chain: List[Block] = []
        self._index: Dict[str, int] = {}
        self._lock = threading.Lock()
        if not self.load():
            self._create_genesis()

    def _create_genesis(self):
        genesis = Block(
            index=0,
            timestamp=time.time(),
            data={"type": "GENESIS", "msg": "Certificate Ledger Genesis"},
            prev_hash="0" * 64,
        )
        self.chain = [genesis]
        self.save()

    def last_block(self) -> Block:
        return self.chain[-1]

    def _mine(self, data: dict) -> Block:
        block = Block(
            index=len(self.chain),
            timestamp=time.time(),
            data=data,
            prev_hash=self.last_block().hash(),
        )
        while not block.hash().startswith(self.pow_prefix):
            block.nonce += 1
        return block

    def is_valid(self) -> bool:
        if not self.chain:
            return False
        for i in range(1, len(self.chain)):
            cur = self.chain[i]
            prev = self.chain[i - 1]
            if cur.prev_hash != prev.hash():
                return False
            if not cur.hash().startswith(self.pow_prefix):
                return False
        return True

    def save(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(self.path.name + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump([asdict(b) for b in self.chain], f, indent=2)
            tmp.replace(self.path)
        except OSError as e:
            raise LedgerError(f"Could not write ledger {self.path}: {e}") from e

    def load(self) -> bool:
        if not self.path.exists():
            return False
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            self.chain = [Block(**b) for b in raw]
        except (OSError, ValueError, TypeError) as e:
            raise LedgerError(f"Could not read ledger {self.path}: {e}") from e
        if not self.is_valid():
            raise LedgerError(f"Ledger {self.path} failed its integrity check")
        try:
            self._index = {
                b.data["fingerprint"]: b.index
                for b in self.chain
                if b.data.get("type") == "ISSUE"
            }
        except (KeyError, AttributeError) as e:
            raise LedgerError(f"Malformed block in ledger {self.path}: {e}") from e
        logger.debug("Loaded %d blocks from %s", len(self.chain), self.path)
        return True

    def verify_certificate(self, fingerprint: str) -> LedgerRecord:
        pos = self._index.get(fingerprint)
        if pos is None:
            return NOT_ISSUED
        return LedgerRecord(True, int(self.chain[pos].data["certificate_number"]))

    def issue_certificate(self, certificate_number, fingerprint: str) -> str:
        number = parse_certificate_number(certificate_number)
        with self._lock:
            if fingerprint in self._index:
                raise AlreadyIssuedError(fingerprint)
            block = self._mine({"type": "ISSUE", "fingerprint": fingerprint, "certificate_number": number})
            self.chain.append(block)
            try:
                self.save()
            except LedgerError:
                self.chain.pop()
                raise
            self._index[fingerprint] = block.index
        tx_hash = "0x" + block.hash()
        logger.info("Issued certificate %s in block #%d (%s)", number, block.index, tx_hash)
        return tx_hash


def open_ledger(settings) -> ChainLedger:
    return ChainLedger(settings.ledger_path, pow_prefix=settings.ledger_pow_prefix)


def main(argv=None):
    ap = argparse.ArgumentParser(description="Inspect the local certificate ledger")
    ap.add_argument("--config", default=None)
    sub = ap.add_subparsers(dest="cmd", required=True)
    sub.add_parser("status")
    show = sub.add_parser("show")
    show.add_argument("fingerprint")
    ls = sub.add_parser("list")
    ls.add_argument("-n", type=int, default=5)
    args = ap.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.log_level)
    try:
        bc = open_ledger(settings)
    except LedgerError as e:
        print("ERROR:", e)
        return 10

    if args.cmd == "status":
        print(f"Blocks: {len(bc.chain)} | Valid: {bc.is_valid()}")
    elif args.cmd == "show":
        issued, number = bc.verify_certificate(args.fingerprint)
        print(f"issued={issued} certificate_number={number}")
    else:
        for b in bc.chain[-args.n:]:
            print(f"#{b.index} ts={int(b.timestamp)} prev[:8]={b.prev_hash[:8]} nonce={b.nonce}")
            print(f"   type={b.data.get('type')}")
            if b.data.get("type") == "ISSUE":
                print(f"   certificate_number={b.data['certificate_number']} fingerprint={b.data['fingerprint']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
