"""
Ledger Backups
Dump every store to a flat text file, zip the dumps with the raw store files,
ship the archive to S3-compatible storage and clean up after ourselves.
"""

import logging
import time
import zipfile
from pathlib import Path

import boto3

from economy.ledger import LedgerExport, LedgerStore

log = logging.getLogger("slots.backup")

# ─── Constants ────────────────────────────────────────────────────────────────

ARCHIVE_ROOT   = "db/"
ARCHIVE_SUFFIX = "_backup.zip"
DUMP_SUFFIX    = ".txt"


class BackupError(Exception):
    pass


# ══════════════════════════════════════════════════════════════════════════════
# DUMP FORMAT
# ══════════════════════════════════════════════════════════════════════════════

def format_dump(export: LedgerExport) -> str:
    lines = [export.identifier, export.tag]
    lines.extend(f"{k},{v}" for k, v in export.pairs)
    return "".join(line + "\n" for line in lines)


def parse_dump(text: str) -> LedgerExport:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    if len(lines) < 2:
        raise ValueError("dump is missing its identifier/tag header")

    export = LedgerExport(lines[0], lines[1])
    for n, line in enumerate(lines[2:], start=3):
        key, sep, value = line.partition(",")
        if not sep:
            raise ValueError(f"line {n}: expected 'key,value', got {line!r}")
        export.pairs.append((key, value))
    return export


# ══════════════════════════════════════════════════════════════════════════════
# OBJECT STORAGE
# ══════════════════════════════════════════════════════════════════════════════

class S3Uploader:
    def __init__(self, bucket: str, region: str, endpoint: str,
                 access_key: str, secret_key: str, client=None):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            region_name           = region,
            endpoint_url          = endpoint,
            aws_access_key_id     = access_key,
            aws_secret_access_key = secret_key,
        )

    def upload(self, key: str, data: bytes):
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data)


# ══════════════════════════════════════════════════════════════════════════════
# EXPORTER
# ══════════════════════════════════════════════════════════════════════════════

class BackupExporter:
    """
    One backup cycle per `run_once` call. Stores are only read through
    `LedgerStore.export`, so a cycle may miss a pull that lands mid-export.
    """

    def __init__(self, stores: list[LedgerStore], uploader, work_dir, db_root,
                 clock=time.time, include_raw: bool = True):
        self.stores      = stores
        self.uploader    = uploader
        self.work_dir    = Path(work_dir)
        self.db_root     = Path(db_root)
        self.clock       = clock
        self.include_raw = include_raw

    def dump_path(self, store: LedgerStore) -> Path:
        return self.work_dir / f"{store.tag}{DUMP_SUFFIX}"

    def write_dump(self, store: LedgerStore) -> Path:
        path = self.dump_path(store)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(format_dump(store.export()))
            f.flush()
        return path

    def archive_path(self, stamp: int) -> Path:
        return self.work_dir / f"{stamp}{ARCHIVE_SUFFIX}"

    def _is_backup_output(self, path: Path, outputs: list[Path]) -> bool:
        """True for this cycle's dumps/archive, or anything in a work dir nested under the ledger root."""
        real = path.resolve()
        if real in {p.resolve() for p in outputs}:
            return True
        work = self.work_dir.resolve()
        return work != self.db_root.resolve() and real.is_relative_to(work)

    def build_archive(self, dumps: list[Path], stamp: int) -> Path:
        archive = self.archive_path(stamp)
        with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(ARCHIVE_ROOT, "")
            for dump in dumps:
                zf.write(dump, ARCHIVE_ROOT + dump.name)
            if self.include_raw:
                for path in sorted(self.db_root.rglob("*")):
                    # in-flight flushes from a concurrent pull
                    if path.suffix == ".tmp" or self._is_backup_output(path, [*dumps, archive]):
                        continue
                    name = ARCHIVE_ROOT + path.relative_to(self.db_root).as_posix()
                    if path.is_dir():
                        zf.writestr(name + "/", "")
                    elif path.is_file():
                        zf.write(path, name)
        return archive

    def run_once(self) -> str:
        stamp = int(self.clock())
        log.info("backup: running task!")
        self.work_dir.mkdir(parents=True, exist_ok=True)

        dumps   = [self.dump_path(store) for store in self.stores]
        archive = self.archive_path(stamp)
        try:
            log.debug("backup: exporting ledger stores")
            for store in self.stores:
                self.write_dump(store)

            log.debug("backup: compressing")
            self.build_archive(dumps, stamp)

            log.debug("backup: uploading %s", archive.name)
            self.uploader.upload(archive.name, archive.read_bytes())
        except Exception as e:
            raise BackupError(f"backup {stamp} failed: {e}") from e
        finally:
            for path in [*dumps, archive]:
                path.unlink(missing_ok=True)

        log.info("backup: task finished! uploaded %s", archive.name)
        return archive.name
