"""
Local content store for uploaded artifacts.

Layout: <root>/<slot folder>/<epoch ms>-<random><ext>, where root is
UPLOAD_DIR/jobs in the running services.
"""
import logging
import os
import random
import time
from dataclasses import dataclass
from typing import BinaryIO

from ..errors import ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

SLOT_FOLDERS = {
    "BUCKSLIP_1": "buckslips",
    "BUCKSLIP_2": "buckslips",
    "BUCKSLIP_3": "buckslips",
    "LETTER_REPLY": "letters",
    "OUTER_ENVELOPE": "envelopes",
    "MAIL_LIST": "maillists",
    "PROOF": "proofs",
}
DEFAULT_FOLDER = "other"


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


@dataclass
class StoredObject:
    filename: str
    path: str
    size: int


class LocalFileStorage:
    """Writes, streams and deletes upload bytes on the local filesystem."""

    def __init__(self, upload_dir: str, max_file_size: int):
        self.upload_dir = upload_dir
        self.max_file_size = max_file_size

    def ensure_directories(self) -> None:
        ensure_dir(self.upload_dir)
        for folder in sorted(set(SLOT_FOLDERS.values()) | {DEFAULT_FOLDER}):
            ensure_dir(os.path.join(self.upload_dir, folder))

    def folder_for(self, slot: str) -> str:
        return os.path.join(self.upload_dir, SLOT_FOLDERS.get(slot.upper(), DEFAULT_FOLDER))

    @staticmethod
    def generate_name(original_name: str) -> str:
        """Collision-resistant storage name: timestamp plus random suffix, original extension kept."""
        ext = os.path.splitext(original_name)[1].lower()
        unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 999_999_999)}"
        return f"{unique_suffix}{ext}"

    def save(self, stream: BinaryIO, slot: str, original_name: str) -> StoredObject:
        """
        Copy a stream into the store.

        Raises ValidationError (and removes the partial file) when the
        stream exceeds max_file_size.
        """
        folder = self.folder_for(slot)
        ensure_dir(folder)

        filename = self.generate_name(original_name)
        path = os.path.join(folder, filename)

        size = 0
        with open(path, "wb") as out:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_file_size:
                    break
                out.write(chunk)

        if size > self.max_file_size:
            os.remove(path)
            raise ValidationError(f"File exceeds maximum size of {self.max_file_size} bytes")

        logger.info(f"Saved file slot={slot} name={original_name} as {path} ({size} bytes)")
        return StoredObject(filename=filename, path=path, size=size)

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def open(self, path: str) -> BinaryIO:
        return open(path, "rb")

    def delete(self, path: str) -> bool:
        """Remove stored bytes. Returns False when they were already gone."""
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        return True
