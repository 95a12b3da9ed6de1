"""
Durable storage for policy parameter documents.

Every store exposes the same two calls:

  save(document) -> revision     raises StorageError
  load()         -> document     raises NotFoundError | StorageError

Documents are plain JSON-compatible dicts (see parameters.py); stores
never interpret them.
"""

import hashlib
import json
import os

from errors import StorageError, NotFoundError
from config import STORAGE_DIR, STORAGE_VERSION, REMOTE_FILENAME, REMOTE_MESSAGE


def encode_document(document: dict) -> str:
    return json.dumps(document, allow_nan=False)


def decode_document(text: str) -> dict:
    try:
        doc = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise StorageError(f"stored document is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise StorageError("stored document is not a JSON object")
    return doc


def content_revision(text: str) -> str:
    """Content hash used as the revision id of locally stored documents."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


class PolicyStore:
    """Interface for parameter persistence."""

    def save(self, document: dict) -> str:
        raise NotImplementedError

    def load(self) -> dict:
        raise NotImplementedError


# ──────────────────────────────────────────────────────────────────────────────
# Local file store
# ──────────────────────────────────────────────────────────────────────────────

class LocalPolicyStore(PolicyStore):
    """One JSON file per version tag inside a directory."""

    def __init__(self, directory: str = STORAGE_DIR, version: str = STORAGE_VERSION):
        self.directory = directory
        self.version   = version

    @property
    def path(self) -> str:
        return os.path.join(self.directory, f"evoarena_policy_{self.version}.json")

    def save(self, document: dict) -> str:
        try:
            text = encode_document(document)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"document is not serialisable: {exc}") from exc
        tmp = self.path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"could not write {self.path}: {exc}") from exc
        return content_revision(text)

    def load(self) -> dict:
        if not os.path.isfile(self.path):
            raise NotFoundError(f"no saved policy at {self.path}")
        try:
            with open(self.path, encoding="utf-8") as f:
                text = f.read()
        except OSError as exc:
            raise StorageError(f"could not read {self.path}: {exc}") from exc
        return decode_document(text)


class MemoryPolicyStore(PolicyStore):
    """In-process store keyed by version tag; keeps the encoded text."""

    def __init__(self, version: str = STORAGE_VERSION):
        self.version = version
        self._data   = {}

    def save(self, document: dict) -> str:
        try:
            text = encode_document(document)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"document is not serialisable: {exc}") from exc
        self._data[self.version] = text
        return content_revision(text)

    def load(self) -> dict:
        if self.version not in self._data:
            raise NotFoundError(f"no saved policy for version {self.version!r}")
        return decode_document(self._data[self.version])


# ──────────────────────────────────────────────────────────────────────────────
# Remote store
# ──────────────────────────────────────────────────────────────────────────────

class RemotePolicyStore(PolicyStore):
    """
    Upserts documents into a version-controlled remote through injected
    transport callables:

      put(payload) -> dict   payload = {filename, content, message};
                             the reply carries the new revision either as
                             "revision" or as {"content": {"sha": ...}}
      get(filename) -> str | None   None when the file does not exist

    Transport exceptions surface as StorageError.
    """

    def __init__(self, put, get, filename: str = REMOTE_FILENAME,
                 message: str = REMOTE_MESSAGE):
        self._put     = put
        self._get     = get
        self.filename = filename
        self.message  = message

    def build_payload(self, document: dict) -> dict:
        try:
            content = encode_document(document)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"document is not serialisable: {exc}") from exc
        return {"filename": self.filename, "content": content, "message": self.message}

    def save(self, document: dict) -> str:
        payload = self.build_payload(document)
        try:
            reply = self._put(payload)
        except Exception as exc:
            raise StorageError(f"remote save failed: {exc}") from exc
        if not isinstance(reply, dict):
            raise StorageError(f"remote save returned {reply!r}")
        revision = reply.get("revision") or (reply.get("content") or {}).get("sha")
        if not revision:
            raise StorageError(f"remote save returned no revision: {reply!r}")
        return revision

    def load(self) -> dict:
        try:
            text = self._get(self.filename)
        except Exception as exc:
            raise StorageError(f"remote load failed: {exc}") from exc
        if text is None:
            raise NotFoundError(f"{self.filename} does not exist remotely")
        return decode_document(text)
