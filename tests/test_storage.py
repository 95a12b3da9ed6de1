import json
import os
import pathlib
import sys
import tempfile
import unittest


ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from errors import NotFoundError, StorageError
from storage import (LocalPolicyStore, MemoryPolicyStore, RemotePolicyStore,
                     content_revision, decode_document, encode_document)


DOC = {"W1": [[0.5]], "b1": [0.0], "bestFitness": None, "sigma": 0.1,
       "state": {"upgrades": {"damage": 6}, "gold": 12}}


class _FakeRemote:
    """Keeps files in a dict, replies the way a contents API does."""

    def __init__(self):
        self.files = {}
        self.payloads = []

    def put(self, payload):
        self.payloads.append(payload)
        self.files[payload["filename"]] = payload["content"]
        return {"content": {"sha": content_revision(payload["content"])}}

    def get(self, filename):
        return self.files.get(filename)


class TestEncoding(unittest.TestCase):
    def test_decode_rejects_garbage(self) -> None:
        with self.assertRaises(StorageError):
            decode_document("{oops")
        with self.assertRaises(StorageError):
            decode_document("[1, 2]")

    def test_encode_is_strict_json(self) -> None:
        with self.assertRaises(ValueError):
            encode_document({"x": float("nan")})
        self.assertEqual(json.loads(encode_document(DOC)), DOC)


class TestLocalStore(unittest.TestCase):
    def test_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalPolicyStore(os.path.join(tmp, "nested"), "v1")
            revision = store.save(DOC)
            self.assertEqual(store.load(), DOC)
            self.assertEqual(revision, content_revision(encode_document(DOC)))
            self.assertFalse(os.path.exists(store.path + ".tmp"))

    def test_versions_are_separate(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            LocalPolicyStore(tmp, "v1").save(DOC)
            with self.assertRaises(NotFoundError):
                LocalPolicyStore(tmp, "v2").load()

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(NotFoundError):
                LocalPolicyStore(tmp).load()

    def test_unserialisable_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = LocalPolicyStore(tmp)
            with self.assertRaises(StorageError):
                store.save({"sigma": float("inf")})
            self.assertFalse(os.path.exists(store.path))

    def test_unwritable_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            blocker = os.path.join(tmp, "file")
            with open(blocker, "w") as f:
                f.write("x")
            with self.assertRaises(StorageError):
                LocalPolicyStore(os.path.join(blocker, "sub")).save(DOC)


class TestMemoryStore(unittest.TestCase):
    def test_round_trip_is_a_copy(self) -> None:
        store = MemoryPolicyStore()
        with self.assertRaises(NotFoundError):
            store.load()
        store.save(DOC)
        loaded = store.load()
        self.assertEqual(loaded, DOC)
        loaded["sigma"] = 9.0
        self.assertEqual(store.load()["sigma"], 0.1)


class TestRemoteStore(unittest.TestCase):
    def test_round_trip(self) -> None:
        remote = _FakeRemote()
        store = RemotePolicyStore(remote.put, remote.get, filename="ai.json", message="save ai")
        revision = store.save(DOC)
        self.assertEqual(revision, content_revision(encode_document(DOC)))
        self.assertEqual(remote.payloads[0]["filename"], "ai.json")
        self.assertEqual(remote.payloads[0]["message"], "save ai")
        self.assertEqual(store.load(), DOC)

    def test_revision_field_is_accepted(self) -> None:
        store = RemotePolicyStore(lambda payload: {"revision": "abc"}, lambda name: None)
        self.assertEqual(store.save(DOC), "abc")

    def test_missing_remote_file(self) -> None:
        store = RemotePolicyStore(lambda payload: {}, lambda name: None)
        with self.assertRaises(NotFoundError):
            store.load()

    def test_transport_failures_become_storage_errors(self) -> None:
        def broken(*args):
            raise ConnectionError("offline")

        store = RemotePolicyStore(broken, broken)
        with self.assertRaises(StorageError):
            store.save(DOC)
        with self.assertRaises(StorageError):
            store.load()

    def test_reply_without_revision(self) -> None:
        store = RemotePolicyStore(lambda payload: {"content": {}}, lambda name: None)
        with self.assertRaises(StorageError):
            store.save(DOC)
        store = RemotePolicyStore(lambda payload: "ok", lambda name: None)
        with self.assertRaises(StorageError):
            store.save(DOC)


if __name__ == "__main__":
    unittest.main()
