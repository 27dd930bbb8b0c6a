import unittest
from unittest.mock import Mock

from pastebin_data_model.data_models import ErrorKind, PasteModel
from pastebin_db.api.paste_api import PasteApi
from pastebin_db.config import Settings
from pastebin_db.engine.paste_service import PasteService
from pastebin_db.engine.storage_engine import PasteStorageEngine
from pastebin_exception_model.exception import CorruptRecordError, StorageFailureException


class TestPasteApi(unittest.TestCase):
    def setUp(self):
        self.engine = PasteStorageEngine.in_memory(Settings(bucket_size=8192))
        self.api = PasteApi(PasteService(self.engine))

    def tearDown(self):
        self.engine.close()

    def test_create_and_get(self):
        created = self.api.create_paste("hello")
        self.assertTrue(created.ok)
        self.assertEqual(created.value, 0)

        fetched = self.api.get_paste(created.value)
        self.assertTrue(fetched.ok)
        self.assertIsInstance(fetched.value, PasteModel)
        self.assertEqual(fetched.value.content, "hello")

    def test_invalid_input_reported_with_reason(self):
        response = self.api.create_paste("   ")
        self.assertFalse(response.ok)
        self.assertIsNone(response.value)
        self.assertEqual(response.error.kind, ErrorKind.INVALID_INPUT)
        self.assertEqual(response.error.reason, "empty")

    def test_oversize_reported(self):
        response = self.api.create_paste("z" * 4096)
        self.assertFalse(response.ok)
        self.assertEqual(response.error.kind, ErrorKind.OVERSIZE)
        self.assertEqual(response.error.reason, "oversize")

    def test_unencodable_content_reported_as_invalid_input(self):
        paste_id = self.api.create_paste("fine").value
        for response in (self.api.create_paste("abc\ud800"), self.api.update_paste(paste_id, "\udfff")):
            with self.subTest(response=response):
                self.assertFalse(response.ok)
                self.assertEqual(response.error.kind, ErrorKind.INVALID_INPUT)
                self.assertEqual(response.error.reason, "encoding")
        self.assertEqual(self.api.get_paste(paste_id).value.content, "fine")

    def test_not_found_carries_id(self):
        for response in (self.api.get_paste(5), self.api.update_paste(5, "x"), self.api.delete_paste(5)):
            with self.subTest(response=response):
                self.assertFalse(response.ok)
                self.assertEqual(response.error.kind, ErrorKind.NOT_FOUND)
                self.assertEqual(response.error.paste_id, 5)

    def test_list_search_update_delete(self):
        for text in ("alpha", "beta", "alphabet"):
            self.api.create_paste(text)

        listed = self.api.list_pastes(1, 2)
        self.assertEqual([p.id for p in listed.value], [0, 1])
        self.assertEqual(self.api.list_pastes(0, 2).value, [])

        found = self.api.search_pastes("alpha")
        self.assertEqual([p.content for p in found.value], ["alpha", "alphabet"])

        updated = self.api.update_paste(1, "gamma")
        self.assertEqual(updated.value.content, "gamma")

        deleted = self.api.delete_paste(1)
        self.assertTrue(deleted.ok)
        self.assertEqual(deleted.value.content, "gamma")
        self.assertFalse(self.api.get_paste(1).ok)

    def test_storage_errors_become_values(self):
        service = Mock(spec=PasteService)
        service.get_paste.side_effect = CorruptRecordError("Slot checksum mismatch", paste_id=3, offset=64)
        service.create_paste.side_effect = StorageFailureException("disk full")
        api = PasteApi(service)

        corrupt = api.get_paste(3)
        self.assertEqual(corrupt.error.kind, ErrorKind.CORRUPT_RECORD)
        self.assertEqual(corrupt.error.paste_id, 3)
        self.assertIn("offset=64", corrupt.error.message)

        failed = api.create_paste("x")
        self.assertEqual(failed.error.kind, ErrorKind.STORAGE_FAILURE)
        self.assertEqual(failed.error.message, "disk full")


if __name__ == '__main__':
    unittest.main()
