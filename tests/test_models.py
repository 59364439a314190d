import unittest

from uss_storage.models import Object, ObjectMode


class ObjectTests(unittest.TestCase):
    def test_directory_rejects_file_attributes(self):
        for field_name, value in (("content_length", 1), ("etag", "abc"), ("content_type", "text/plain")):
            with self.subTest(field=field_name):
                with self.assertRaises(ValueError):
                    Object(id="a/", path="a/", mode=ObjectMode.DIR, **{field_name: value})

    def test_directory_accepts_metadata(self):
        obj = Object(id="a/", path="a/", mode=ObjectMode.DIR, user_metadata={"owner": "me"})

        self.assertTrue(obj.is_dir)
        self.assertEqual({"owner": "me"}, obj.user_metadata)

    def test_file_is_not_dir(self):
        obj = Object(id="a.txt", path="a.txt", mode=ObjectMode.READ, content_length=3)

        self.assertFalse(obj.is_dir)


if __name__ == "__main__":
    unittest.main()
