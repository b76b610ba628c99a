import io
import os
import sys
import unittest

from PIL import Image

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import AvatarRepository, ProfileRepository, SettingsRepository
from avatar_service import AvatarService


def _png(color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format="PNG")
    return buf.getvalue()


class AvatarServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_avatars.db"
        self.yaml_path = "test_avatars.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.profiles = ProfileRepository(self.db_path)
        self.profiles.create("u1", "Anna Schmidt")
        self.repo = AvatarRepository(self.db_path)
        self.settings = SettingsRepository(self.db_path, self.yaml_path)
        self.now = 1700000000.0
        self.service = AvatarService(
            self.repo, self.profiles, self.settings, clock=lambda: self.now
        )

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_upload_stores_and_links(self) -> None:
        url = self.service.upload("u1", _png(), "image/png")
        self.assertEqual(url, "/avatars/u1/1700000000000.png")
        self.assertEqual(self.profiles.fetch("u1")["avatar_url"], url)
        ctype, data = self.service.fetch("u1/1700000000000.png")
        self.assertEqual(ctype, "image/png")
        self.assertEqual(data, _png())

    def test_new_upload_replaces_old(self) -> None:
        self.service.upload("u1", _png(), "image/png")
        self.now += 5
        self.service.upload("u1", _png((0, 0, 255)), "image/PNG")
        self.assertEqual(self.repo.paths_for_user("u1"), ["u1/1700000005000.png"])

    def test_rejects_bad_uploads(self) -> None:
        with self.assertRaises(ValueError):
            self.service.upload("u1", _png(), "image/gif")
        with self.assertRaises(ValueError):
            self.service.upload("u1", b"", "image/png")
        with self.assertRaises(ValueError) as ctx:
            self.service.upload("u1", b"not an image", "image/jpeg")
        self.assertIn("not a valid image", str(ctx.exception))
        with self.assertRaises(ValueError):
            self.service.upload("nobody", _png(), "image/png")

    def test_delete(self) -> None:
        self.service.upload("u1", _png(), "image/png")
        self.service.delete("u1")
        self.assertIsNone(self.profiles.fetch("u1")["avatar_url"])
        self.assertEqual(self.repo.paths_for_user("u1"), [])
        with self.assertRaises(ValueError):
            self.service.fetch("u1/1700000000000.png")

    def test_path_from_url(self) -> None:
        self.assertEqual(
            AvatarService.path_from_url("https://example.org/avatars/u1/1.png"), "u1/1.png"
        )
        self.assertIsNone(AvatarService.path_from_url("https://example.org/other.png"))
        self.assertIsNone(AvatarService.path_from_url(None))

    def test_default_avatar_cached(self) -> None:
        data = self.service.default_avatar("Anna Schmidt", 2)
        with Image.open(io.BytesIO(data)) as img:
            self.assertEqual(img.size, (64, 64))
        self.assertEqual(self.settings.get_bytes("default_avatar_AS_2"), data)
        self.assertEqual(self.service.default_avatar("Anna Schmidt", 2), data)


if __name__ == "__main__":
    unittest.main()
