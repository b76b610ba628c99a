from __future__ import annotations
import io
import time
import logging
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from db import AvatarRepository, ProfileRepository, SettingsRepository
from tools import DisplayTools

logger = logging.getLogger(__name__)

URL_PREFIX = "/avatars/"


class AvatarService:
    """Store uploaded profile pictures and render initials avatars."""

    ALLOWED_TYPES = {
        "image/jpeg": "jpg",
        "image/jpg": "jpg",
        "image/png": "png",
        "image/webp": "webp",
    }

    def __init__(
        self,
        repo: AvatarRepository,
        profiles: ProfileRepository,
        settings_repo: SettingsRepository | None = None,
        clock=time.time,
    ) -> None:
        self._repo = repo
        self.profiles = profiles
        self.settings = settings_repo
        self.clock = clock

    @staticmethod
    def path_from_url(url: str | None) -> str | None:
        if not url:
            return None
        idx = url.find(URL_PREFIX)
        if idx == -1:
            return None
        return url[idx + len(URL_PREFIX) :]

    def _check_image(self, data: bytes) -> None:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise ValueError("uploaded file is not a valid image")

    def upload(self, user_id: str, data: bytes, content_type: str) -> str:
        """Store ``data`` as the avatar of ``user_id`` and return its URL."""
        ctype = (content_type or "").lower()
        if ctype not in self.ALLOWED_TYPES:
            raise ValueError("only JPG/PNG/WEBP images are allowed")
        if not data:
            raise ValueError("empty upload")
        self._check_image(data)
        profile = self.profiles.fetch(user_id)
        if profile is None:
            raise ValueError("profile not found")
        path = f"{user_id}/{int(self.clock() * 1000)}.{self.ALLOWED_TYPES[ctype]}"
        self._repo.save(path, user_id, ctype, data)
        url = URL_PREFIX + path
        old = self.path_from_url(profile.get("avatar_url"))
        self.profiles.set_avatar_url(user_id, url)
        if old and old != path:
            self._remove_quietly(old)
        logger.info("avatar stored for %s at %s", user_id, path)
        return url

    def _remove_quietly(self, path: str) -> None:
        try:
            self._repo.remove(path)
        except ValueError as e:
            logger.warning("avatar remove failed: %s", e)

    def delete(self, user_id: str) -> None:
        profile = self.profiles.fetch(user_id)
        if profile is None:
            raise ValueError("profile not found")
        path = self.path_from_url(profile.get("avatar_url"))
        if path:
            self._remove_quietly(path)
        self.profiles.set_avatar_url(user_id, None)
        logger.info("avatar removed for %s", user_id)

    def fetch(self, path: str) -> tuple[str, bytes]:
        stored = self._repo.load(path)
        if stored is None:
            raise ValueError("avatar not found")
        return stored

    def _generate_avatar(self, initials: str, color: tuple[int, int, int]) -> bytes:
        img = Image.new("RGBA", (64, 64), (255, 255, 255, 0))
        draw = ImageDraw.Draw(img)
        draw.ellipse((2, 2, 62, 62), fill=color)
        font = ImageFont.load_default()
        left, top, right, bottom = draw.textbbox((0, 0), initials, font=font)
        pos = ((64 - (right - left)) / 2 - left, (64 - (bottom - top)) / 2 - top)
        draw.text(pos, initials, fill=(20, 20, 20), font=font)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def default_avatar(self, name: str | None, index: int = 0) -> bytes:
        initials = DisplayTools.initials(name)
        key = f"default_avatar_{initials}_{index}"
        if self.settings is not None:
            data = self.settings.get_bytes(key)
            if data is not None:
                return data
        data = self._generate_avatar(initials, DisplayTools.rgb_for_index(index))
        if self.settings is not None:
            self.settings.set_bytes(key, data)
        return data
