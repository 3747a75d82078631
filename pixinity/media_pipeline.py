import io
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import ValidationFailed
from .settings.config import settings

logger = logging.getLogger(__name__)

ACCEPTED_FORMATS = {"JPEG", "PNG", "WEBP"}
ACCEPTED_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
MAIN_MAX_SIZE = (1920, 1920)
THUMB_SIZE = (400, 400)


# ---- Strategy for bucketed paths ----
class UserBucketsStrategy:
    """
    Places files under:
      users/<user_id>/photos/<name>.jpg
      users/<user_id>/photos/thumbs/<name>_thumb.jpg
    """
    def __init__(self, users_root="users"):
        self.users_root = users_root

    def photo_dir(self, user_id: int) -> Path:
        return Path(self.users_root) / str(user_id) / "photos"

    def thumb_dir(self, user_id: int) -> Path:
        return self.photo_dir(user_id) / "thumbs"


# ---- Artifact & result payload ----
@dataclass
class PhotoArtifact:
    file_rel: str
    thumb_rel: str
    width: int
    height: int
    size_kb: int
    format: str


# ---- Pipeline ----
class PhotoPipeline:
    def __init__(self, static_root: Path, path_strategy: UserBucketsStrategy):
        self.static_root = static_root
        self.upload_root = static_root / "uploads"
        self.upload_root.mkdir(parents=True, exist_ok=True)
        self.strategy = path_strategy

    def _rel(self, abspath: Path) -> str:
        return abspath.relative_to(self.static_root).as_posix()

    def process_upload(self, *, data: bytes, filename: str, user_id: int) -> PhotoArtifact:
        """Store the display image and its cover-cropped thumbnail. Blocking; run off the loop."""
        if not data:
            raise ValidationFailed(f"{filename or 'File'} is empty")
        if len(data) > settings.UPLOAD_MAX_BYTES:
            raise ValidationFailed(f"{filename or 'File'} exceeds the upload size limit")
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValidationFailed(f"{filename or 'File'} is not a readable image") from exc
        source_format = (img.format or "").upper()
        if source_format not in ACCEPTED_FORMATS:
            raise ValidationFailed("Only JPEG, PNG, and WebP images are allowed")

        img = ImageOps.exif_transpose(img).convert("RGB")
        name = uuid.uuid4().hex

        photo_dir = self.upload_root / self.strategy.photo_dir(user_id)
        thumb_dir = self.upload_root / self.strategy.thumb_dir(user_id)
        photo_dir.mkdir(parents=True, exist_ok=True)
        thumb_dir.mkdir(parents=True, exist_ok=True)

        main = img.copy()
        main.thumbnail(MAIN_MAX_SIZE, Image.LANCZOS)
        main_abs = photo_dir / f"{name}.jpg"
        main.save(main_abs, "JPEG", quality=85, optimize=True)

        thumb = ImageOps.fit(img, THUMB_SIZE, Image.LANCZOS)
        thumb_abs = thumb_dir / f"{name}_thumb.jpg"
        thumb.save(thumb_abs, "JPEG", quality=80, optimize=True)

        return PhotoArtifact(
            file_rel=self._rel(main_abs),
            thumb_rel=self._rel(thumb_abs),
            width=main.width,
            height=main.height,
            size_kb=max(1, round(main_abs.stat().st_size / 1024)),
            format=source_format.lower(),
        )

    def delete_artifacts(self, *rel_paths: Optional[str]):
        uploads_root = self.upload_root.resolve()
        for rp in rel_paths:
            if not rp:
                continue
            # accept "uploads/...", "/uploads/..." or "static/uploads/..."
            rp_norm = rp.lstrip("/").replace("\\", "/")
            if rp_norm.startswith("static/"):
                rp_norm = rp_norm[len("static/"):]
            abspath = (self.static_root / rp_norm).resolve()
            if uploads_root not in abspath.parents:
                logger.warning("Refusing to delete %s outside the upload root", rp)
                continue
            try:
                if abspath.exists():
                    abspath.unlink()
                    # prune empty folders up to uploads/
                    cur = abspath.parent
                    while cur != uploads_root and uploads_root in cur.parents:
                        try:
                            cur.rmdir()
                        except OSError:
                            break
                        cur = cur.parent
            except OSError:
                logger.exception("Failed to delete upload %s", rp)


pipeline = PhotoPipeline(Path(settings.STATIC_ROOT), UserBucketsStrategy())
