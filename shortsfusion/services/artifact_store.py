"""
Artifact Store - Persists generated images and audio under the static root
"""

import base64
import binascii
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from shortsfusion.config.settings import settings


class ArtifactStore:
    """
    Writes provider output to the static directory served by the API

    URLs are absolute (public_base_url + static prefix) so the render
    provider can fetch them.
    """

    KIND_IMAGE = "image"
    KIND_AUDIO = "audio"

    def __init__(
        self,
        static_root: Optional[str] = None,
        public_base_url: Optional[str] = None,
    ):
        self.static_root = static_root or settings.static_root
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.static_url_prefix = settings.static_url_prefix
        self.subdirs = {
            self.KIND_IMAGE: settings.static_image_subdir,
            self.KIND_AUDIO: settings.static_audio_subdir,
        }

        self._ensure_directories()

    def _ensure_directories(self):
        """Create storage directories if they don't exist"""
        for subdir in self.subdirs.values():
            Path(self.static_root, subdir).mkdir(parents=True, exist_ok=True)

    def _relative_path(self, kind: str, extension: str) -> str:
        if kind not in self.subdirs:
            raise ValueError(f"Unknown artifact kind: {kind}")
        date_str = datetime.utcnow().strftime("%Y/%m/%d")
        filename = f"{uuid.uuid4().hex}.{extension}"
        return f"{self.subdirs[kind]}/{date_str}/{filename}"

    def get_public_url(self, relative_path: str) -> str:
        return f"{self.public_base_url}{self.static_url_prefix}/{relative_path}"

    def upload(
        self,
        data: Union[bytes, str],
        kind: str,
        extension: str,
    ) -> str:
        """
        Store an artifact and return its public URL

        Args:
            data: Raw bytes, or a base64 string
            kind: "image" or "audio"
            extension: File extension without the dot

        Returns:
            Public URL of the stored file
        """
        if isinstance(data, str):
            try:
                data = base64.b64decode(data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"Artifact payload is not valid base64: {e}") from e

        if not data:
            raise ValueError("Artifact payload is empty")

        relative_path = self._relative_path(kind, extension)
        path = os.path.join(self.static_root, relative_path)
        Path(os.path.dirname(path)).mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            f.write(data)

        return self.get_public_url(relative_path)
