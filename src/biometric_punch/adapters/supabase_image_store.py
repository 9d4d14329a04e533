"""Supabase Storage image store."""

from dataclasses import dataclass

from supabase import Client

from biometric_punch.services.storage import ImageStore


@dataclass
class SupabaseImageStore(ImageStore):
    """Uploads images to a Supabase Storage bucket."""

    client: Client
    bucket: str

    def upload(self, data: bytes, path: str, content_type: str) -> str:
        """Upload bytes and return their public URL."""
        bucket = self.client.storage.from_(self.bucket)
        bucket.upload(path, data, {"content-type": content_type})
        return bucket.get_public_url(path)
