"""HTTP face matching service client."""

import base64
from dataclasses import dataclass

import httpx

from biometric_punch.domain.capture import CapturedImage
from biometric_punch.domain.enrollment import EnrollmentReference
from biometric_punch.domain.errors import MatchServiceError
from biometric_punch.domain.verification import MatchResult
from biometric_punch.services.matching import FaceMatcher


@dataclass
class HttpxFaceMatcher(FaceMatcher):
    """Face matcher that delegates scoring to a remote service."""

    url: str
    http_client: httpx.AsyncClient
    api_key: str | None = None
    timeout_seconds: float = 15.0

    @classmethod
    def create(cls, url: str, api_key: str | None = None) -> "HttpxFaceMatcher":
        """Create a matcher with a managed httpx session."""
        return cls(url=url, api_key=api_key, http_client=httpx.AsyncClient())

    async def match(
        self, probe: CapturedImage, reference: EnrollmentReference
    ) -> MatchResult:
        """Send the probe and the reference URL; return the similarity."""
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "probe_image": base64.b64encode(probe.data).decode("utf-8"),
            "probe_mime_type": probe.mime_type,
            "reference_image_url": reference.reference_url,
        }
        try:
            response = await self.http_client.post(
                self.url, json=payload, headers=headers, timeout=self.timeout_seconds
            )
            response.raise_for_status()
            return MatchResult.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            raise MatchServiceError(detail=str(exc)) from exc

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
