from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, Field, field_validator

from pagesnap.core.exceptions import InvalidRequest
from pagesnap.services.devices import DeviceClass


def _normalize_url(url: str) -> str:
    """Prepend https:// if no protocol is present."""
    url = url.strip()
    if url.startswith("//"):
        url = f"https:{url}"
    elif url and not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


@dataclass(frozen=True)
class CaptureRequest:
    """An accepted capture request. Immutable once validated."""

    url: str
    owner_id: str
    item_id: str | None
    device_class: DeviceClass


class ScreenshotRequest(BaseModel):
    # Required fields are checked in to_capture_request so that a missing url
    # or owner answers 400 with our error body instead of a 422.
    url: str | None = None
    owner_id: str | None = Field(None, validation_alias=AliasChoices("ownerId", "userId", "owner_id"))
    item_id: str | None = Field(None, validation_alias=AliasChoices("itemId", "productId", "item_id"))
    device_class: str = Field(
        "both", validation_alias=AliasChoices("deviceClass", "type", "device_class")
    )

    @field_validator("url", mode="before")
    @classmethod
    def _add_protocol(cls, v):
        return _normalize_url(v) if isinstance(v, str) else v

    def to_capture_request(self) -> CaptureRequest:
        if not self.url or not self.owner_id:
            raise InvalidRequest("Owner ID and URL are required")
        try:
            device_class = DeviceClass(self.device_class.lower())
        except ValueError:
            raise InvalidRequest(
                f"Invalid deviceClass '{self.device_class}', expected desktop, mobile or both"
            )
        return CaptureRequest(
            url=self.url,
            owner_id=self.owner_id,
            item_id=self.item_id or None,
            device_class=device_class,
        )


class ScreenshotMetadata(BaseModel):
    url: str
    itemId: str | None = None
    deviceClass: str
    protectionTier: str
    capturedAt: str


class ScreenshotResponse(BaseModel):
    success: bool
    screenshots: dict[str, str] = {}
    errors: dict[str, str] = {}
    metadata: ScreenshotMetadata
