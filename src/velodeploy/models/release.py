"""Models for the upstream GitHub release index."""

from pydantic import BaseModel, ConfigDict, Field


class GitHubReleaseAsset(BaseModel):
    """A downloadable file attached to a release."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Asset file name")
    browser_download_url: str = Field(..., description="Direct download URL")
    size: int = Field(default=0, description="Size in bytes")


class GitHubRelease(BaseModel):
    """The subset of a GitHub release document used for asset selection."""

    model_config = ConfigDict(extra="ignore")

    tag_name: str = Field(..., description="Release tag")
    name: str | None = Field(default=None, description="Release title")
    assets: list[GitHubReleaseAsset] = Field(default_factory=list)

    def find_asset(self, suffix: str) -> GitHubReleaseAsset | None:
        """Return the first asset whose name contains ``suffix``."""
        return next((asset for asset in self.assets if suffix in asset.name), None)
