"""Validation schemas for raw upstream records."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from genveje.logic.urls import is_absolute_url


class PartnerAdsProgram(BaseModel):
    """One ``<program>`` element of the Partner-ads XML feed."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    programid: str = Field(min_length=1)
    programnavn: str = Field(min_length=1)
    programurl: str = Field(min_length=1)
    affiliatelink: str = Field(min_length=1)
    kategoriid: str = Field(min_length=1)
    kategorinavn: str = Field(min_length=1)
    status: str = Field(min_length=1)

    @field_validator("programurl", "affiliatelink")
    @classmethod
    def _absolute(cls, value: str) -> str:
        if not is_absolute_url(value):
            raise ValueError("must be an absolute http(s) URL")
        return value


class AdtractionProgram(BaseModel):
    """One program object of the Adtraction partner API."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    program_id: int = Field(alias="programId", strict=True)
    program_name: str = Field(alias="programName", min_length=1)
    # not always a well-formed URL upstream
    program_url: str = Field(alias="programURL", min_length=1)
    tracking_link: str | None = Field(default=None, alias="trackingLink")
    category_id: int | None = Field(default=None, alias="categoryId", strict=True)
    category_name: str | None = Field(default=None, alias="categoryName")
    category: str | None = None
    approval_status: int | None = Field(default=None, alias="approvalStatus", strict=True)
    status: int = Field(strict=True)
    ad_id: int | None = Field(default=None, alias="adId", strict=True)
