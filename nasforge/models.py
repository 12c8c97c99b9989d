"""
Pydantic models for provisioning requests.
"""

from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from nasforge.cli.lib.errors import ValidationError
from nasforge.cli.lib.filesystem import FsType, parse_fs_type
from nasforge.cli.lib.mdadm import RaidLevel, parse_level
from nasforge.cli.lib.validators import (
    PROTOCOL_SAMBA,
    parse_cidrs,
    parse_protocols,
    validate_absolute_path,
    validate_name,
    validate_quota,
    validate_username,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _split_csv(value: object) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value if str(v).strip()]


class PoolCreate(BaseModel):
    """Request model for building the storage pool."""

    data_devices: List[str] = Field(..., description="Data drives (e.g. /dev/sdb)")
    raid_level: RaidLevel = Field(..., description="RAID level: 0, 1, 5, 6 or 10")
    cache_devices: List[str] = Field(default_factory=list, description="Optional fast cache drives")
    fs_type: FsType = Field(FsType.XFS, description="Filesystem: xfs, ext4 or btrfs")
    authorized: bool = Field(False, description="Destructive wipe of the drives was confirmed")

    @field_validator("data_devices", "cache_devices", mode="before")
    def split_devices(cls, v: object) -> List[str]:
        return _split_csv(v)

    @field_validator("raid_level", mode="before")
    def parse_raid_level(cls, v: object) -> RaidLevel:
        if isinstance(v, RaidLevel):
            return v
        return parse_level(str(v))

    @field_validator("fs_type", mode="before")
    def parse_filesystem(cls, v: object) -> FsType:
        if isinstance(v, FsType):
            return v
        return parse_fs_type(str(v))


class ShareCreate(BaseModel):
    """Request model for provisioning a share."""

    path: str = Field(..., description="Absolute directory to share (created if missing)")
    name: Optional[str] = Field(None, description="Share name (defaults to basename of path)")
    protocols: List[str] = Field(default_factory=lambda: ["nfs", "samba"], description="nfs and/or samba")
    cidrs: List[str] = Field(..., description="Allowed client CIDRs")
    user: Optional[str] = Field(None, description="Restricted Unix/Samba user")
    quota: Optional[str] = Field(None, description="XFS project quota hard limit (e.g. 500g)")
    interactive: bool = Field(False, description="Prompt for the Samba password instead of generating one")

    @field_validator("path")
    def check_path(cls, v: str) -> str:
        return validate_absolute_path(v)

    @field_validator("protocols", mode="before")
    def check_protocols(cls, v: object) -> List[str]:
        return parse_protocols(",".join(_split_csv(v)))

    @field_validator("cidrs", mode="before")
    def check_cidrs(cls, v: object) -> List[str]:
        return parse_cidrs(",".join(_split_csv(v)))

    @field_validator("user")
    def check_user(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        validate_username(v)
        return v

    @field_validator("quota")
    def check_quota(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        return validate_quota(v)

    @model_validator(mode="after")
    def default_name(self) -> "ShareCreate":
        if not self.name:
            self.name = self.path.rstrip("/").rsplit("/", 1)[-1]
        validate_name(self.name, samba=PROTOCOL_SAMBA in self.protocols)
        return self


def parse_request(model: Type[ModelT], **data: Any) -> ModelT:
    """
    Build a request model, reporting failures as a project ValidationError.
    """
    try:
        return model(**data)
    except PydanticValidationError as e:
        messages = []
        for error in e.errors():
            message = str(error.get("msg", ""))
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            location = ".".join(str(part) for part in error.get("loc", ()))
            messages.append(f"{location}: {message}" if location else message)
        raise ValidationError("; ".join(messages))
