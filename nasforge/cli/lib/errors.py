"""Error taxonomy for NAS Forge provisioning."""


class NasForgeError(Exception):
    """Base exception for provisioning errors."""

    category = "Error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(NasForgeError, ValueError):
    """Bad input shape, unmet minimums or invalid enumerated values."""

    category = "ValidationError"


class PreconditionError(NasForgeError, RuntimeError):
    """A required external capability is missing or a device is in use."""

    category = "PreconditionError"


class ProvisioningError(NasForgeError, RuntimeError):
    """A mutating step's underlying subsystem reported failure."""

    category = "ProvisioningError"


class InsufficientDevices(ValidationError):
    """Fewer devices than the redundancy level requires."""

    pass


class DeviceNotFound(ValidationError):
    """Path is not a block device."""

    pass


class InvalidLevel(ValidationError):
    """Unknown redundancy level or filesystem type."""

    pass


class DeviceInUse(PreconditionError):
    """Device carries a signature and destructive reuse was not authorized."""

    pass


class MissingCommand(PreconditionError):
    """A required executable is not installed."""

    pass


class NotAuthorized(PreconditionError):
    """Destructive step requested without authorization."""

    pass


class AssemblyFailed(ProvisioningError):
    """mdadm could not create the array."""

    pass


class VolumeCreateFailed(ProvisioningError):
    """PV/VG/LV creation failed."""

    pass


class CacheAttachFailed(ProvisioningError):
    """Cache pool creation or binding failed."""

    pass


class FormatFailed(ProvisioningError):
    """mkfs failed or the UUID could not be read back."""

    pass


class MountFailed(ProvisioningError):
    """The filesystem could not be mounted."""

    pass


class ShareSetupFailed(ProvisioningError):
    """A structural share step (group, directory) failed."""

    pass
