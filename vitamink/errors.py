class VitaminKError(Exception):
    """Base class for failures of an external display or service command."""


class DisplayError(VitaminKError):
    pass


class ServiceError(VitaminKError):
    pass
