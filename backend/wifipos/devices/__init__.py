from .outcomes import DEVICE_UNREACHABLE, DeviceError, DeviceOutcome, Success, TransportError
from .r710 import DeviceConfig, GuestPass, R710AdminApi, SystemInfo
from .session import DeviceSessionManager, SessionRegistry, get_session_manager
from .portal import PortalClient, PortalError, PortalValidationError

__all__ = [
    'DEVICE_UNREACHABLE', 'DeviceError', 'DeviceOutcome', 'Success', 'TransportError',
    'DeviceConfig', 'GuestPass', 'R710AdminApi', 'SystemInfo',
    'DeviceSessionManager', 'SessionRegistry', 'get_session_manager',
    'PortalClient', 'PortalError', 'PortalValidationError',
]
