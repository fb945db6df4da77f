from .client import NFScanPortalClient
from .form import FormFiller, build_field_mappings
from .selectors import FieldMapping, LocatorSpec, PortalSelectors
from .session import PortalSession, launch_session, open_session

__all__ = [
    "FieldMapping",
    "FormFiller",
    "LocatorSpec",
    "NFScanPortalClient",
    "PortalSelectors",
    "PortalSession",
    "build_field_mappings",
    "launch_session",
    "open_session",
]
